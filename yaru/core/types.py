"""Task data model and domain error types.

Tasks are stored and sent over the wire as JSON objects with camelCase keys.
Optional timestamps and the parent reference are omitted when unset.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

STORE_VERSION = "1.0.0"

TASK_STATUSES = ("pending", "in_progress", "completed")
PRIORITIES = ("low", "medium", "high")

# Higher sorts first in descending order
PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}

SHORT_ID_LENGTH = 8


def generate_task_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    """Current UTC time as ISO 8601 with milliseconds and a Z suffix."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def short_id(task_id: str) -> str:
    return task_id[:SHORT_ID_LENGTH]


def is_valid_status(value: str) -> bool:
    return value in TASK_STATUSES


def is_valid_priority(value: str) -> bool:
    return value in PRIORITIES


# Python attribute name -> serialized key
_FIELD_KEYS = {
    "id": "id",
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "started_at": "startedAt",
    "completed_at": "completedAt",
    "parent_id": "parentId",
}
_KEY_FIELDS = {key: attr for attr, key in _FIELD_KEYS.items()}
_OPTIONAL_FIELDS = ("started_at", "completed_at", "parent_id")


def is_task_field(key: str) -> bool:
    """True for a Task field given by serialized or attribute name."""
    return key in _KEY_FIELDS or key in _FIELD_KEYS


@dataclass
class Task:
    """A single task or subtask."""
    id: str
    title: str
    created_at: str
    updated_at: str
    description: str = ""
    status: str = "pending"
    priority: str = "medium"
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    parent_id: Optional[str] = None

    @property
    def is_subtask(self) -> bool:
        return bool(self.parent_id)

    def field_value(self, key: str) -> Any:
        """
        Look up a field by its serialized or attribute name.

        Raises:
            KeyError: If the task has no such field
        """
        attr = _KEY_FIELDS.get(key, key)
        if attr not in _FIELD_KEYS:
            raise KeyError(key)
        return getattr(self, attr)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for attr, key in _FIELD_KEYS.items():
            value = getattr(self, attr)
            if attr in _OPTIONAL_FIELDS and not value:
                continue
            data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """
        Build a Task from its serialized form.

        Raises:
            KeyError: If a required key is missing
            TypeError: If data is not a mapping
        """
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            status=data.get("status", "pending"),
            priority=data.get("priority", "medium"),
            created_at=data["createdAt"],
            updated_at=data["updatedAt"],
            started_at=data.get("startedAt"),
            completed_at=data.get("completedAt"),
            parent_id=data.get("parentId"),
        )


@dataclass
class StoreMetadata:
    last_modified: str
    task_count: int


@dataclass
class TaskStore:
    """The persisted aggregate: every task plus recomputed metadata."""
    version: str = STORE_VERSION
    tasks: List[Task] = field(default_factory=list)
    metadata: StoreMetadata = field(
        default_factory=lambda: StoreMetadata(last_modified=now_iso(), task_count=0)
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "tasks": [task.to_dict() for task in self.tasks],
            "metadata": {
                "lastModified": self.metadata.last_modified,
                "taskCount": self.metadata.task_count,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskStore":
        raw_meta = data.get("metadata") or {}
        tasks = [Task.from_dict(item) for item in data["tasks"]]
        return cls(
            version=data.get("version", STORE_VERSION),
            tasks=tasks,
            metadata=StoreMetadata(
                last_modified=raw_meta.get("lastModified", ""),
                task_count=raw_meta.get("taskCount", len(tasks)),
            ),
        )


@dataclass
class Progress:
    total: int
    completed: int
    percentage: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "completed": self.completed,
            "percentage": self.percentage,
        }


# ============================================================================
# Domain errors
# ============================================================================

class TaskError(Exception):
    """Base class for business outcomes the caller is expected to handle."""

    code = "TASK_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TaskError):
    code = "NOT_FOUND"

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class ValidationError(TaskError):
    code = "VALIDATION_ERROR"


class StorageError(TaskError):
    code = "STORAGE_ERROR"


class ParentCompletedError(TaskError):
    code = "PARENT_COMPLETED"

    def __init__(self, parent_id: str):
        super().__init__(f"Parent task is already completed: {parent_id}")
        self.parent_id = parent_id
