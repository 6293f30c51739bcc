"""Task and subtask business rules.

Each operation loads the full store, acts on it and, for mutations, saves
the full store back. All of that happens under one process-wide lock so
concurrent requests served by the daemon cannot lose each other's updates.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from yaru.core.storage import StorageService, StoreError
from yaru.core.types import (
    PRIORITY_ORDER,
    Progress,
    StorageError,
    Task,
    TaskStore,
    NotFoundError,
    ParentCompletedError,
    ValidationError,
    generate_task_id,
    is_task_field,
    now_iso,
    short_id,
)

logger = logging.getLogger(__name__)


@dataclass
class TaskFilter:
    status: Optional[str] = None
    priority: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: str = "desc"


@dataclass
class StatusUpdate:
    """Result of update_status: the task plus the sibling completion flag."""
    task: Task
    all_subtasks_completed: Optional[bool] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = self.task.to_dict()
        if self.all_subtasks_completed is not None:
            data["allSubtasksCompleted"] = self.all_subtasks_completed
        return data


def find_by_prefix(tasks: List[Task], id_prefix: str) -> Tuple[int, Task]:
    """
    Resolve a task by a leading substring of its id.

    Returns:
        (index, task) of the single match

    Raises:
        NotFoundError: If nothing matches
        ValidationError: If more than one task matches
    """
    matches = [
        (index, task) for index, task in enumerate(tasks)
        if task.id.startswith(id_prefix)
    ]
    if not matches:
        raise NotFoundError(id_prefix)
    if len(matches) > 1:
        ids = ", ".join(short_id(task.id) for _, task in matches)
        raise ValidationError(f"Multiple tasks match. Please use a longer ID: {ids}")
    return matches[0]


def _clean_title(title: Optional[str]) -> str:
    trimmed = (title or "").strip()
    if not trimmed:
        raise ValidationError("Title is required")
    return trimmed


class TaskService:
    """
    Domain operations over the task store.

    Args:
        storage: Store codec used for every load and save
        id_factory: Produces new task ids (UUID4 by default)
    """

    def __init__(
        self,
        storage: StorageService,
        id_factory: Callable[[], str] = generate_task_id,
    ):
        self.storage = storage
        self.id_factory = id_factory
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        description: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> Task:
        """
        Create a top-level task.

        Raises:
            ValidationError: If the title is empty after trimming
        """
        with self._lock:
            store = self._load()
            task = self._new_task(store, title, description, priority)
            store.tasks.append(task)
            self._save(store)
            logger.info(f"Created task {short_id(task.id)}")
            return task

    def list_tasks(self, task_filter: Optional[TaskFilter] = None) -> List[Task]:
        task_filter = task_filter or TaskFilter()
        with self._lock:
            tasks = list(self._load().tasks)

        if task_filter.status:
            tasks = [t for t in tasks if t.status == task_filter.status]
        if task_filter.priority:
            tasks = [t for t in tasks if t.priority == task_filter.priority]

        if task_filter.sort_by:
            reverse = task_filter.sort_order != "asc"
            tasks.sort(key=self._sort_key(task_filter.sort_by), reverse=reverse)

        return tasks

    def get(self, id_prefix: str) -> Task:
        with self._lock:
            _, task = find_by_prefix(self._load().tasks, id_prefix)
            return task

    def update(
        self,
        id_prefix: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> Task:
        """Apply a partial patch: only the fields given are changed."""
        with self._lock:
            store = self._load()
            _, task = find_by_prefix(store.tasks, id_prefix)

            if title is not None:
                task.title = _clean_title(title)
            if description is not None:
                task.description = description
            if priority is not None:
                task.priority = priority
            task.updated_at = now_iso()

            self._save(store)
            return task

    def update_status(self, id_prefix: str, status: str) -> StatusUpdate:
        """
        Change a task's status.

        started_at is set once, on the first move to in_progress.
        completed_at is overwritten on every move to completed.

        Raises:
            ParentCompletedError: If the task is a subtask of a completed task
        """
        with self._lock:
            store = self._load()
            _, task = find_by_prefix(store.tasks, id_prefix)

            if task.parent_id:
                parent = self._find_exact(store, task.parent_id)
                if parent is not None and parent.status == "completed":
                    raise ParentCompletedError(parent.id)

            now = now_iso()
            task.status = status
            task.updated_at = now
            if status == "in_progress" and not task.started_at:
                task.started_at = now
            if status == "completed":
                task.completed_at = now

            self._save(store)

            result = StatusUpdate(task=task)
            if task.parent_id and status == "completed":
                siblings = [t for t in store.tasks if t.parent_id == task.parent_id]
                result.all_subtasks_completed = all(
                    t.status == "completed" for t in siblings
                )
            return result

    def delete(self, id_prefix: str) -> None:
        """Delete a task together with all of its subtasks in one save."""
        with self._lock:
            store = self._load()
            _, task = find_by_prefix(store.tasks, id_prefix)

            before = len(store.tasks)
            store.tasks = [
                t for t in store.tasks
                if t.parent_id != task.id and t.id != task.id
            ]
            self._save(store)
            logger.info(
                f"Deleted task {short_id(task.id)} "
                f"({before - len(store.tasks) - 1} subtasks)"
            )

    def search(self, query: str) -> List[Task]:
        needle = query.lower()
        with self._lock:
            tasks = self._load().tasks
        return [
            t for t in tasks
            if needle in t.title.lower() or needle in t.description.lower()
        ]

    # ------------------------------------------------------------------
    # Subtasks
    # ------------------------------------------------------------------

    def create_subtask(
        self,
        parent_id: str,
        title: str,
        description: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> Task:
        """
        Create a subtask under a top-level task.

        The stored parent_id is always the parent's full id.

        Raises:
            NotFoundError: If the parent does not resolve
            ValidationError: If the parent is itself a subtask, or the title is empty
        """
        with self._lock:
            store = self._load()
            _, parent = find_by_prefix(store.tasks, parent_id)
            if parent.parent_id:
                raise ValidationError("Cannot create a subtask of a subtask")

            task = self._new_task(store, title, description, priority)
            task.parent_id = parent.id
            store.tasks.append(task)
            self._save(store)
            logger.info(f"Created subtask {short_id(task.id)} under {short_id(parent.id)}")
            return task

    def list_subtasks(self, parent_id: str) -> List[Task]:
        with self._lock:
            tasks = self._load().tasks
            _, parent = find_by_prefix(tasks, parent_id)
        return [t for t in tasks if t.parent_id == parent.id]

    def get_progress(self, parent_id: str) -> Progress:
        subtasks = self.list_subtasks(parent_id)
        total = len(subtasks)
        completed = sum(1 for t in subtasks if t.status == "completed")
        # Halves round up
        percentage = int(100 * completed / total + 0.5) if total else 0
        return Progress(total=total, completed=completed, percentage=percentage)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_task(
        self,
        store: TaskStore,
        title: str,
        description: Optional[str],
        priority: Optional[str],
    ) -> Task:
        clean = _clean_title(title)
        existing = {t.id for t in store.tasks}
        task_id = self.id_factory()
        while task_id in existing:
            task_id = self.id_factory()

        now = now_iso()
        return Task(
            id=task_id,
            title=clean,
            description=description or "",
            priority=priority or "medium",
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _find_exact(store: TaskStore, task_id: str) -> Optional[Task]:
        for task in store.tasks:
            if task.id == task_id:
                return task
        return None

    @staticmethod
    def _sort_key(sort_by: str) -> Callable[[Task], object]:
        if sort_by == "priority":
            return lambda t: PRIORITY_ORDER.get(t.priority, 0)

        if not is_task_field(sort_by):
            raise ValidationError(f"Cannot sort by unknown field: {sort_by}")

        def key(task: Task) -> object:
            value = task.field_value(sort_by)
            # Unset optional fields sort before any value
            return (value is not None, value if value is not None else "")

        return key

    def _load(self) -> TaskStore:
        try:
            return self.storage.load()
        except StoreError as e:
            raise StorageError(f"Failed to load data: {e}") from e

    def _save(self, store: TaskStore) -> None:
        try:
            self.storage.save(store)
        except StoreError as e:
            raise StorageError(f"Failed to save data: {e}") from e
