"""Durable JSON store for the task collection.

Layout inside the data directory:
    data.json      current store
    data.json.tmp  transient, written then renamed over data.json
    data.json.bak  copy made by backup(), read back by restore()

Every save replaces the whole file atomically so a concurrent reader sees
either the previous or the new content, never a partial write.
"""

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Union

from yaru.core.types import StoreMetadata, TaskStore, now_iso

logger = logging.getLogger(__name__)

DATA_FILE_NAME = "data.json"
TEMP_FILE_NAME = "data.json.tmp"
BACKUP_FILE_NAME = "data.json.bak"


class StoreError(Exception):
    """Base class for storage failures. The I/O cause is chained."""

    code = "STORE_ERROR"


class StoreFileNotFoundError(StoreError):
    code = "FILE_NOT_FOUND"


class CorruptedDataError(StoreError):
    code = "CORRUPTED_DATA"


class WriteError(StoreError):
    code = "WRITE_ERROR"


class BackupNotFoundError(StoreError):
    code = "BACKUP_NOT_FOUND"


class StorageService:
    """
    Load and save the task store under a single data directory.

    The service holds no cached state; every load reads the file again.
    Callers that need read-modify-write consistency must serialize access
    themselves (see TaskService).
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.data_path = self.data_dir / DATA_FILE_NAME
        self.temp_path = self.data_dir / TEMP_FILE_NAME
        self.backup_path = self.data_dir / BACKUP_FILE_NAME

    def load(self) -> TaskStore:
        """
        Load the store, creating and persisting an empty one if absent.

        Raises:
            CorruptedDataError: If the data file cannot be parsed
            WriteError: If the empty store cannot be persisted
        """
        if not self.data_path.exists():
            store = TaskStore()
            self.save(store)
            logger.info(f"Created empty store at {self.data_path}")
            return store

        return self._read(self.data_path)

    def save(self, store: TaskStore) -> None:
        """
        Persist the store with recomputed metadata.

        Raises:
            WriteError: If encoding, the directory, temp file or rename fails
        """
        store.metadata = StoreMetadata(
            last_modified=now_iso(),
            task_count=len(store.tasks),
        )
        try:
            content = json.dumps(store.to_dict(), indent=2)
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(self.temp_path, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(self.temp_path, self.data_path)
        except (OSError, ValueError, TypeError) as e:
            self.temp_path.unlink(missing_ok=True)
            raise WriteError(f"Failed to write {self.data_path}: {e}") from e

    def backup(self) -> None:
        """
        Copy the current data file to the backup path.

        Raises:
            StoreFileNotFoundError: If there is no data file yet
            WriteError: If the copy fails
        """
        if not self.data_path.exists():
            raise StoreFileNotFoundError(f"No data file at {self.data_path}")

        try:
            shutil.copyfile(self.data_path, self.backup_path)
        except OSError as e:
            raise WriteError(f"Failed to back up to {self.backup_path}: {e}") from e

    def restore(self) -> TaskStore:
        """
        Copy the backup over the data file and load it.

        Raises:
            BackupNotFoundError: If no backup exists
            WriteError: If the copy fails
            CorruptedDataError: If the restored content cannot be parsed
        """
        if not self.backup_path.exists():
            raise BackupNotFoundError(f"No backup at {self.backup_path}")

        try:
            shutil.copyfile(self.backup_path, self.data_path)
        except OSError as e:
            raise WriteError(f"Failed to restore from {self.backup_path}: {e}") from e

        return self._read(self.data_path)

    def _read(self, path: Path) -> TaskStore:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return TaskStore.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise CorruptedDataError(f"Failed to parse {path}: {e}") from e
