"""Collaborator contracts for the file index, plus two reference stores."""

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from .exceptions import DeletionError, SetupError
from .models import DeletionFailure, FileRecord

logger = logging.getLogger(__name__)


class FileStore(Protocol):
    """Storage layer that owns file records."""

    def list_candidate_files(self) -> list[FileRecord]:
        """Return every file eligible for duplicate detection."""
        ...

    def delete_file(self, file_id: int) -> bool:
        """Remove a file from disk and from the index. Returns False on failure."""
        ...


class FingerprintComparator(Protocol):
    """External acoustic tool comparing two fingerprints."""

    def compare(self, fingerprint_a: str, fingerprint_b: str) -> float | None:
        """Return similarity in [0, 1], or None when unavailable."""
        ...


def delete_files(store: FileStore, records: list[FileRecord]) -> tuple[int, list[DeletionFailure]]:
    """
    Delete each record through the store, continuing past failures.

    Args:
        store: Store performing the deletions
        records: Files to delete

    Returns:
        Number of files deleted and the failures encountered
    """
    deleted = 0
    failures = []

    for record in records:
        try:
            if store.delete_file(record.file_id):
                deleted += 1
                logger.debug(f"Deleted file {record.file_id}: {record.file_path}")
                continue
            error = "store reported failure"
        except DeletionError as e:
            error = str(e)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"

        logger.warning(f"Failed to delete {record.file_path}: {error}")
        failures.append(DeletionFailure(file_id=record.file_id, file_path=record.file_path, error=error))

    return deleted, failures


def _remove_from_disk(path: Path) -> None:
    try:
        path.unlink()
        logger.info(f"Deleted: {path}")
    except FileNotFoundError:
        logger.debug(f"File already absent from disk: {path}")


class InMemoryFileStore:
    """File store backed by a dictionary of records."""

    def __init__(self, files: list[FileRecord] | None = None, delete_from_disk: bool = False):
        """
        Initialize the store.

        Args:
            files: Initial records
            delete_from_disk: Whether delete_file also unlinks the file on disk
        """
        self.delete_from_disk = delete_from_disk
        self._lock = threading.Lock()
        self._files: dict[int, FileRecord] = {}
        for record in files or []:
            self._files[record.file_id] = record

    def add(self, record: FileRecord) -> None:
        with self._lock:
            self._files[record.file_id] = record

    def get_file(self, file_id: int) -> FileRecord | None:
        with self._lock:
            return self._files.get(file_id)

    def list_candidate_files(self) -> list[FileRecord]:
        with self._lock:
            return sorted(self._files.values(), key=lambda f: f.file_id)

    def delete_file(self, file_id: int) -> bool:
        with self._lock:
            record = self._files.get(file_id)
        if record is None:
            return False

        if self.delete_from_disk:
            try:
                _remove_from_disk(record.file_path)
            except OSError as e:
                raise DeletionError(f"Failed to delete {record.file_path}: {e}", file_id) from e

        with self._lock:
            self._files.pop(file_id, None)
        return True

    def __len__(self) -> int:
        return len(self._files)


class JsonCatalogStore:
    """File store reading records from a JSON catalog and deleting files on disk."""

    _adapter = TypeAdapter(list[FileRecord])

    def __init__(self, catalog_path: Path, delete_from_disk: bool = True):
        """
        Initialize the store.

        Args:
            catalog_path: JSON file holding a list of file records
            delete_from_disk: Whether delete_file also unlinks the file on disk
        """
        self.catalog_path = catalog_path
        self.delete_from_disk = delete_from_disk
        self._lock = threading.Lock()
        self._files: dict[int, FileRecord] | None = None

    def _load(self) -> dict[int, FileRecord]:
        if self._files is None:
            try:
                raw = self.catalog_path.read_text(encoding="utf-8")
                records = self._adapter.validate_json(raw)
            except OSError as e:
                raise SetupError(f"Cannot read catalog {self.catalog_path}: {e}") from e
            except ValidationError as e:
                raise SetupError(f"Invalid catalog {self.catalog_path}: {e}") from e
            self._files = {record.file_id: record for record in records}
            logger.info(f"Loaded {len(self._files)} records from {self.catalog_path}")
        return self._files

    def _save(self, files: dict[int, FileRecord]) -> None:
        records = sorted(files.values(), key=lambda f: f.file_id)
        payload = [record.model_dump(mode="json") for record in records]
        self.catalog_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def get_file(self, file_id: int) -> FileRecord | None:
        with self._lock:
            return self._load().get(file_id)

    def list_candidate_files(self) -> list[FileRecord]:
        with self._lock:
            return sorted(self._load().values(), key=lambda f: f.file_id)

    def delete_file(self, file_id: int) -> bool:
        with self._lock:
            files = self._load()
            record = files.get(file_id)
            if record is None:
                return False

            if self.delete_from_disk:
                try:
                    _remove_from_disk(record.file_path)
                except OSError as e:
                    raise DeletionError(f"Failed to delete {record.file_path}: {e}", file_id) from e

            # Catalog and memory only drop the record once the rewrite succeeded
            remaining = {i: r for i, r in files.items() if i != file_id}
            try:
                self._save(remaining)
            except OSError as e:
                raise DeletionError(f"Failed to update catalog after deleting {file_id}: {e}", file_id) from e
            del files[file_id]
        return True
