"""Caller-facing service tying scanning, grouping and resolution together."""

import logging
from collections.abc import Iterable
from pathlib import Path

from .auto_selector import AutoSelector
from .directory_conflicts import DirectoryConflictAggregator
from .exceptions import InvalidRequestError
from .grouper import DuplicateGrouper
from .models import (
    ApplicationConfig,
    AutoResolutionPreview,
    AutoResolutionResult,
    DirectoryConflict,
    DirectoryResolutionPreview,
    DirectoryResolutionResult,
    DuplicateGroup,
    FileRecord,
    PairComparison,
    ScanStatus,
)
from .scanner import PairwiseScanner, ProgressCallback
from .sessions import ScanOutcome, ScanSessionManager
from .similarity import SimilarityOracle
from .store import FileStore, FingerprintComparator, delete_files

logger = logging.getLogger(__name__)


def _within(path: Path, scope: Path) -> bool:
    try:
        path.relative_to(scope)
    except ValueError:
        return False
    return True


class DuplicateService:
    """Duplicate detection and resolution operations exposed to the presentation layer."""

    def __init__(
        self,
        store: FileStore,
        config: ApplicationConfig | None = None,
        fingerprint_comparator: FingerprintComparator | None = None,
    ):
        """
        Initialize the service.

        Args:
            store: File store providing candidates and performing deletions
            config: Application configuration, defaults to ApplicationConfig()
            fingerprint_comparator: External fingerprint tool, defaults to ChromaprintComparator
        """
        self.store = store
        self.config = config or ApplicationConfig()
        self.oracle = SimilarityOracle(self.config, fingerprint_comparator)
        self.scanner = PairwiseScanner(self.config, self.oracle)
        self.grouper = DuplicateGrouper()
        self.sessions = ScanSessionManager(self.scanner, self.grouper)
        self.selector = AutoSelector()
        self.aggregator = DirectoryConflictAggregator()

    # Scanning

    def start_scan(
        self,
        candidate_scope: str | Path | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> str:
        """
        Start a background duplicate scan.

        Args:
            candidate_scope: Optional directory; only files beneath it are scanned
            progress_callback: Optional callback for progress updates

        Returns:
            Session id
        """
        scope = None
        if candidate_scope is not None:
            scope = Path(candidate_scope)
            if not scope.is_absolute():
                scope = scope.resolve()

        def load_candidates() -> list[FileRecord]:
            files = self.store.list_candidate_files()
            if scope is None:
                return files
            scoped = [f for f in files if _within(f.file_path, scope)]
            logger.info(f"Scope {scope}: {len(scoped)} of {len(files)} files")
            return scoped

        return self.sessions.start(load_candidates, progress_callback)

    def get_scan_status(self, session_id: str) -> ScanStatus:
        return self.sessions.status(session_id)

    def cancel_scan(self, session_id: str) -> bool:
        return self.sessions.cancel(session_id)

    def wait_for_scan(self, session_id: str, timeout: float | None = None) -> ScanStatus:
        return self.sessions.wait(session_id, timeout)

    def _outcome(self, session_id: str | None) -> ScanOutcome:
        if session_id is None:
            session_id = self.sessions.latest_session_id()
            if session_id is None:
                raise InvalidRequestError("No finished scan session available")
        return self.sessions.results(session_id)

    def _live_groups(self, outcome: ScanOutcome) -> list[DuplicateGroup]:
        """
        Rebuild groups with current store records.

        Files deleted since the scan are dropped, so previews always reflect
        the current library.
        """
        current = {f.file_id: f for f in self.store.list_candidate_files()}
        files = [current[f.file_id] for f in outcome.files if f.file_id in current]
        return self.grouper.build(outcome.verdicts, files)

    # Groups and auto-resolution

    def get_groups(self, session_id: str) -> list[DuplicateGroup]:
        return self._live_groups(self._outcome(session_id))

    def preview_auto_resolution(self, session_id: str) -> AutoResolutionPreview:
        """Plan the auto-resolution of every group in a session without deleting anything."""
        groups = self._live_groups(self._outcome(session_id))
        return self.selector.preview(groups)

    def execute_auto_resolution(
        self, session_id: str, exclude_file_ids: Iterable[int] = ()
    ) -> AutoResolutionResult:
        """
        Delete the files chosen by the tie-break ladder.

        Args:
            session_id: Finished scan session
            exclude_file_ids: Files to keep even though the plan deletes them

        Returns:
            AutoResolutionResult with counts, failures and groups needing review
        """
        groups = self._live_groups(self._outcome(session_id))
        decisions = self.selector.decide_all(groups)
        return self.selector.execute(groups, decisions, self.store, exclude_file_ids)

    def keep_file_delete_others(
        self, session_id: str, group_id: int, keep_file_id: int
    ) -> AutoResolutionResult:
        """Resolve one group by hand, keeping ``keep_file_id``."""
        groups = self._live_groups(self._outcome(session_id))
        for group in groups:
            if group.group_id == group_id:
                return self.selector.keep_file_delete_others(group, keep_file_id, self.store)
        raise InvalidRequestError(f"Unknown duplicate group: {group_id}")

    def keep_file(self, session_id: str, keep_file_id: int) -> AutoResolutionResult:
        """
        Resolve the group containing ``keep_file_id`` by hand, keeping that file.

        Raises:
            InvalidRequestError: If the file is not in any duplicate group
        """
        groups = self._live_groups(self._outcome(session_id))
        group = self.grouper.group_for_file(groups, keep_file_id)
        if group is None:
            raise InvalidRequestError(f"File {keep_file_id} is not in any duplicate group")
        return self.selector.keep_file_delete_others(group, keep_file_id, self.store)

    # Directory conflicts

    def _conflicts(self, session_id: str | None) -> list[DirectoryConflict]:
        outcome = self._outcome(session_id)
        current = {f.file_id: f for f in self.store.list_candidate_files()}
        files = [current[f.file_id] for f in outcome.files if f.file_id in current]
        return self.aggregator.aggregate(outcome.verdicts, files)

    def get_directory_conflicts(self, session_id: str) -> list[DirectoryConflict]:
        return self._conflicts(session_id)

    def preview_directory_resolution(
        self, directory_to_keep: str, directory_to_delete: str, session_id: str | None = None
    ) -> DirectoryResolutionPreview:
        """Preview clearing duplicated files from ``directory_to_delete``."""
        conflicts = self._conflicts(session_id)
        return self.aggregator.preview_resolution(conflicts, directory_to_keep, directory_to_delete)

    def execute_directory_resolution(
        self, directory_to_keep: str, directory_to_delete: str, session_id: str | None = None
    ) -> DirectoryResolutionResult:
        """Delete duplicated files from ``directory_to_delete``, keeping their counterparts."""
        conflicts = self._conflicts(session_id)
        return self.aggregator.execute_resolution(
            conflicts, directory_to_keep, directory_to_delete, self.store
        )

    # Single files

    def _require_file(self, file_id: int) -> FileRecord:
        for record in self.store.list_candidate_files():
            if record.file_id == file_id:
                return record
        raise InvalidRequestError(f"Unknown file: {file_id}")

    def compare_files(self, file_id_a: int, file_id_b: int) -> PairComparison:
        """Compare two files and return the full similarity breakdown."""
        if file_id_a == file_id_b:
            raise InvalidRequestError("Cannot compare a file with itself")
        return self.oracle.explain(self._require_file(file_id_a), self._require_file(file_id_b))

    def find_similar_files(self, file_id: int) -> list[FileRecord]:
        """Return every file the oracle considers a duplicate of ``file_id``."""
        target = self._require_file(file_id)
        return [
            record
            for record in self.store.list_candidate_files()
            if record.file_id != file_id and self.oracle.compare(target, record).is_duplicate
        ]

    def delete_file(self, file_id: int) -> bool:
        """Delete a single file; returns False if the deletion failed."""
        record = self._require_file(file_id)
        deleted, _ = delete_files(self.store, [record])
        return deleted == 1

    def shutdown(self) -> None:
        self.sessions.shutdown()
