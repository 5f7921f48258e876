"""Scan session lifecycle, progress snapshots and cooperative cancellation."""

import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from .exceptions import InvalidRequestError, SetupError
from .grouper import DuplicateGrouper
from .models import DuplicateGroup, FileRecord, PairVerdict, ScanStage, ScanStatus
from .scanner import PairwiseScanner, ProgressCallback

logger = logging.getLogger(__name__)

CandidateSource = Callable[[], list[FileRecord]]


@dataclass
class ScanOutcome:
    """Data collected by a finished scan."""

    files: list[FileRecord] = field(default_factory=list)
    verdicts: list[PairVerdict] = field(default_factory=list)
    groups: list[DuplicateGroup] = field(default_factory=list)


class ScanSession:
    """Mutable state of one scan run.

    Only the scanning task writes to a session. Readers call ``snapshot``
    and get an immutable ScanStatus.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._stage = ScanStage.STARTING
        self._total_files = 0
        self._files_processed = 0
        self._total_comparisons = 0
        self._comparisons_completed = 0
        self._groups_found = 0
        self._error_message: str | None = None
        self.outcome: ScanOutcome | None = None

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    @property
    def stage(self) -> ScanStage:
        with self._lock:
            return self._stage

    def request_cancel(self) -> None:
        self._cancel.set()

    def set_stage(self, stage: ScanStage) -> None:
        with self._lock:
            self._stage = stage
        logger.info(f"Session {self.session_id}: {stage.value}")

    def begin_scanning(self, total_files: int, total_comparisons: int) -> None:
        with self._lock:
            self._total_files = total_files
            self._total_comparisons = total_comparisons
            self._files_processed = 0
            self._comparisons_completed = 0
            self._stage = ScanStage.SCANNING
        logger.info(f"Session {self.session_id}: scanning {total_files} files")

    def record_comparison(self) -> None:
        with self._lock:
            self._comparisons_completed += 1

    def record_file_processed(self, files_processed: int) -> None:
        with self._lock:
            self._files_processed = max(self._files_processed, files_processed)

    def finish(self, outcome: ScanOutcome) -> None:
        """Store the outcome and move to completed or cancelled.

        A scan that compared every pair is completed even if a cancel
        arrived after its last comparison.
        """
        with self._lock:
            interrupted = self._comparisons_completed < self._total_comparisons
            stage = (
                ScanStage.CANCELLED
                if self._cancel.is_set() and interrupted
                else ScanStage.COMPLETED
            )
            self.outcome = outcome
            self._groups_found = len(outcome.groups)
            self._stage = stage
        logger.info(f"Session {self.session_id}: {stage.value} with {len(outcome.groups)} groups")

    def fail(self, message: str) -> None:
        with self._lock:
            self._error_message = message
            self._stage = ScanStage.ERROR
        logger.error(f"Session {self.session_id} failed: {message}")

    def snapshot(self) -> ScanStatus:
        """Return an immutable copy of the current progress."""
        with self._lock:
            if self._stage == ScanStage.COMPLETED:
                percent = 100
            elif self._total_comparisons:
                percent = min(self._comparisons_completed * 100 // self._total_comparisons, 99)
            else:
                percent = 0

            return ScanStatus(
                session_id=self.session_id,
                stage=self._stage,
                total_files=self._total_files,
                files_processed=self._files_processed,
                total_comparisons=self._total_comparisons,
                comparisons_completed=self._comparisons_completed,
                groups_found=self._groups_found,
                percent_complete=percent,
                error_message=self._error_message,
                cancel_requested=self._cancel.is_set(),
            )


class ScanSessionManager:
    """Runs scans in the background and keeps a registry of sessions."""

    def __init__(
        self,
        scanner: PairwiseScanner | None = None,
        grouper: DuplicateGrouper | None = None,
        max_workers: int = 1,
    ):
        """
        Initialize the manager.

        Args:
            scanner: Pairwise scanner, defaults to PairwiseScanner()
            grouper: Group builder, defaults to DuplicateGrouper()
            max_workers: Number of scans allowed to run at once
        """
        self.scanner = scanner or PairwiseScanner()
        self.grouper = grouper or DuplicateGrouper()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="duplicate-scan"
        )
        self._lock = threading.Lock()
        self._sessions: dict[str, ScanSession] = {}
        self._futures: dict[str, Future] = {}
        self._order: list[str] = []

    def start(
        self, candidate_source: CandidateSource, progress_callback: ProgressCallback | None = None
    ) -> str:
        """
        Start a scan in the background.

        Args:
            candidate_source: Callable returning the files to scan
            progress_callback: Optional callback for progress updates

        Returns:
            Session id for status, cancel and result lookups
        """
        session_id = str(uuid.uuid4())
        session = ScanSession(session_id)
        with self._lock:
            self._sessions[session_id] = session
            self._order.append(session_id)
            self._futures[session_id] = self._executor.submit(
                self._run, session, candidate_source, progress_callback
            )
        logger.info(f"Started duplicate scan session {session_id}")
        return session_id

    def _run(
        self,
        session: ScanSession,
        candidate_source: CandidateSource,
        progress_callback: ProgressCallback | None,
    ) -> None:
        try:
            session.set_stage(ScanStage.LOADING)
            try:
                files = list(candidate_source())
            except SetupError:
                raise
            except Exception as e:
                raise SetupError(f"Could not load candidate files: {e}") from e

            files = self.scanner.prepare_candidates(files)
            verdicts = [
                verdict
                for verdict in self.scanner.iter_verdicts(files, session, progress_callback)
                if verdict.is_duplicate
            ]
            groups = self.grouper.build(verdicts, files)
            session.finish(ScanOutcome(files=files, verdicts=verdicts, groups=groups))

        except SetupError as e:
            session.fail(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in scan session {session.session_id}")
            session.fail(str(e))

    def get_session(self, session_id: str) -> ScanSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise InvalidRequestError(f"Unknown scan session: {session_id}")
        return session

    def status(self, session_id: str) -> ScanStatus:
        return self.get_session(session_id).snapshot()

    def cancel(self, session_id: str) -> bool:
        """
        Request cancellation of a scan.

        Returns:
            True if the scan was still running, False if it had already finished
        """
        session = self.get_session(session_id)
        if session.stage.is_terminal:
            return False
        session.request_cancel()
        logger.info(f"Cancellation requested for session {session_id}")
        return True

    def wait(self, session_id: str, timeout: float | None = None) -> ScanStatus:
        """Block until the scan finishes and return its final status."""
        session = self.get_session(session_id)
        with self._lock:
            future = self._futures[session_id]
        future.result(timeout=timeout)
        return session.snapshot()

    def results(self, session_id: str) -> ScanOutcome:
        """
        Return what a finished scan collected.

        Raises:
            InvalidRequestError: If the session is unknown or still running
        """
        session = self.get_session(session_id)
        stage = session.stage
        if not stage.is_terminal:
            raise InvalidRequestError(f"Scan session {session_id} is still {stage.value}")
        return session.outcome or ScanOutcome()

    def latest_session_id(self) -> str | None:
        """Id of the most recent session that finished with results."""
        with self._lock:
            order = list(reversed(self._order))
            sessions = dict(self._sessions)
        for session_id in order:
            if sessions[session_id].outcome is not None:
                return session_id
        return None

    def shutdown(self, wait: bool = True) -> None:
        """Cancel running scans and stop the worker pool."""
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            if not session.stage.is_terminal:
                session.request_cancel()
        self._executor.shutdown(wait=wait)
