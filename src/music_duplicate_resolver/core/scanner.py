"""Pairwise scanning module comparing every unordered pair of candidate files."""

import logging
import time
from collections.abc import Generator, Iterable
from typing import TYPE_CHECKING, Protocol

from .models import ApplicationConfig, FileRecord, PairVerdict
from .similarity import SimilarityOracle

if TYPE_CHECKING:
    from .sessions import ScanSession

logger = logging.getLogger(__name__)


class ProgressCallback(Protocol):
    """Protocol for progress callback functions."""

    def __call__(self, current: int, total: int | None = None, message: str = "") -> None:
        """Called to report progress during scanning."""
        ...


def total_comparisons(file_count: int) -> int:
    """Number of unordered pairs among ``file_count`` files."""
    return file_count * (file_count - 1) // 2


class PairwiseScanner:
    """Compares every unordered pair of candidate files through the similarity oracle."""

    def __init__(
        self, config: ApplicationConfig | None = None, oracle: SimilarityOracle | None = None
    ):
        """
        Initialize the scanner.

        Args:
            config: Application configuration, defaults to ApplicationConfig()
            oracle: Similarity oracle, defaults to one built from ``config``
        """
        self.config = config or ApplicationConfig()
        self.oracle = oracle or SimilarityOracle(self.config)

    def prepare_candidates(self, candidates: Iterable[FileRecord]) -> list[FileRecord]:
        """
        Sort candidates by file id and drop repeated ids.

        The resulting order fixes the pair order, so repeated scans of the
        same input compare pairs in the same sequence.
        """
        unique: dict[int, FileRecord] = {}
        for record in candidates:
            if record.file_id in unique:
                logger.warning(f"Ignoring repeated candidate id {record.file_id}: {record.file_path}")
                continue
            unique[record.file_id] = record
        return [unique[file_id] for file_id in sorted(unique)]

    def iter_verdicts(
        self,
        candidates: Iterable[FileRecord],
        session: "ScanSession | None" = None,
        progress_callback: ProgressCallback | None = None,
    ) -> Generator[PairVerdict, None, None]:
        """
        Compare all unordered pairs of candidates.

        Args:
            candidates: Files to compare
            session: Optional session receiving progress counts and providing the cancel flag
            progress_callback: Optional callback for progress updates

        Yields:
            One PairVerdict per comparison, duplicates and non-duplicates alike

        Stops early, without raising, once the session's cancel flag is set.
        """
        files = self.prepare_candidates(candidates)
        file_count = len(files)
        total = total_comparisons(file_count)
        interval = self.config.progress_interval

        if session is not None:
            session.begin_scanning(file_count, total)

        logger.info(f"Comparing {file_count} files ({total} comparisons)")
        start_time = time.time()
        completed = 0

        for i in range(file_count):
            file1 = files[i]
            for j in range(i + 1, file_count):
                if session is not None and session.cancel_requested:
                    logger.info(f"Scan cancelled after {completed}/{total} comparisons")
                    return

                verdict = self.oracle.compare(file1, files[j])
                completed += 1
                if session is not None:
                    session.record_comparison()

                if verdict.is_duplicate:
                    logger.debug(
                        f"Duplicate: {file1.file_id} ~ {files[j].file_id} "
                        f"({verdict.method.value}, similarity={verdict.similarity})"
                    )

                if progress_callback and (completed % interval == 0 or completed == total):
                    progress_callback(completed, total, f"Compared {completed}/{total} pairs...")

                yield verdict

            if session is not None:
                session.record_file_processed(i + 1)

        scan_duration = time.time() - start_time
        logger.info(f"Pairwise scan complete: {completed} comparisons in {scan_duration:.2f} seconds")

    def scan(
        self,
        candidates: Iterable[FileRecord],
        session: "ScanSession | None" = None,
        progress_callback: ProgressCallback | None = None,
    ) -> list[PairVerdict]:
        """
        Compare all unordered pairs and collect the verdicts.

        Returns:
            All verdicts produced before completion or cancellation
        """
        return list(self.iter_verdicts(candidates, session, progress_callback))
