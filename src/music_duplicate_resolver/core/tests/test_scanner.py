"""Tests for the pairwise scanner."""

from pathlib import Path
from unittest.mock import Mock

from ..models import ApplicationConfig, FileRecord, MatchMethod, PairVerdict, ScanStage
from ..scanner import PairwiseScanner, total_comparisons
from ..sessions import ScanSession


def make_record(file_id: int, title: str = "Song") -> FileRecord:
    return FileRecord(
        file_id=file_id,
        file_path=Path(f"/music/{file_id}.mp3"),
        title=title,
        artist="Band",
        duration_seconds=200.0,
    )


def echo_verdict(file1: FileRecord, file2: FileRecord) -> PairVerdict:
    return PairVerdict(
        file_id_a=file1.file_id,
        file_id_b=file2.file_id,
        is_duplicate=False,
        similarity=0.0,
        method=MatchMethod.METADATA,
    )


class TestPairwiseScanner:
    """Test cases for PairwiseScanner."""

    def create_scanner(self, progress_interval: int = 1) -> PairwiseScanner:
        oracle = Mock()
        oracle.compare.side_effect = echo_verdict
        return PairwiseScanner(ApplicationConfig(progress_interval=progress_interval), oracle)

    def test_total_comparisons(self) -> None:
        assert total_comparisons(0) == 0
        assert total_comparisons(1) == 0
        assert total_comparisons(5) == 10

    def test_every_pair_compared_once_in_id_order(self) -> None:
        scanner = self.create_scanner()
        files = [make_record(i) for i in (3, 1, 2)]

        verdicts = scanner.scan(files)

        assert [v.file_ids for v in verdicts] == [(1, 2), (1, 3), (2, 3)]
        assert scanner.oracle.compare.call_count == 3

    def test_repeated_ids_are_dropped(self) -> None:
        scanner = self.create_scanner()
        files = scanner.prepare_candidates([make_record(1), make_record(2), make_record(1, "Dup")])

        assert [f.file_id for f in files] == [1, 2]
        assert files[0].title == "Song"

    def test_empty_and_single_candidate(self) -> None:
        scanner = self.create_scanner()
        assert scanner.scan([]) == []
        assert scanner.scan([make_record(1)]) == []

    def test_progress_is_monotonic_and_bounded(self) -> None:
        scanner = self.create_scanner()
        progress = []

        scanner.scan(
            [make_record(i) for i in range(1, 6)],
            progress_callback=lambda current, total=None, message="": progress.append(
                (current, total)
            ),
        )

        counts = [current for current, _ in progress]
        assert counts == sorted(counts)
        assert counts[-1] == 10
        assert all(total == 10 for _, total in progress)

    def test_progress_interval(self) -> None:
        scanner = self.create_scanner(progress_interval=4)
        progress_callback = Mock()

        scanner.scan([make_record(i) for i in range(1, 6)], progress_callback=progress_callback)

        reported = [c.args[0] for c in progress_callback.call_args_list]
        assert reported == [4, 8, 10]

    def test_session_counts(self) -> None:
        scanner = self.create_scanner()
        session = ScanSession("test")

        scanner.scan([make_record(i) for i in range(1, 5)], session=session)

        status = session.snapshot()
        assert status.stage == ScanStage.SCANNING
        assert status.total_files == 4
        assert status.files_processed == 4
        assert status.total_comparisons == 6
        assert status.comparisons_completed == 6
        assert status.percent_complete == 99

    def test_cancellation_stops_between_comparisons(self) -> None:
        """Test that a cancel after four of ten comparisons leaves 40% done."""
        session = ScanSession("test")
        calls = []

        def compare(file1: FileRecord, file2: FileRecord) -> PairVerdict:
            calls.append((file1.file_id, file2.file_id))
            if len(calls) == 4:
                session.request_cancel()
            return echo_verdict(file1, file2)

        oracle = Mock()
        oracle.compare.side_effect = compare
        scanner = PairwiseScanner(ApplicationConfig(), oracle)

        verdicts = scanner.scan([make_record(i) for i in range(1, 6)], session=session)

        status = session.snapshot()
        assert len(verdicts) == 4
        assert status.comparisons_completed == 4
        assert status.percent_complete == 40
        assert status.cancel_requested
