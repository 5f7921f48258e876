"""End-to-end tests for DuplicateService."""

from pathlib import Path
from unittest.mock import patch

import pytest

from ..exceptions import InvalidRequestError
from ..models import ApplicationConfig, FileRecord, MatchMethod, ScanStage
from ..service import DuplicateService
from ..store import InMemoryFileStore


def make_record(file_id: int, directory: str, **overrides) -> FileRecord:
    data = {
        "file_id": file_id,
        "file_path": Path(directory) / f"{file_id}.mp3",
        "title": "Come Together",
        "artist": "The Beatles",
        "album": "Abbey Road",
        "duration_seconds": 259.0,
        "bit_rate": 320,
    }
    data.update(overrides)
    return FileRecord(**data)


class TestDuplicateService:
    """Test cases for DuplicateService."""

    def setup_method(self) -> None:
        self.files = [
            make_record(10, "/music/old", bit_rate=192),
            make_record(11, "/music/new"),
            make_record(12, "/music/old", title="Something", duration_seconds=182.0),
            make_record(13, "/music/new", title="Something", duration_seconds=183.0),
            make_record(14, "/music/misc", title="Here Comes the Sun", duration_seconds=185.0),
        ]
        self.store = InMemoryFileStore(self.files)
        self.service = DuplicateService(self.store, ApplicationConfig())

    def teardown_method(self) -> None:
        self.service.shutdown()

    def scan(self, scope: str | None = None) -> str:
        session_id = self.service.start_scan(scope)
        status = self.service.wait_for_scan(session_id, timeout=10)
        assert status.stage == ScanStage.COMPLETED
        return session_id

    def test_get_groups(self) -> None:
        session_id = self.scan()

        groups = self.service.get_groups(session_id)

        assert [g.file_ids for g in groups] == [[10, 11], [12, 13]]
        assert self.service.get_scan_status(session_id).groups_found == 2

    def test_scope_limits_candidates(self) -> None:
        session_id = self.scan("/music/new")

        assert self.service.get_groups(session_id) == []
        assert self.service.get_scan_status(session_id).total_files == 2

    def test_preview_auto_resolution(self) -> None:
        session_id = self.scan()

        preview = self.service.preview_auto_resolution(session_id)

        assert preview.total_files_to_delete == 1
        assert preview.resolutions[0].file_to_delete.file_id == 10
        assert preview.resolutions[0].file_to_keep.file_id == 11
        assert preview.total_groups_needing_review == 1
        assert len(self.store) == 5

    def test_execute_auto_resolution(self) -> None:
        session_id = self.scan()

        result = self.service.execute_auto_resolution(session_id)

        assert result.files_deleted == 1
        assert result.files_kept == 1
        assert len(result.groups_needing_review) == 1
        assert self.store.get_file(10) is None
        assert result.summary_text == (
            "Auto-resolved 1 groups: deleted 1 files, kept 1 files. 1 groups require manual review."
        )

    def test_execute_with_exclusion(self) -> None:
        session_id = self.scan()

        result = self.service.execute_auto_resolution(session_id, exclude_file_ids=[10])

        assert result.files_attempted == 0
        assert self.store.get_file(10) is not None

    def test_partial_failure_accounting(self) -> None:
        """Test that deleted plus failed equals attempted when the store fails once."""
        self.store.add(make_record(15, "/music/misc", bit_rate=128))
        session_id = self.scan()
        original = self.store.delete_file

        def flaky_delete(file_id: int) -> bool:
            if file_id == 10:
                return False
            return original(file_id)

        with patch.object(self.store, "delete_file", side_effect=flaky_delete):
            result = self.service.execute_auto_resolution(session_id)

        assert result.files_attempted == 2
        assert result.files_deleted == 1
        assert result.deletion_failures == 1
        assert self.store.get_file(15) is None
        assert self.store.get_file(10) is not None

    def test_preview_reflects_deletions(self) -> None:
        session_id = self.scan()
        self.service.execute_auto_resolution(session_id)

        preview = self.service.preview_auto_resolution(session_id)

        assert preview.total_files_to_delete == 0
        assert [g.file_ids for g in preview.groups_needing_review] == [[12, 13]]

    def test_keep_file_delete_others(self) -> None:
        session_id = self.scan()

        result = self.service.keep_file_delete_others(session_id, 2, 13)

        assert result.files_deleted == 1
        assert self.store.get_file(12) is None

    def test_keep_file_unknown_group(self) -> None:
        session_id = self.scan()
        with pytest.raises(InvalidRequestError):
            self.service.keep_file_delete_others(session_id, 9, 13)

    def test_directory_conflicts(self) -> None:
        session_id = self.scan()

        conflicts = self.service.get_directory_conflicts(session_id)

        assert len(conflicts) == 1
        assert conflicts[0].directory_a == "/music/new"
        assert conflicts[0].total_duplicate_pairs == 2

    def test_directory_resolution(self) -> None:
        session_id = self.scan()

        preview = self.service.preview_directory_resolution("/music/new", "/music/old", session_id)
        assert [f.file_id for f in preview.files_to_delete] == [10, 12]

        result = self.service.execute_directory_resolution("/music/new", "/music/old")
        assert result.files_deleted == 2
        assert [f.file_id for f in self.store.list_candidate_files()] == [11, 13, 14]

    def test_no_finished_session(self) -> None:
        with pytest.raises(InvalidRequestError):
            self.service.preview_directory_resolution("/music/new", "/music/old")

    def test_compare_files(self) -> None:
        comparison = self.service.compare_files(11, 10)

        assert comparison.verdict.is_duplicate
        assert comparison.verdict.method == MatchMethod.METADATA
        assert comparison.title_similarity == 100.0

    def test_compare_same_file(self) -> None:
        with pytest.raises(InvalidRequestError):
            self.service.compare_files(10, 10)

    def test_find_similar_files(self) -> None:
        assert [f.file_id for f in self.service.find_similar_files(12)] == [13]
        assert self.service.find_similar_files(14) == []

    def test_delete_file(self) -> None:
        assert self.service.delete_file(14)
        with pytest.raises(InvalidRequestError):
            self.service.delete_file(14)

    def test_keep_file_finds_its_group(self) -> None:
        session_id = self.scan()

        result = self.service.keep_file(session_id, 10)

        assert result.files_deleted == 1
        assert self.store.get_file(11) is None
        assert self.store.get_file(10) is not None

    def test_keep_file_outside_any_group(self) -> None:
        session_id = self.scan()
        with pytest.raises(InvalidRequestError):
            self.service.keep_file(session_id, 14)
