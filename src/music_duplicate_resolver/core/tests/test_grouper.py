"""Tests for duplicate grouping."""

import random
from pathlib import Path

import pytest

from ..grouper import DuplicateGrouper, UnionFind
from ..models import FileRecord, MatchMethod, PairVerdict


def make_record(file_id: int) -> FileRecord:
    return FileRecord(file_id=file_id, file_path=Path(f"/music/{file_id}.mp3"), title=f"Song {file_id}")


def make_verdict(a: int, b: int, is_duplicate: bool = True, similarity: float | None = 0.95) -> PairVerdict:
    return PairVerdict(
        file_id_a=a,
        file_id_b=b,
        is_duplicate=is_duplicate,
        similarity=similarity,
        method=MatchMethod.FINGERPRINT,
    )


class TestUnionFind:
    """Test cases for UnionFind."""

    def test_lowest_id_is_root(self) -> None:
        union_find = UnionFind()
        union_find.union(5, 3)
        union_find.union(3, 9)
        union_find.union(9, 1)

        assert union_find.find(5) == 1
        assert union_find.components() == {1: [1, 3, 5, 9]}

    def test_singletons(self) -> None:
        union_find = UnionFind()
        union_find.add(4)

        assert 4 in union_find
        assert 5 not in union_find
        assert union_find.components() == {4: [4]}


class TestDuplicateGrouper:
    """Test cases for DuplicateGrouper."""

    def setup_method(self) -> None:
        self.grouper = DuplicateGrouper()
        self.files = [make_record(i) for i in range(1, 8)]

    def test_transitive_grouping(self) -> None:
        """Test that 1~2 and 2~3 put all three files in one group."""
        groups = self.grouper.build([make_verdict(1, 2), make_verdict(2, 3)], self.files)

        assert len(groups) == 1
        assert groups[0].file_ids == [1, 2, 3]
        assert groups[0].reference_file_id == 1

    def test_non_duplicates_ignored(self) -> None:
        groups = self.grouper.build(
            [make_verdict(1, 2, is_duplicate=False), make_verdict(3, 4)], self.files
        )

        assert len(groups) == 1
        assert groups[0].file_ids == [3, 4]

    def test_files_without_verdicts_are_not_grouped(self) -> None:
        groups = self.grouper.build([], self.files)
        assert groups == []

    def test_groups_numbered_by_reference(self) -> None:
        groups = self.grouper.build([make_verdict(5, 6), make_verdict(1, 7)], self.files)

        assert [g.group_id for g in groups] == [1, 2]
        assert [g.reference_file_id for g in groups] == [1, 5]

    def test_reference_listed_first(self) -> None:
        groups = self.grouper.build([make_verdict(3, 6), make_verdict(2, 3)], self.files)

        group = groups[0]
        assert group.members[0].file.file_id == 2
        assert group.members[0].similarity is None

    def test_direct_similarity_to_reference(self) -> None:
        groups = self.grouper.build(
            [make_verdict(1, 2, similarity=0.91), make_verdict(1, 3, similarity=0.98)], self.files
        )
        assert groups[0].similarity_of(2) == 0.91
        assert groups[0].similarity_of(3) == 0.98

    def test_transitive_similarity_is_weakest_link(self) -> None:
        groups = self.grouper.build(
            [make_verdict(1, 2, similarity=0.97), make_verdict(2, 3, similarity=0.92)], self.files
        )
        assert groups[0].similarity_of(3) == 0.92

    def test_transitive_similarity_takes_best_chain(self) -> None:
        verdicts = [
            make_verdict(1, 2, similarity=0.91),
            make_verdict(2, 4, similarity=0.99),
            make_verdict(1, 3, similarity=0.96),
            make_verdict(3, 4, similarity=0.95),
        ]
        groups = self.grouper.build(verdicts, self.files)
        assert groups[0].similarity_of(4) == pytest.approx(0.95)

    def test_unscored_verdicts_still_group(self) -> None:
        groups = self.grouper.build([make_verdict(1, 2, similarity=None)], self.files)

        assert groups[0].file_ids == [1, 2]
        assert groups[0].similarity_of(2) is None

    def test_unknown_files_skipped(self) -> None:
        groups = self.grouper.build([make_verdict(1, 99), make_verdict(2, 3)], self.files)

        assert len(groups) == 1
        assert groups[0].file_ids == [2, 3]

    def test_group_for_file(self) -> None:
        groups = self.grouper.build([make_verdict(1, 2), make_verdict(4, 5)], self.files)

        assert self.grouper.group_for_file(groups, 5).group_id == 2
        assert self.grouper.group_for_file(groups, 7) is None

    def test_groups_are_connected_components(self) -> None:
        """Test that no positive verdict crosses groups and every group is connected."""
        rng = random.Random(7)
        files = [make_record(i) for i in range(1, 31)]
        verdicts = [
            make_verdict(a, b, is_duplicate=rng.random() < 0.06)
            for a in range(1, 31)
            for b in range(a + 1, 31)
        ]

        groups = self.grouper.build(verdicts, files)

        group_of = {fid: g.group_id for g in groups for fid in g.file_ids}
        for verdict in verdicts:
            if verdict.is_duplicate:
                assert group_of[verdict.file_id_a] == group_of[verdict.file_id_b]

        for group in groups:
            members = set(group.file_ids)
            reached = {group.reference_file_id}
            frontier = [group.reference_file_id]
            while frontier:
                node = frontier.pop()
                for verdict in verdicts:
                    if verdict.is_duplicate and node in verdict.file_ids:
                        other = verdict.other(node)
                        if other not in reached:
                            reached.add(other)
                            frontier.append(other)
            assert reached == members
            assert len(members) >= 2

    def test_grouping_is_deterministic(self) -> None:
        verdicts = [make_verdict(1, 2), make_verdict(4, 6), make_verdict(2, 5), make_verdict(6, 7)]
        shuffled = list(verdicts)
        random.Random(3).shuffle(shuffled)

        first = self.grouper.build(verdicts, self.files)
        second = self.grouper.build(shuffled, list(reversed(self.files)))

        assert [g.model_dump() for g in first] == [g.model_dump() for g in second]
