"""Duplicate grouping module clustering positive verdicts into groups."""

import heapq
import logging
from collections import defaultdict
from collections.abc import Iterable

from .models import DuplicateGroup, FileRecord, GroupMember, PairVerdict

logger = logging.getLogger(__name__)


class UnionFind:
    """Disjoint-set over file ids with path compression.

    The root of every set is its lowest id, so the root doubles as the
    group's reference file.
    """

    def __init__(self):
        self._parent: dict[int, int] = {}

    def add(self, item: int) -> None:
        self._parent.setdefault(item, item)

    def find(self, item: int) -> int:
        self.add(item)
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        # Compress
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: int, b: int) -> int:
        """Merge the sets of ``a`` and ``b``; returns the new root."""
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return root_a
        low, high = (root_a, root_b) if root_a < root_b else (root_b, root_a)
        self._parent[high] = low
        return low

    def components(self) -> dict[int, list[int]]:
        """Map each root to the sorted members of its set."""
        groups: dict[int, list[int]] = defaultdict(list)
        for item in self._parent:
            groups[self.find(item)].append(item)
        return {root: sorted(members) for root, members in groups.items()}

    def __contains__(self, item: int) -> bool:
        return item in self._parent


class DuplicateGrouper:
    """Groups files connected by positive duplicate verdicts."""

    def build(
        self, verdicts: Iterable[PairVerdict], files: Iterable[FileRecord]
    ) -> list[DuplicateGroup]:
        """
        Create duplicate groups from pairwise verdicts.

        Args:
            verdicts: Pair verdicts from a scan; non-duplicates are ignored
            files: File records for the ids referenced by the verdicts

        Returns:
            Groups of two or more files, ordered by reference file id and
            numbered from 1 in that order

        Example:
            >>> grouper = DuplicateGrouper()
            >>> groups = grouper.build([verdict_1_2, verdict_2_3], [f1, f2, f3])
            >>> groups[0].reference_file_id  # 1
        """
        records = {record.file_id: record for record in files}
        union_find = UnionFind()
        edges: dict[int, dict[int, float | None]] = defaultdict(dict)
        skipped = 0

        for verdict in verdicts:
            if not verdict.is_duplicate:
                continue

            a, b = verdict.file_ids
            if a not in records or b not in records:
                skipped += 1
                continue

            union_find.union(a, b)
            self._record_edge(edges, a, b, verdict.similarity)

        if skipped:
            logger.warning(f"Skipped {skipped} duplicate verdicts referencing unknown files")

        duplicate_groups = []
        components = union_find.components()
        for group_id, root in enumerate(sorted(components), start=1):
            member_ids = components[root]
            similarities = self._similarities_to_reference(root, member_ids, edges)
            members = [GroupMember(file=records[root], similarity=None)]
            members.extend(
                GroupMember(file=records[file_id], similarity=similarities.get(file_id))
                for file_id in member_ids
                if file_id != root
            )
            duplicate_groups.append(
                DuplicateGroup(group_id=group_id, reference_file_id=root, members=members)
            )
            logger.debug(f"Created duplicate group {group_id}: reference {root}, {len(members)} files")

        logger.info(f"Created {len(duplicate_groups)} duplicate groups")
        return duplicate_groups

    @staticmethod
    def _record_edge(
        edges: dict[int, dict[int, float | None]], a: int, b: int, similarity: float | None
    ) -> None:
        current = edges[a].get(b)
        if b in edges[a] and (similarity is None or (current is not None and current >= similarity)):
            return
        edges[a][b] = similarity
        edges[b][a] = similarity

    @staticmethod
    def _similarities_to_reference(
        reference: int, member_ids: list[int], edges: dict[int, dict[int, float | None]]
    ) -> dict[int, float]:
        """
        Score every member against the reference.

        A direct verdict with the reference wins. Otherwise the member gets
        the best bottleneck score over scored paths to the reference, i.e.
        the highest minimum similarity along any chain joining them.
        Members reachable only through unscored verdicts are left out.
        """
        best: dict[int, float] = {}
        heap: list[tuple[float, int]] = [(-1.0, reference)]
        bottleneck: dict[int, float] = {reference: 1.0}

        while heap:
            negative, node = heapq.heappop(heap)
            score = -negative
            if node in best:
                continue
            best[node] = score
            for neighbour, similarity in edges[node].items():
                if similarity is None or neighbour in best:
                    continue
                candidate = min(score, similarity)
                if candidate > bottleneck.get(neighbour, -1.0):
                    bottleneck[neighbour] = candidate
                    heapq.heappush(heap, (-candidate, neighbour))

        result = {}
        for file_id in member_ids:
            if file_id == reference:
                continue
            direct = edges[reference].get(file_id)
            if direct is not None:
                result[file_id] = direct
            elif file_id in best:
                result[file_id] = best[file_id]
        return result

    def group_for_file(self, groups: list[DuplicateGroup], file_id: int) -> DuplicateGroup | None:
        """Return the group containing ``file_id``, if any."""
        for group in groups:
            if file_id in group.file_ids:
                return group
        return None
