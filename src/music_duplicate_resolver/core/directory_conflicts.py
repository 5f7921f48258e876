"""Directory-level view of duplicate verdicts and bulk resolution by directory."""

import logging
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path

from .exceptions import InvalidRequestError
from .models import (
    DirectoryConflict,
    DirectoryResolutionPreview,
    DirectoryResolutionResult,
    DuplicatePair,
    FileRecord,
    PairVerdict,
)
from .store import FileStore, delete_files

logger = logging.getLogger(__name__)


def normalize_directory(directory: str | Path) -> str:
    """Canonical absolute string form of a directory, without trailing separators.

    Relative directories are resolved against the working directory, the
    same way relative file paths are.
    """
    path = Path(directory)
    if not path.is_absolute():
        path = path.resolve()
    return str(path)


class DirectoryConflictAggregator:
    """Regroups cross-directory duplicate verdicts by the pair of containing directories."""

    def aggregate(
        self, verdicts: Iterable[PairVerdict], files: Iterable[FileRecord]
    ) -> list[DirectoryConflict]:
        """
        Build directory conflicts from pair verdicts.

        Args:
            verdicts: Pair verdicts from a scan; only duplicates across directories count
            files: File records for the ids referenced by the verdicts

        Returns:
            Conflicts sorted by pair count (highest first), then by directory names
        """
        records = {record.file_id: record for record in files}
        pairs_by_key: dict[tuple[str, str], list[DuplicatePair]] = defaultdict(list)

        for verdict in verdicts:
            if not verdict.is_duplicate:
                continue
            file_a = records.get(verdict.file_id_a)
            file_b = records.get(verdict.file_id_b)
            if file_a is None or file_b is None:
                continue
            if file_a.directory == file_b.directory:
                continue

            # Orient each pair so file_a lives in directory_a
            if file_a.directory > file_b.directory:
                file_a, file_b = file_b, file_a
            key = (file_a.directory, file_b.directory)
            pairs_by_key[key].append(
                DuplicatePair(
                    file_a=file_a,
                    file_b=file_b,
                    similarity=verdict.similarity,
                    method=verdict.method,
                )
            )

        conflicts = []
        for (directory_a, directory_b), pairs in pairs_by_key.items():
            pairs.sort(key=lambda p: (p.file_a.file_id, p.file_b.file_id))
            conflicts.append(
                DirectoryConflict(
                    directory_a=directory_a,
                    directory_b=directory_b,
                    file_count_a=len({p.file_a.file_id for p in pairs}),
                    file_count_b=len({p.file_b.file_id for p in pairs}),
                    pairs=pairs,
                )
            )

        conflicts.sort(key=lambda c: (-c.total_duplicate_pairs, c.directory_a, c.directory_b))
        logger.info(f"Found {len(conflicts)} directory conflicts")
        return conflicts

    def find_conflict(
        self, conflicts: list[DirectoryConflict], directory_to_keep: str, directory_to_delete: str
    ) -> DirectoryConflict:
        """
        Locate the conflict linking two directories.

        Raises:
            InvalidRequestError: If the directories are identical or not linked by any pair
        """
        keep = normalize_directory(directory_to_keep)
        delete = normalize_directory(directory_to_delete)
        if keep == delete:
            raise InvalidRequestError("Directory to keep and directory to delete must differ")

        for conflict in conflicts:
            if conflict.involves(keep) and conflict.involves(delete):
                return conflict
        raise InvalidRequestError(f"No duplicate pairs link {keep} and {delete}")

    def preview_resolution(
        self, conflicts: list[DirectoryConflict], directory_to_keep: str, directory_to_delete: str
    ) -> DirectoryResolutionPreview:
        """
        List the files that clearing one side of a conflict would remove.

        Args:
            conflicts: Conflicts from ``aggregate``
            directory_to_keep: Directory whose files survive
            directory_to_delete: Directory whose duplicated files are removed

        Returns:
            DirectoryResolutionPreview with files to delete and their counterparts
        """
        conflict = self.find_conflict(conflicts, directory_to_keep, directory_to_delete)
        delete = normalize_directory(directory_to_delete)

        to_delete: dict[int, FileRecord] = {}
        to_keep: dict[int, FileRecord] = {}
        for pair in conflict.pairs:
            if pair.file_a.directory == delete:
                doomed, kept = pair.file_a, pair.file_b
            else:
                doomed, kept = pair.file_b, pair.file_a
            to_delete[doomed.file_id] = doomed
            to_keep[kept.file_id] = kept

        files_to_delete = [to_delete[i] for i in sorted(to_delete)]
        return DirectoryResolutionPreview(
            directory_to_keep=normalize_directory(directory_to_keep),
            directory_to_delete=delete,
            files_to_delete=files_to_delete,
            files_to_keep=[to_keep[i] for i in sorted(to_keep)],
            total_files_to_delete=len(files_to_delete),
        )

    def execute_resolution(
        self,
        conflicts: list[DirectoryConflict],
        directory_to_keep: str,
        directory_to_delete: str,
        store: FileStore,
    ) -> DirectoryResolutionResult:
        """
        Delete the duplicated files from one side of a conflict.

        Returns:
            DirectoryResolutionResult; individual deletion failures are counted
        """
        preview = self.preview_resolution(conflicts, directory_to_keep, directory_to_delete)
        deleted, failures = delete_files(store, preview.files_to_delete)

        logger.info(
            f"Directory resolution: deleted {deleted}/{preview.total_files_to_delete} files "
            f"from {preview.directory_to_delete}, kept {preview.directory_to_keep}"
        )
        return DirectoryResolutionResult(
            files_deleted=deleted,
            files_attempted=preview.total_files_to_delete,
            directory_kept=preview.directory_to_keep,
            directory_cleared=preview.directory_to_delete,
            failures=failures,
        )
