"""Auto-selection logic for duplicate file management."""

import logging
import re
from collections.abc import Iterable

from .exceptions import InvalidRequestError
from .models import (
    METADATA_FIELD_COUNT,
    AutoResolutionPreview,
    AutoResolutionResult,
    DuplicateGroup,
    FileDeletion,
    FileRecord,
    LadderRule,
    ResolutionDecision,
    ResolutionItem,
)
from .store import FileStore, delete_files

logger = logging.getLogger(__name__)

NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]")


def directory_matches_tags(file: FileRecord) -> bool:
    """
    Check whether the file's containing directory name contains its artist or album.

    The comparison is case-insensitive and also tried with punctuation and
    spaces removed, so "AC/DC" matches a folder named "ACDC".
    """
    directory = file.file_path.parent.name.lower()
    if not directory:
        return False
    compact_directory = NON_ALPHANUMERIC.sub("", directory)

    for value in (file.artist, file.album):
        if value is None or not value.strip():
            continue
        needle = value.strip().lower()
        if needle in directory:
            return True
        compact_needle = NON_ALPHANUMERIC.sub("", needle)
        if compact_needle and compact_needle in compact_directory:
            return True
    return False


class AutoSelector:
    """Chooses which file of a duplicate group to keep using a fixed tie-break ladder.

    The ladder runs on the surviving candidates, which start as all members:

    1. highest bit rate
    2. most complete metadata
    3. directory name containing the artist or album

    A group still tied after all three steps needs manual review.
    """

    def decide(self, group: DuplicateGroup) -> ResolutionDecision:
        """
        Analyze a duplicate group and decide which file to keep.

        Args:
            group: Duplicate group to analyze

        Returns:
            ResolutionDecision with a kept file and deletions, or flagged for manual review
        """
        candidates = sorted(group.files, key=lambda f: f.file_id)

        if len(candidates) < 2:
            return ResolutionDecision(
                group_id=group.group_id,
                file_to_keep=candidates[0] if candidates else None,
            )

        # Step 1: bit rate
        max_bit_rate = max(f.bit_rate or 0 for f in candidates)
        survivors = [f for f in candidates if (f.bit_rate or 0) == max_bit_rate]
        if len(survivors) == 1:
            runner_up = max((f.bit_rate or 0) for f in candidates if f is not survivors[0])
            reason = f"Highest bit rate ({max_bit_rate} kbps vs {runner_up} kbps)"
            return self._resolved(group, candidates, survivors[0], LadderRule.BIT_RATE, reason)

        # Step 2: metadata completeness
        max_score = max(f.metadata_completeness for f in survivors)
        best_metadata = [f for f in survivors if f.metadata_completeness == max_score]
        if len(best_metadata) == 1:
            runner_up = max(f.metadata_completeness for f in survivors if f is not best_metadata[0])
            reason = (
                f"More complete metadata ({max_score}/{METADATA_FIELD_COUNT} vs "
                f"{runner_up}/{METADATA_FIELD_COUNT} fields at {max_bit_rate} kbps)"
            )
            return self._resolved(
                group, candidates, best_metadata[0], LadderRule.METADATA_COMPLETENESS, reason
            )

        # Step 3: directory name affinity
        matching = [f for f in best_metadata if directory_matches_tags(f)]
        if len(matching) == 1:
            winner = matching[0]
            reason = (
                f"Directory '{winner.file_path.parent.name}' matches artist/album "
                f"({max_bit_rate} kbps, {max_score}/{METADATA_FIELD_COUNT} metadata)"
            )
            return self._resolved(group, candidates, winner, LadderRule.DIRECTORY_AFFINITY, reason)

        logger.info(
            f"Group {group.group_id} needs manual review: {len(best_metadata)} files tied "
            f"({len(matching)} with matching directory)"
        )
        return ResolutionDecision(group_id=group.group_id, needs_manual_review=True)

    def _resolved(
        self,
        group: DuplicateGroup,
        candidates: list[FileRecord],
        winner: FileRecord,
        rule: LadderRule,
        reason: str,
    ) -> ResolutionDecision:
        deletions = [
            FileDeletion(file=f, reason=reason) for f in candidates if f.file_id != winner.file_id
        ]
        logger.debug(
            f"Group {group.group_id}: keep {winner.file_id} ({rule.value}), "
            f"delete {[d.file.file_id for d in deletions]}"
        )
        return ResolutionDecision(
            group_id=group.group_id,
            file_to_keep=winner,
            files_to_delete=deletions,
            deciding_rule=rule,
        )

    def decide_all(self, groups: Iterable[DuplicateGroup]) -> list[ResolutionDecision]:
        return [self.decide(group) for group in groups]

    def preview(self, groups: list[DuplicateGroup]) -> AutoResolutionPreview:
        """
        Plan the auto-resolution of every group without side effects.

        Args:
            groups: Duplicate groups to plan

        Returns:
            AutoResolutionPreview listing every planned deletion and every
            group needing manual review
        """
        groups_by_id = {group.group_id: group for group in groups}
        resolutions = []
        review_groups = []

        for decision in self.decide_all(groups):
            group = groups_by_id[decision.group_id]
            if decision.needs_manual_review:
                review_groups.append(group)
                continue
            if decision.file_to_keep is None:
                continue

            for deletion in decision.files_to_delete:
                resolutions.append(
                    ResolutionItem(
                        group_id=group.group_id,
                        file_to_delete=deletion.file,
                        file_to_keep=decision.file_to_keep,
                        reason=deletion.reason,
                        similarity=self._pair_similarity(
                            group, decision.file_to_keep.file_id, deletion.file.file_id
                        ),
                    )
                )

        kept_ids = {item.file_to_keep.file_id for item in resolutions}
        reclaimable_mb = sum(item.file_to_delete.size_mb for item in resolutions)
        logger.info(
            f"Auto-resolution preview: {len(resolutions)} files to delete, "
            f"{len(kept_ids)} to keep, {len(review_groups)} need review"
            f" ({reclaimable_mb:.1f} MB reclaimable)"
        )
        return AutoResolutionPreview(
            resolutions=resolutions,
            groups_needing_review=review_groups,
            total_files_to_delete=len(resolutions),
            total_files_to_keep=len(kept_ids),
            total_groups_needing_review=len(review_groups),
            reclaimable_mb=reclaimable_mb,
        )

    @staticmethod
    def _pair_similarity(group: DuplicateGroup, keep_id: int, delete_id: int) -> float | None:
        """Similarity between the kept and deleted file when one of them is the reference."""
        if keep_id == group.reference_file_id:
            return group.similarity_of(delete_id)
        if delete_id == group.reference_file_id:
            return group.similarity_of(keep_id)
        return None

    def execute(
        self,
        groups: list[DuplicateGroup],
        decisions: list[ResolutionDecision],
        store: FileStore,
        exclude_file_ids: Iterable[int] = (),
    ) -> AutoResolutionResult:
        """
        Delete the files chosen by the given decisions.

        Args:
            groups: Groups the decisions were made for
            decisions: Decisions from ``decide`` or ``decide_all``
            store: Store performing the deletions
            exclude_file_ids: Files the user chose to keep despite the plan

        Returns:
            AutoResolutionResult with counts; individual deletion failures are
            counted and never abort the batch
        """
        groups_by_id = {group.group_id: group for group in groups}
        excluded = set(exclude_file_ids)
        files_attempted = 0
        files_deleted = 0
        files_kept = 0
        failures = []
        review_groups = []

        for decision in decisions:
            if decision.needs_manual_review:
                if decision.group_id in groups_by_id:
                    review_groups.append(groups_by_id[decision.group_id])
                continue
            if decision.file_to_keep is None:
                continue

            to_delete = []
            for deletion in decision.files_to_delete:
                if deletion.file.file_id in excluded:
                    logger.info(f"Skipping excluded file: {deletion.file.file_path}")
                    continue
                to_delete.append(deletion.file)

            deleted, group_failures = delete_files(store, to_delete)
            files_attempted += len(to_delete)
            files_deleted += deleted
            failures.extend(group_failures)
            files_kept += 1

        result = AutoResolutionResult(
            groups_processed=len(decisions),
            files_attempted=files_attempted,
            files_deleted=files_deleted,
            files_kept=files_kept,
            failures=failures,
            groups_needing_review=review_groups,
        )
        result.summary_text = self.get_auto_selection_summary(result)

        logger.info(
            f"Auto-resolution executed: {files_deleted}/{files_attempted} deleted, "
            f"{files_kept} kept, {len(review_groups)} need review"
        )
        return result

    def keep_file_delete_others(
        self, group: DuplicateGroup, keep_file_id: int, store: FileStore
    ) -> AutoResolutionResult:
        """
        Resolve one group by hand: keep the chosen file and delete the rest.

        Raises:
            InvalidRequestError: If ``keep_file_id`` is not a member of the group
        """
        if keep_file_id not in group.file_ids:
            raise InvalidRequestError(f"File {keep_file_id} is not in group {group.group_id}")

        keeper = next(f for f in group.files if f.file_id == keep_file_id)
        reason = f"Chosen manually over {len(group.files) - 1} other file(s)"
        decision = ResolutionDecision(
            group_id=group.group_id,
            file_to_keep=keeper,
            files_to_delete=[
                FileDeletion(file=f, reason=reason) for f in group.files if f.file_id != keep_file_id
            ],
        )
        return self.execute([group], [decision], store)

    def get_auto_selection_summary(self, result: AutoResolutionResult) -> str:
        """
        Generate a summary string of auto-resolution results.

        Args:
            result: Result from ``execute``

        Returns:
            Human-readable summary string
        """
        review_count = len(result.groups_needing_review)

        if result.files_attempted == 0 and review_count == 0:
            return "No duplicates found to process."

        summary = (
            f"Auto-resolved {result.groups_processed - review_count} groups: "
            f"deleted {result.files_deleted} files, kept {result.files_kept} files."
        )
        if result.failures:
            summary += f" {len(result.failures)} deletions failed."
        if review_count:
            summary += f" {review_count} groups require manual review."
        return summary
