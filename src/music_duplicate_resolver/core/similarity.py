"""Similarity analysis deciding whether two music files are the same recording."""

import logging
import math
import re

from rapidfuzz.distance import Levenshtein

from .exceptions import ComparisonError
from .fingerprint import ChromaprintComparator
from .models import ApplicationConfig, FileRecord, MatchMethod, PairComparison, PairVerdict
from .store import FingerprintComparator

logger = logging.getLogger(__name__)

PUNCTUATION_PATTERN = re.compile(r"[\W_]+")
ARTIST_PREFIX_PATTERN = re.compile(r"^(the|a|an)\s+", re.IGNORECASE)
FEATURING_PATTERN = re.compile(r"\s+(feat\.?|ft\.?|featuring)\s+.*$", re.IGNORECASE)


class MetadataMatcher:
    """Fuzzy comparison of title, artist and duration tags."""

    def __init__(self, config: ApplicationConfig | None = None):
        """
        Initialize the matcher.

        Args:
            config: Thresholds and normalization options, defaults to ApplicationConfig()
        """
        self.config = config or ApplicationConfig()

    def normalize(self, value: str | None, is_artist: bool = False) -> str:
        """
        Normalize a tag value for comparison.

        Args:
            value: Raw tag value
            is_artist: Apply artist-specific rules (prefixes, featuring credits)

        Returns:
            Lowercase string with punctuation and whitespace collapsed to single spaces

        Example:
            >>> MetadataMatcher().normalize("Come  Together!")
            'come together'
        """
        if value is None:
            return ""

        normalized = value.strip().lower()
        if is_artist:
            if self.config.ignore_featuring:
                normalized = FEATURING_PATTERN.sub("", normalized)
            if self.config.ignore_artist_prefixes:
                normalized = ARTIST_PREFIX_PATTERN.sub("", normalized)

        return PUNCTUATION_PATTERN.sub(" ", normalized).strip()

    def field_similarity(
        self, value1: str | None, value2: str | None, is_artist: bool = False
    ) -> float | None:
        """
        Calculate edit-distance similarity between two tag values.

        Returns:
            Similarity percentage between 0.0 and 100.0, or None if either value is missing
        """
        normalized1 = self.normalize(value1, is_artist)
        normalized2 = self.normalize(value2, is_artist)
        if not normalized1 or not normalized2:
            return None
        if normalized1 == normalized2:
            return 100.0
        return Levenshtein.normalized_similarity(normalized1, normalized2) * 100.0

    def duration_difference(self, file1: FileRecord, file2: FileRecord) -> float | None:
        if file1.duration_seconds is None or file2.duration_seconds is None:
            return None
        return abs(file1.duration_seconds - file2.duration_seconds)

    def explain(self, file1: FileRecord, file2: FileRecord) -> PairComparison:
        """
        Compare two files by metadata and report every sub-check.

        Args:
            file1: First file to compare
            file2: Second file to compare

        Returns:
            PairComparison whose verdict is a duplicate only if title, artist
            and duration checks all pass. Missing values fail their check.
        """
        title_sim = self.field_similarity(file1.title, file2.title)
        artist_sim = self.field_similarity(file1.artist, file2.artist, is_artist=True)
        duration_diff = self.duration_difference(file1, file2)

        title_matches = title_sim is not None and title_sim >= self.config.title_threshold
        artist_matches = artist_sim is not None and artist_sim >= self.config.artist_threshold
        duration_matches = (
            duration_diff is not None and duration_diff <= self.config.duration_tolerance_seconds
        )

        score = None
        if title_sim is not None and artist_sim is not None:
            score = (title_sim + artist_sim) / 200.0

        verdict = PairVerdict(
            file_id_a=file1.file_id,
            file_id_b=file2.file_id,
            is_duplicate=title_matches and artist_matches and duration_matches,
            similarity=score,
            method=MatchMethod.METADATA,
        )
        return PairComparison(
            verdict=verdict,
            title_similarity=title_sim,
            artist_similarity=artist_sim,
            duration_difference=duration_diff,
            title_matches=title_matches,
            artist_matches=artist_matches,
            duration_matches=duration_matches,
        )

    def match(self, file1: FileRecord, file2: FileRecord) -> PairVerdict:
        return self.explain(file1, file2).verdict


class SimilarityOracle:
    """Produces a single duplicate verdict per file pair."""

    def __init__(
        self,
        config: ApplicationConfig | None = None,
        fingerprint_comparator: FingerprintComparator | None = None,
    ):
        """
        Initialize the oracle.

        Args:
            config: Application configuration, defaults to ApplicationConfig()
            fingerprint_comparator: External fingerprint tool, defaults to ChromaprintComparator
        """
        self.config = config or ApplicationConfig()
        self.fingerprint_comparator = fingerprint_comparator or ChromaprintComparator()
        self.metadata_matcher = MetadataMatcher(self.config)

    def fingerprint_similarity(self, file1: FileRecord, file2: FileRecord) -> float | None:
        """
        Ask the fingerprint comparator for a score.

        Returns:
            Similarity clamped to [0, 1], or None if either file lacks a fingerprint
            or the comparator is unavailable for this pair. Failing comparators
            and non-numeric or non-finite scores count as unavailable.
        """
        if not (file1.has_fingerprint and file2.has_fingerprint):
            return None

        try:
            similarity = self.fingerprint_comparator.compare(file1.fingerprint, file2.fingerprint)
            if similarity is None:
                logger.debug(
                    f"Fingerprint comparison unavailable for {file1.file_id} and {file2.file_id}"
                )
                return None
            value = float(similarity)
        except Exception as e:
            logger.warning(
                f"Fingerprint comparison failed for {file1.file_id} and {file2.file_id}, "
                f"falling back to metadata: {e}"
            )
            return None

        if not math.isfinite(value):
            logger.warning(
                f"Fingerprint comparator returned {value} for {file1.file_id} and "
                f"{file2.file_id}, falling back to metadata"
            )
            return None
        return min(max(value, 0.0), 1.0)

    def compare(self, file1: FileRecord, file2: FileRecord) -> PairVerdict:
        """
        Decide whether two files are the same recording.

        Args:
            file1: First file to compare
            file2: Second file to compare

        Returns:
            PairVerdict from the fingerprint path when both fingerprints are
            comparable, otherwise from the metadata path. A failing metadata
            comparison yields a non-duplicate verdict.
        """
        fp_similarity = self.fingerprint_similarity(file1, file2)
        if fp_similarity is not None:
            return PairVerdict(
                file_id_a=file1.file_id,
                file_id_b=file2.file_id,
                is_duplicate=fp_similarity >= self.config.fingerprint_threshold,
                similarity=fp_similarity,
                method=MatchMethod.FINGERPRINT,
            )

        try:
            return self.metadata_matcher.match(file1, file2)
        except Exception as e:
            return self._failed_comparison(file1, file2, e).verdict

    def _failed_comparison(
        self, file1: FileRecord, file2: FileRecord, cause: Exception
    ) -> PairComparison:
        error = ComparisonError(
            f"Metadata comparison failed for {file1.file_id} and {file2.file_id}: {cause}",
            file1.file_id,
            file2.file_id,
        )
        logger.warning(str(error))
        verdict = PairVerdict(
            file_id_a=file1.file_id,
            file_id_b=file2.file_id,
            is_duplicate=False,
            similarity=None,
            method=MatchMethod.METADATA,
        )
        return PairComparison(verdict=verdict)

    def explain(self, file1: FileRecord, file2: FileRecord) -> PairComparison:
        """Return the full comparison breakdown for a pair."""
        try:
            comparison = self.metadata_matcher.explain(file1, file2)
        except Exception as e:
            comparison = self._failed_comparison(file1, file2, e)

        fp_similarity = self.fingerprint_similarity(file1, file2)
        if fp_similarity is None:
            return comparison

        verdict = PairVerdict(
            file_id_a=file1.file_id,
            file_id_b=file2.file_id,
            is_duplicate=fp_similarity >= self.config.fingerprint_threshold,
            similarity=fp_similarity,
            method=MatchMethod.FINGERPRINT,
        )
        return comparison.model_copy(
            update={"verdict": verdict, "fingerprint_similarity": fp_similarity}
        )
