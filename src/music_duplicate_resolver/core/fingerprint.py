"""Bit-level comparison of raw Chromaprint fingerprints."""

import logging

logger = logging.getLogger(__name__)

# Fewer segments than this cannot be compared reliably
MIN_FINGERPRINT_LENGTH = 10


def parse_fingerprint(fingerprint: str | None) -> list[int]:
    """
    Parse a raw fingerprint string into 32-bit integer segments.

    Args:
        fingerprint: Comma-separated integers as written by ``fpcalc -raw``

    Returns:
        List of unsigned 32-bit segments. Unparseable segments become 0.
    """
    if not fingerprint:
        return []

    segments = []
    for part in fingerprint.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            segments.append(int(part) & 0xFFFFFFFF)
        except ValueError:
            segments.append(0)
    return segments


def segment_similarity(fp1: list[int], fp2: list[int]) -> float | None:
    """
    Average per-segment bit agreement over the aligned prefix of two fingerprints.

    Returns:
        Similarity between 0.0 and 1.0, or None if either fingerprint is too short
    """
    length = min(len(fp1), len(fp2))
    if length < MIN_FINGERPRINT_LENGTH:
        return None

    total = 0.0
    for a, b in zip(fp1[:length], fp2[:length]):
        total += 1.0 - bin(a ^ b).count("1") / 32.0
    return total / length


class ChromaprintComparator:
    """Default fingerprint comparator working on raw Chromaprint output."""

    def __init__(self, cache_size: int = 4096):
        self.cache_size = cache_size
        self._parsed: dict[str, list[int]] = {}

    def _parse(self, fingerprint: str) -> list[int]:
        cached = self._parsed.get(fingerprint)
        if cached is not None:
            return cached
        segments = parse_fingerprint(fingerprint)
        if len(self._parsed) < self.cache_size:
            self._parsed[fingerprint] = segments
        return segments

    def compare(self, fingerprint_a: str, fingerprint_b: str) -> float | None:
        """
        Compare two raw fingerprints.

        Args:
            fingerprint_a: First raw fingerprint
            fingerprint_b: Second raw fingerprint

        Returns:
            Similarity between 0.0 and 1.0, or None when the comparison is unavailable
        """
        if not fingerprint_a or not fingerprint_b:
            return None

        similarity = segment_similarity(self._parse(fingerprint_a), self._parse(fingerprint_b))
        if similarity is None:
            logger.debug("Fingerprint too short for comparison")
        return similarity
