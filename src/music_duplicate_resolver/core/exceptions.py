"""
Exception hierarchy for the music duplicate resolver.

Only SetupError is fatal to a scan session. The other errors are
isolated to the pair or file they concern and are counted in results.
"""


class DuplicateResolverError(Exception):
    """Base exception for all duplicate resolver errors."""
    pass


class SetupError(DuplicateResolverError):
    """Raised when the candidate file list cannot be loaded."""
    pass


class ComparisonError(DuplicateResolverError):
    """Raised when comparing a single pair of files fails."""

    def __init__(self, message: str, file_id_a: int | None = None, file_id_b: int | None = None):
        super().__init__(message)
        self.file_id_a = file_id_a
        self.file_id_b = file_id_b


class DeletionError(DuplicateResolverError):
    """Raised when a single file cannot be deleted."""

    def __init__(self, message: str, file_id: int | None = None):
        super().__init__(message)
        self.file_id = file_id


class InvalidRequestError(DuplicateResolverError):
    """Raised for requests naming an unknown session, group, file or directory pair."""
    pass
