"""Core functionality for music duplicate resolver."""

from .auto_selector import AutoSelector
from .directory_conflicts import DirectoryConflictAggregator
from .exceptions import (
    ComparisonError,
    DeletionError,
    DuplicateResolverError,
    InvalidRequestError,
    SetupError,
)
from .fingerprint import ChromaprintComparator
from .grouper import DuplicateGrouper, UnionFind
from .models import (
    ApplicationConfig,
    AutoResolutionPreview,
    AutoResolutionResult,
    DirectoryConflict,
    DirectoryResolutionPreview,
    DirectoryResolutionResult,
    DuplicateGroup,
    FileRecord,
    MatchMethod,
    PairComparison,
    PairVerdict,
    ResolutionDecision,
    ScanStage,
    ScanStatus,
)
from .scanner import PairwiseScanner
from .service import DuplicateService
from .sessions import ScanSession, ScanSessionManager
from .similarity import MetadataMatcher, SimilarityOracle
from .store import FileStore, FingerprintComparator, InMemoryFileStore, JsonCatalogStore

__all__ = [
    "ApplicationConfig",
    "AutoResolutionPreview",
    "AutoResolutionResult",
    "AutoSelector",
    "ChromaprintComparator",
    "ComparisonError",
    "DeletionError",
    "DirectoryConflict",
    "DirectoryConflictAggregator",
    "DirectoryResolutionPreview",
    "DirectoryResolutionResult",
    "DuplicateGroup",
    "DuplicateGrouper",
    "DuplicateResolverError",
    "DuplicateService",
    "FileRecord",
    "FileStore",
    "FingerprintComparator",
    "InMemoryFileStore",
    "InvalidRequestError",
    "JsonCatalogStore",
    "MatchMethod",
    "MetadataMatcher",
    "PairComparison",
    "PairVerdict",
    "PairwiseScanner",
    "ResolutionDecision",
    "ScanSession",
    "ScanSessionManager",
    "ScanStage",
    "ScanStatus",
    "SetupError",
    "SimilarityOracle",
    "UnionFind",
]
