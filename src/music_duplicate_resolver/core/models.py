"""Pydantic models for music duplicate resolver."""

import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MatchMethod(str, Enum):
    """How a pair verdict was reached."""

    FINGERPRINT = "fingerprint"
    METADATA = "metadata"


class ScanStage(str, Enum):
    """Lifecycle stages of a duplicate scan session."""

    STARTING = "starting"
    LOADING = "loading"
    SCANNING = "scanning"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStage.COMPLETED, ScanStage.CANCELLED, ScanStage.ERROR)


class LadderRule(str, Enum):
    """Tie-break rules applied when choosing which file to keep."""

    BIT_RATE = "bit_rate"
    METADATA_COMPLETENESS = "metadata_completeness"
    DIRECTORY_AFFINITY = "directory_affinity"


class FileRecord(BaseModel):
    """Represents a music file as stored in the library index."""

    model_config = ConfigDict(frozen=True)

    file_id: int = Field(..., description="Identifier in the library index")
    file_path: Path = Field(..., description="Full path to the file")
    title: str | None = Field(None, description="Track title tag")
    artist: str | None = Field(None, description="Artist tag")
    album: str | None = Field(None, description="Album tag")
    genre: str | None = Field(None, description="Genre tag")
    track_number: int | None = Field(None, ge=0, description="Track number tag")
    year: int | None = Field(None, description="Release year tag")
    duration_seconds: float | None = Field(None, ge=0, description="Duration in seconds")
    bit_rate: int | None = Field(None, ge=0, description="Bit rate in kbps")
    sample_rate: int | None = Field(None, ge=0, description="Sample rate in Hz")
    size_bytes: int | None = Field(None, ge=0, description="File size in bytes")
    fingerprint: str | None = Field(None, description="Raw acoustic fingerprint")

    @field_validator("file_path")
    @classmethod
    def validate_file_path(cls, v: Path) -> Path:
        """Ensure path is absolute."""
        if v.is_absolute():
            return v
        return v.resolve()

    @property
    def filename(self) -> str:
        """Just the filename."""
        return self.file_path.name

    @property
    def directory(self) -> str:
        """Containing directory as a string."""
        return str(self.file_path.parent)

    @property
    def has_fingerprint(self) -> bool:
        return bool(self.fingerprint and self.fingerprint.strip())

    @property
    def metadata_completeness(self) -> int:
        """Number of populated fields among title, artist, album, genre, track and year."""
        text_fields = [self.title, self.artist, self.album, self.genre]
        score = sum(1 for value in text_fields if value is not None and value.strip())
        if self.track_number is not None:
            score += 1
        if self.year is not None:
            score += 1
        return score

    @property
    def size_mb(self) -> float:
        """File size in megabytes."""
        return (self.size_bytes or 0) / (1024 * 1024)

    def __str__(self) -> str:
        label = " - ".join(part for part in (self.artist, self.title) if part)
        return f"{self.filename} [{label or 'untagged'}] ({self.bit_rate or 0} kbps)"


METADATA_FIELD_COUNT = 6


class PairVerdict(BaseModel):
    """Outcome of comparing one unordered pair of files."""

    model_config = ConfigDict(frozen=True)

    file_id_a: int = Field(..., description="Lower file id of the pair")
    file_id_b: int = Field(..., description="Higher file id of the pair")
    is_duplicate: bool = Field(..., description="Whether the pair is the same recording")
    similarity: float | None = Field(None, ge=0.0, le=1.0, description="Similarity score")
    method: MatchMethod = Field(..., description="Comparison path that produced the verdict")

    @model_validator(mode="before")
    @classmethod
    def order_file_ids(cls, data: Any) -> Any:
        """Store the pair with the lower id first."""
        if isinstance(data, dict):
            a, b = data.get("file_id_a"), data.get("file_id_b")
            if a is not None and b is not None:
                if a == b:
                    raise ValueError("A verdict needs two distinct files")
                if a > b:
                    data = {**data, "file_id_a": b, "file_id_b": a}
        return data

    @property
    def file_ids(self) -> tuple[int, int]:
        return (self.file_id_a, self.file_id_b)

    def other(self, file_id: int) -> int:
        """Return the id paired with ``file_id``."""
        return self.file_id_b if file_id == self.file_id_a else self.file_id_a


class PairComparison(BaseModel):
    """Field-by-field breakdown of a single pair comparison."""

    verdict: PairVerdict
    title_similarity: float | None = Field(None, description="Title similarity (0-100)")
    artist_similarity: float | None = Field(None, description="Artist similarity (0-100)")
    duration_difference: float | None = Field(None, description="Absolute duration delta in seconds")
    title_matches: bool = False
    artist_matches: bool = False
    duration_matches: bool = False
    fingerprint_similarity: float | None = Field(None, description="Fingerprint similarity (0-1)")


class GroupMember(BaseModel):
    """A file inside a duplicate group with its similarity to the reference."""

    file: FileRecord
    similarity: float | None = Field(None, ge=0.0, le=1.0)


class DuplicateGroup(BaseModel):
    """Represents a group of files connected by positive duplicate verdicts."""

    group_id: int = Field(..., ge=1, description="Group number within the scan")
    reference_file_id: int = Field(..., description="Canonical member of the group")
    members: list[GroupMember] = Field(default_factory=list, description="Files in this group")

    @property
    def file_count(self) -> int:
        """Number of files in this group."""
        return len(self.members)

    @property
    def files(self) -> list[FileRecord]:
        return [member.file for member in self.members]

    @property
    def file_ids(self) -> list[int]:
        return [member.file.file_id for member in self.members]

    @property
    def reference(self) -> FileRecord:
        """The reference member's file record."""
        for member in self.members:
            if member.file.file_id == self.reference_file_id:
                return member.file
        raise ValueError(f"Reference file {self.reference_file_id} is not a member")

    @property
    def total_size_mb(self) -> float:
        """Total size of all files in MB."""
        return sum(member.file.size_mb for member in self.members)

    def similarity_of(self, file_id: int) -> float | None:
        for member in self.members:
            if member.file.file_id == file_id:
                return member.similarity
        return None

    def __str__(self) -> str:
        ref = self.reference
        label = " - ".join(part for part in (ref.artist, ref.title) if part) or ref.filename
        return f"Duplicate group {self.group_id} '{label}' ({self.file_count} files)"


class FileDeletion(BaseModel):
    """A file selected for deletion together with the reason."""

    file: FileRecord
    reason: str


class ResolutionDecision(BaseModel):
    """Outcome of applying the tie-break ladder to one group."""

    group_id: int
    file_to_keep: FileRecord | None = None
    files_to_delete: list[FileDeletion] = Field(default_factory=list)
    needs_manual_review: bool = False
    deciding_rule: LadderRule | None = None


class ResolutionItem(BaseModel):
    """One planned deletion in an auto-resolution preview."""

    group_id: int
    file_to_delete: FileRecord
    file_to_keep: FileRecord
    reason: str
    similarity: float | None = Field(None, description="Similarity to the reference file")


class AutoResolutionPreview(BaseModel):
    """Side-effect free plan for auto-resolving all groups."""

    resolutions: list[ResolutionItem] = Field(default_factory=list)
    groups_needing_review: list[DuplicateGroup] = Field(default_factory=list)
    total_files_to_delete: int = 0
    total_files_to_keep: int = 0
    total_groups_needing_review: int = 0
    reclaimable_mb: float = Field(0.0, ge=0, description="Size of the files planned for deletion")


class DeletionFailure(BaseModel):
    """A deletion that was attempted but did not succeed."""

    file_id: int
    file_path: Path | None = None
    error: str


class AutoResolutionResult(BaseModel):
    """Counts reported after executing an auto-resolution."""

    groups_processed: int = 0
    files_attempted: int = 0
    files_deleted: int = 0
    files_kept: int = 0
    failures: list[DeletionFailure] = Field(default_factory=list)
    groups_needing_review: list[DuplicateGroup] = Field(default_factory=list)
    summary_text: str = ""

    @property
    def deletion_failures(self) -> int:
        return len(self.failures)


class DuplicatePair(BaseModel):
    """A positive verdict with the two file records attached."""

    file_a: FileRecord
    file_b: FileRecord
    similarity: float | None = None
    method: MatchMethod


class DirectoryConflict(BaseModel):
    """Two directories linked by one or more cross-directory duplicate pairs."""

    directory_a: str
    directory_b: str
    file_count_a: int = Field(..., ge=0)
    file_count_b: int = Field(..., ge=0)
    pairs: list[DuplicatePair] = Field(default_factory=list)

    @property
    def total_duplicate_pairs(self) -> int:
        return len(self.pairs)

    def involves(self, directory: str) -> bool:
        return directory in (self.directory_a, self.directory_b)

    def __str__(self) -> str:
        return (
            f"{self.directory_a} ({self.file_count_a} files) <-> "
            f"{self.directory_b} ({self.file_count_b} files): {self.total_duplicate_pairs} pairs"
        )


class DirectoryResolutionPreview(BaseModel):
    """Files that would be removed when clearing one side of a directory conflict."""

    directory_to_keep: str
    directory_to_delete: str
    files_to_delete: list[FileRecord] = Field(default_factory=list)
    files_to_keep: list[FileRecord] = Field(default_factory=list)
    total_files_to_delete: int = 0


class DirectoryResolutionResult(BaseModel):
    """Counts reported after clearing one side of a directory conflict."""

    files_deleted: int = 0
    files_attempted: int = 0
    directory_kept: str
    directory_cleared: str
    failures: list[DeletionFailure] = Field(default_factory=list)


class ScanStatus(BaseModel):
    """Immutable snapshot of a scan session's progress."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    stage: ScanStage = ScanStage.STARTING
    total_files: int = Field(0, ge=0)
    files_processed: int = Field(0, ge=0)
    total_comparisons: int = Field(0, ge=0)
    comparisons_completed: int = Field(0, ge=0)
    groups_found: int = Field(0, ge=0)
    percent_complete: int = Field(0, ge=0, le=100)
    error_message: str | None = None
    cancel_requested: bool = False
    started_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal

    @property
    def is_complete(self) -> bool:
        return self.stage == ScanStage.COMPLETED

    def __str__(self) -> str:
        return (
            f"Session {self.session_id}: {self.stage.value} "
            f"{self.comparisons_completed}/{self.total_comparisons} comparisons "
            f"({self.percent_complete}%), {self.groups_found} groups"
        )


class ApplicationConfig(BaseModel):
    """Configuration settings for the application."""

    fingerprint_threshold: float = Field(
        default=0.90, ge=0.0, le=1.0, description="Minimum fingerprint similarity for a duplicate"
    )
    title_threshold: float = Field(
        default=85.0, ge=0.0, le=100.0, description="Minimum title similarity percentage"
    )
    artist_threshold: float = Field(
        default=85.0, ge=0.0, le=100.0, description="Minimum artist similarity percentage"
    )
    duration_tolerance_seconds: float = Field(
        default=2.0, ge=0.0, description="Maximum duration difference in seconds"
    )
    ignore_artist_prefixes: bool = Field(
        default=True, description="Ignore leading 'The', 'A', 'An' in artist names"
    )
    ignore_featuring: bool = Field(
        default=False, description="Ignore trailing 'feat.' credits in artist names"
    )
    progress_interval: int = Field(
        default=100, ge=1, description="Comparisons between progress callback invocations"
    )
    enable_logging: bool = Field(default=True, description="Enable application logging")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure the level is one the logging module knows."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_json_file(cls, path: Path) -> "ApplicationConfig":
        """Load configuration overrides from a JSON file."""
        with open(path, encoding="utf-8") as handle:
            data = json.load(handle)
        return cls.model_validate(data)
