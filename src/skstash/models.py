"""
Stash data models -- catalog rows, configuration, and upload outcomes.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_CHUNK_SIZE = 64 * 1024


class CatalogEntry(BaseModel):
    """One catalog row per stored object.

    ``hash`` is the sole identity of the content. ``origin``, ``path``
    and ``file`` are provenance only.
    """

    hash: str
    origin: str
    path: str
    file: str
    size: str
    date: Optional[datetime] = None


class StashConfig(BaseModel):
    """Configuration consumed by the stash core.

    Built once at process start and passed into ``Stash`` explicitly.
    """

    host: Optional[str] = None
    remote_root: str
    recipient: str
    origin: Optional[str] = None
    identity_algorithm: str = "sha256"
    remote_python: str = "python3"
    ssh_options: list[str] = Field(default_factory=list)
    gpg_binary: str = "gpg"
    gpg_home: Optional[Path] = None
    compress_level: int = Field(default=6, ge=1, le=9)
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)

    @field_validator("remote_root")
    @classmethod
    def _root_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("remote_root must be an absolute path")
        return value.rstrip("/") or "/"

    @field_validator("identity_algorithm")
    @classmethod
    def _known_algorithm(cls, value: str) -> str:
        if value not in hashlib.algorithms_available or value.startswith("shake_"):
            raise ValueError(f"Unknown hash algorithm: {value}")
        return value


class Outcome(str, Enum):
    """How one file of an upload batch ended."""

    UPLOADED = "uploaded"
    SKIPPED = "skipped"
    MISSING = "missing"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"


class UploadResult(BaseModel):
    """Result of uploading a single path."""

    path: str
    outcome: Outcome
    hash: Optional[str] = None
    bytes_read: int = 0
    bytes_sent: int = 0
    message: str = ""


class BatchReport(BaseModel):
    """Aggregate result of an upload batch."""

    results: list[UploadResult] = Field(default_factory=list)
    elapsed: float = 0.0
    aborted: bool = False

    def count(self, outcome: Outcome) -> int:
        """Number of results with the given outcome."""
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def total_bytes(self) -> int:
        """Plaintext bytes of every uploaded file."""
        return sum(r.bytes_read for r in self.results if r.outcome == Outcome.UPLOADED)

    @property
    def failed(self) -> int:
        return self.count(Outcome.FAILED)

    @property
    def ok(self) -> bool:
        """True when nothing failed and the batch ran to the end."""
        return not self.aborted and self.failed == 0
