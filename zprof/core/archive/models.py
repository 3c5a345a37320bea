from __future__ import annotations

import getpass
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

METADATA_FILE_NAME = "metadata.json"
SOURCE_FILE_NAME = ".zprof-source"
ARCHIVE_EXTENSION = ".zprof"


def _exporter_identity() -> str:
    try:
        return getpass.getuser() or "unknown"
    except (KeyError, OSError):
        return "unknown"


class ArchiveMetadata(BaseModel):
    """metadata.json at the root of every .zprof archive."""

    model_config = ConfigDict(extra="forbid")

    profile_name: str
    framework: str
    export_date: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    zprof_version: str
    framework_version: Optional[str] = None
    exported_by: str = Field(default_factory=_exporter_identity)


class SourceInfo(BaseModel):
    """Provenance of an imported profile, written to .zprof-source inside it."""

    model_config = ConfigDict(extra="forbid")

    source_archive: Optional[str] = None
    source_url: Optional[str] = None
    commit_hash: Optional[str] = None
    imported_date: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    exported_by: Optional[str] = None


@dataclass(frozen=True)
class ExportResult:
    archive_path: str
    size_bytes: int
    entry_count: int
