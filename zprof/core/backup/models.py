from __future__ import annotations

import posixpath
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FileRecord(BaseModel):
    """One tracked file. Built by integrity.record(); never edited afterwards."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    size: int = Field(ge=0)
    checksum: str
    permissions: int
    is_symlink: bool = False
    symlink_target: Optional[str] = None

    @field_validator("path")
    @classmethod
    def _relative_only(cls, v: str) -> str:
        v = str(v).replace("\\", "/")
        if not v or v.startswith("/") or posixpath.isabs(v):
            raise ValueError("path must be relative")
        if any(part == ".." for part in v.split("/")):
            raise ValueError("path must not contain '..'")
        return v


class BackupMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    zsh_version: str = "unknown"
    os: str = ""
    zprof_version: str = ""


class DetectedFramework(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    path: str
    config_files: List[str] = Field(default_factory=list)


class BackupManifest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    metadata: BackupMetadata = Field(default_factory=BackupMetadata)
    detected_framework: Optional[DetectedFramework] = None
    files: List[FileRecord] = Field(default_factory=list)

    def add_file(self, record: FileRecord) -> None:
        self.files.append(record)

    def set_framework(self, framework: DetectedFramework) -> None:
        self.detected_framework = framework

    def find(self, path: str) -> Optional[FileRecord]:
        for f in self.files:
            if f.path == path:
                return f
        return None
