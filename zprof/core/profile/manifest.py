from __future__ import annotations

import os
import tomllib
from datetime import datetime, timezone
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from zprof.core.errors import InvalidError, ManifestParseError, NotFoundError, UnsupportedFrameworkError, from_os_error

MANIFEST_FILE_NAME = "profile.toml"

# Lookup table for the frameworks a profile may declare. Loaded once; never mutated.
SUPPORTED_FRAMEWORKS = ("oh-my-zsh", "zimfw", "prezto", "zinit", "zap")

# Directory names under which each framework vendors its installation inside a profile.
FRAMEWORK_INSTALL_DIRS = (".oh-my-zsh", ".zimfw", ".zim", ".zprezto", ".zinit", ".zap")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProfileSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    framework: str
    theme: str = ""
    created: datetime = Field(default_factory=_now)
    modified: datetime = Field(default_factory=_now)


class PluginsSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: List[str] = Field(default_factory=list)


class ProfileManifest(BaseModel):
    # Newer manifests may carry sections (prompt engine, fonts) this subsystem does not interpret.
    model_config = ConfigDict(extra="ignore")

    profile: ProfileSection
    plugins: PluginsSection = Field(default_factory=PluginsSection)
    env: Dict[str, str] = Field(default_factory=dict)


def parse_manifest(text: str, *, source: str = MANIFEST_FILE_NAME) -> ProfileManifest:
    """
    Parse and validate manifest text. Malformed TOML or a schema violation is a
    ManifestParseError; a well-formed manifest naming a framework outside
    SUPPORTED_FRAMEWORKS is an UnsupportedFrameworkError.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ManifestParseError(f"Failed to parse manifest TOML in {source}", path=source, error=str(e)) from e
    try:
        manifest = ProfileManifest.model_validate(data)
    except PydanticValidationError as e:
        raise ManifestParseError(f"Invalid manifest schema in {source}", path=source, error=str(e)) from e
    framework = manifest.profile.framework
    if framework not in SUPPORTED_FRAMEWORKS:
        raise UnsupportedFrameworkError(
            f"Unsupported framework: {framework}. Supported frameworks: {', '.join(SUPPORTED_FRAMEWORKS)}",
            path=source,
            framework=framework,
        )
    return manifest


def load_manifest_from_path(path: str) -> ProfileManifest:
    if not os.path.isfile(path):
        raise NotFoundError(f"Manifest not found at: {path}", path=path)
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except OSError as e:
        raise from_os_error(e, path=path, phase="check", action="read manifest") from e
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ManifestParseError(f"Manifest is not valid UTF-8: {path}", path=path) from e
    return parse_manifest(text, source=path)


def load_and_validate(profile_dir: str) -> ProfileManifest:
    path = os.path.join(profile_dir, MANIFEST_FILE_NAME)
    if not os.path.isfile(path):
        raise InvalidError(f"{MANIFEST_FILE_NAME} not found in profile directory {profile_dir}", code="manifest_missing", path=path)
    return load_manifest_from_path(path)
