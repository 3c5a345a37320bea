from __future__ import annotations

from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from zprof.core.config.io import atomic_write_toml, read_toml_file
from zprof.core.config.models import Config
from zprof.core.errors import InvalidError, from_os_error
from zprof.core.paths import ZprofPaths


class ConfigStore:
    """
    Active-profile pointer persisted in config.toml.

    There is deliberately no in-memory copy: load() re-parses the file on every
    call and save() rewrites it completely.
    """

    def __init__(self, *, paths: ZprofPaths, logger=None):
        self.paths = paths
        self.logger = logger

    @property
    def path(self) -> str:
        return self.paths.config_file

    def load(self) -> Config:
        rr = read_toml_file(self.path)
        if not rr.ok:
            if rr.error == "missing":
                return Config()
            raise InvalidError(f"Failed to parse config file at {self.path}", code="config_invalid", path=self.path, error=rr.error)
        try:
            return Config.model_validate(rr.data)
        except PydanticValidationError as e:
            raise InvalidError(f"Invalid config file at {self.path}", code="config_invalid", path=self.path, error=str(e)) from e

    def save(self, cfg: Config) -> None:
        try:
            atomic_write_toml(self.path, cfg.model_dump(exclude_none=True))
        except OSError as e:
            raise from_os_error(e, path=self.path, phase="operate", action="write config") from e
        if self.logger:
            self.logger.info(f"Config written: active_profile={cfg.active_profile!r}")

    def active_profile(self) -> Optional[str]:
        return self.load().active_profile

    def set_active_profile(self, name: Optional[str]) -> Config:
        cfg = self.load()
        cfg = cfg.model_copy(update={"active_profile": name})
        self.save(cfg)
        return cfg

    def set_default_framework(self, framework: Optional[str]) -> Config:
        cfg = self.load().model_copy(update={"default_framework": framework})
        self.save(cfg)
        return cfg
