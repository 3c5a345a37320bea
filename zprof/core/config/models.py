from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class Config(BaseModel):
    model_config = ConfigDict(extra="forbid")

    active_profile: Optional[str] = None
    default_framework: Optional[str] = None
