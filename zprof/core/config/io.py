from __future__ import annotations

import os
import tempfile
import tomllib
from dataclasses import dataclass
from typing import Any, Dict, Optional

import tomli_w


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None


def read_toml_file(path: str) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(ok=False, data={}, error="missing")
    try:
        with open(path, "rb") as f:
            obj = tomllib.load(f)
        return ReadResult(ok=True, data=obj)
    except tomllib.TOMLDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_toml:{e}")
    except UnicodeDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_toml:{e}")
    except OSError as e:
        return ReadResult(ok=False, data={}, error=str(e))


def dumps_toml(data: Dict[str, Any]) -> str:
    return tomli_w.dumps({k: v for k, v in data.items() if v is not None})


def atomic_write_toml(path: str, data: Dict[str, Any], *, mode: Optional[int] = None) -> None:
    """
    Full rewrite through a sibling temp file and os.replace; readers see either
    the previous file or the new one.
    """
    parent = os.path.dirname(path) or "."
    os.makedirs(parent, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".toml", dir=parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(dumps_toml(data))
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
    finally:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError:
            pass
