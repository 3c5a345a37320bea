from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class OpsLogger:
    """
    Append-only JSONL journal of safe-mutation phases (check/backup/operate/verify).

    One line per phase outcome, fsynced so an interrupted run still leaves a
    readable trail of what was backed up before the process died.
    """

    path: str = os.path.join("logs", "ops.jsonl")

    def log(self, *, op_id: str, event: str, outcome: str, details: Optional[Dict[str, Any]] = None) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "op_id": op_id,
            "event": event,
            "outcome": outcome,
            "details": {k: v if isinstance(v, (int, float, bool)) or v is None else str(v) for k, v in (details or {}).items()},
        }
        line = json.dumps(payload, ensure_ascii=False)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            try:
                f.flush()
                os.fsync(f.fileno())
            except OSError:
                pass

    def read(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        out: List[Dict[str, Any]] = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    out.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        return out
