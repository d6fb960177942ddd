"""
Append-only audit trail for a payout run.

Every event becomes one JSON line:
  - time (epoch milliseconds)
  - level ("info" or "error")
  - msg (what happened)
  - details (optional context: balances, ids, provider errors)

The file outlives the in-memory run context and is written by every stage,
whether the stage succeeds or fails. It is closed exactly once, on every exit
path of the run.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

from payout_runner.models.enums import LogLevel

logger = logging.getLogger("payout_runner.audit")


def _default(value: Any) -> str:
    return str(value)


class AuditLog:
    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._stream = self.path.open("a", encoding="utf-8")

    @property
    def closed(self) -> bool:
        return self._stream.closed

    def info(self, msg: str, details: Optional[dict[str, Any]] = None) -> None:
        self._append(LogLevel.INFO, msg, details)

    def error(self, msg: str, details: Optional[dict[str, Any]] = None) -> None:
        self._append(LogLevel.ERROR, msg, details)

    def close(self, msg: str = "all done") -> None:
        """Write a final entry and close the stream. Safe to call twice."""
        if self.closed:
            return
        self._append(LogLevel.INFO, msg, None)
        self._stream.close()

    def _append(self, level: LogLevel, msg: str, details: Optional[dict[str, Any]]) -> None:
        if self.closed:
            raise ValueError(f"audit log already closed: {self.path}")

        entry: dict[str, Any] = {"time": int(time.time() * 1000), "level": level.value, "msg": msg}
        if details:
            entry["details"] = details
        line = json.dumps(entry, default=_default)
        self._stream.write(line + "\n")
        self._stream.flush()

        logger.log(
            logging.ERROR if level is LogLevel.ERROR else logging.INFO,
            "AUDIT | %s | %s%s",
            level.value,
            msg,
            f" | {json.dumps(details, default=_default)[:200]}" if details else "",
        )


def read_entries(path: Path) -> list[dict[str, Any]]:
    """Load every entry of an audit file, oldest first."""
    with Path(path).open(encoding="utf-8") as fh:
        return [json.loads(line) for line in fh if line.strip()]
