"""PID file persistence."""

from __future__ import annotations

import os
from pathlib import Path


def write_pidfile(path: Path, pid: int | None = None) -> Path:
    """Write ``pid`` (default: current pid) to ``path``, creating parents."""

    resolved = Path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    resolved.write_text(f"{pid if pid is not None else os.getpid()}\n", "utf-8")
    return resolved


def read_pidfile(path: Path) -> int | None:
    try:
        raw = Path(path).read_text("utf-8").strip()
    except FileNotFoundError:
        return None
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid PID file content in {path}: {raw!r}") from error


def remove_pidfile(path: Path, *, pid: int | None = None) -> bool:
    """Delete ``path`` if it still holds ``pid`` (any pid when omitted)."""

    resolved = Path(path)
    if pid is not None and read_pidfile(resolved) != pid:
        return False
    try:
        resolved.unlink()
    except FileNotFoundError:
        return False
    return True
