from __future__ import annotations

from pathlib import Path
import os
import time

LOCK_DIR = Path("data")


class RunLockBusy(RuntimeError):
    pass


class RunLock:
    """
    Lock file that keeps two runs of the same digest type from overlapping.
    A lock older than ``timeout_seconds`` is treated as left behind by a
    crashed run and taken over.
    """

    def __init__(self, name: str = "run", timeout_seconds: int = 60 * 60, lock_dir: Path | None = None):
        self.path = (lock_dir or LOCK_DIR) / f"{name}.lock"
        self.timeout_seconds = timeout_seconds

    def __enter__(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if self.path.exists():
            age = time.time() - self.path.stat().st_mtime
            if age < self.timeout_seconds:
                raise RunLockBusy(f"Another run is already in progress ({self.path} exists).")
            # stale lock
            self.path.unlink(missing_ok=True)

        self.path.write_text(str(os.getpid()), encoding="utf-8")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.path.unlink(missing_ok=True)
