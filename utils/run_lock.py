"""Per-stage exclusive run locks backed by lock files in the instance dir."""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from flask import current_app, has_app_context

from utils.exceptions import RunLockError

_LOG = logging.getLogger(__name__)


def _locks_dir() -> Path:
    if has_app_context():
        base = Path(current_app.instance_path)
    else:
        from config import INSTANCE_DIR

        base = INSTANCE_DIR
    path = base / "locks"
    path.mkdir(parents=True, exist_ok=True)
    return path


def lock_path(stage: str) -> Path:
    return _locks_dir() / f"{stage}.lock"


def _read_holder(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}


@contextmanager
def stage_lock(stage: str) -> Iterator[Path]:
    """Hold the lock for `stage` for the duration of the block.

    Creation is atomic (O_EXCL); a second holder gets RunLockError instead of
    waiting. Stale files left by a killed process must be removed by hand.
    """
    path = lock_path(stage)
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError as exc:
        holder = _read_holder(path)
        raise RunLockError(
            f"Stage '{stage}' is already running (pid={holder.get('pid', '?')}, since {holder.get('acquired_at', '?')})."
        ) from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(
                {"pid": os.getpid(), "acquired_at": datetime.now(timezone.utc).isoformat()},
                fh,
            )
        _LOG.debug("Acquired run lock %s", path)
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            _LOG.warning("Run lock %s disappeared before release", path)
