"""
auth/persistence.py -- Whole-collection JSON persistence with atomic rewrite.

Each record family (users, groups, memberships, file access rules, shares,
and optionally the token blacklist) lives in one JSON array on disk. A write
always replaces the whole array: the new content goes to a temp file in the
same directory, is fsynced, and is renamed over the target with os.replace().
A crash mid-write leaves either the old file or the new file, never a torn one.

Every collection owns an RLock. Stores hold it across load -> mutate -> save;
holding it around save alone would let two writers interleave their loads
and lose one update.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from auth.errors import StorageError

logger = logging.getLogger("lunatransfer.store")


def _describe(context: dict) -> str:
    return " ".join(f"{k}={v}" for k, v in context.items() if v is not None)


class JsonCollection:
    """One JSON array file plus the lock that serializes its writers.

    Usage:
        groups = JsonCollection(data_dir / "groups.json")
        with groups.lock:
            records = groups.load(op="create_group", actor="alice")
            records.append({...})
            groups.save(records, op="create_group", actor="alice")
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.name = self.path.stem
        self.lock = threading.RLock()

    def load(self, op: str = "load", **context) -> list[dict]:
        """Return every record in the collection. A missing or empty file is an empty list."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.error("%s: cannot read %s collection at %s (%s): %s", op, self.name, self.path, _describe(context), exc)
            raise StorageError(f"failed to read {self.name} collection") from exc

        if not raw.strip():
            return []
        try:
            records = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("%s: corrupt %s collection at %s (%s): %s", op, self.name, self.path, _describe(context), exc)
            raise StorageError(f"failed to parse {self.name} collection") from exc
        if not isinstance(records, list):
            logger.error("%s: %s collection at %s is not a JSON array (%s)", op, self.name, self.path, _describe(context))
            raise StorageError(f"{self.name} collection is not a list")
        return records

    def save(self, records: list[dict], op: str = "save", **context) -> None:
        """Atomically replace the collection with ``records``."""
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(records, fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            _discard(tmp_path)
            logger.error("%s: cannot write %s collection at %s (%s): %s", op, self.name, self.path, _describe(context), exc)
            raise StorageError(f"failed to write {self.name} collection") from exc
        except Exception:
            _discard(tmp_path)
            raise


def _discard(tmp_path: str | None) -> None:
    if tmp_path is not None:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
