"""
FileStorage: append-only JSON-lines backend for Shorty Platform
===============================================================

Durable backend that keeps the same in-memory dicts as `MemoryStorage` for
reads and mirrors every mutation into an append-only log file.

Log format
----------
One JSON object per line::

    {"short_id": "abc123", "original_url": "https://example.com", "owner_id": "u1", "deleted": false}

A soft delete appends a full line for the same `short_id` with
`"deleted": true`. Nothing is ever rewritten in place; only `clear()` truncates
the file.

Startup replay
--------------
The log is replayed in file order and the last line for a given `short_id`
wins. Blank lines are ignored. Malformed lines (bad JSON, missing fields, wrong
types) are skipped with a warning; the log is forward-only history, not a
validated format. Lines in the older layout (`short_url`, `user_id`,
`is_deleted`) are understood as well. A live line whose URL is already live
under another `short_id` is skipped too, so replay never yields two live
records for one URL.

Write path
----------
exclusive lock -> validate -> update dicts -> append line(s) -> release.
All lines of one operation go out in a single `write()`, so a batch never
interleaves with another writer and replay order equals write order. If the
append fails, the file is truncated back to its previous length and the
in-memory change is rolled back before `StorageError` is raised. If the truncate fails as
well, the next append starts with a newline so the fragment stays on its own
line.

Example
-------
>>> storage = FileStorage("/tmp/shorty/urls.jsonl")
>>> storage.save("abc123", "https://example.com", "u1")
'abc123'
>>> FileStorage("/tmp/shorty/urls.jsonl").get("abc123").owner_id
'u1'
"""

import json
import logging
import os
from typing import List

from .errors import StorageError
from .memory_storage import MemoryStorage
from .models import URLRecord

log = logging.getLogger(__name__)


class FileStorage(MemoryStorage):
    """Append-only log backend.

    Parameters
    ----------
    file_path : str
        Path to the log. Parent directories and the file are created if missing.
    fsync : bool
        If True, `os.fsync` after every append.
    """

    def __init__(self, file_path: str, fsync: bool = False) -> None:
        super().__init__()
        if not file_path:
            raise ValueError("file_path is required for the file backend")
        self.file_path = file_path
        self.fsync = fsync
        try:
            directory = os.path.dirname(os.path.abspath(file_path))
            os.makedirs(directory, exist_ok=True)
            # Touch without truncating.
            with open(file_path, "a", encoding="utf-8"):
                pass
            self._replay()
        except OSError as exc:
            log.error("Failed to open storage file %s", file_path, exc_info=True)
            raise StorageError(f"cannot open storage file {file_path!r}") from exc

    # ---- Replay ------------------------------------------------------------

    def _replay(self) -> None:
        loaded = skipped = 0
        with open(self.file_path, "r", encoding="utf-8", errors="replace") as fh:
            for lineno, raw in enumerate(fh, start=1):
                line = raw.strip()
                if not line:
                    continue
                try:
                    record = URLRecord.from_dict(json.loads(line))
                except ValueError as exc:
                    log.warning("Skipping invalid line %d in %s: %s (%r)", lineno, self.file_path, exc, line[:200])
                    skipped += 1
                    continue
                owner = self._url_index.get(record.original_url)
                if record.is_live and owner is not None and owner != record.short_id:
                    log.warning(
                        "Skipping line %d in %s: %s is already live under %s",
                        lineno, self.file_path, record.original_url, owner,
                    )
                    skipped += 1
                    continue
                self._index_record(record)
                loaded += 1

        log.info(
            "Loaded %d record lines from %s (%d skipped, %d live)",
            loaded, self.file_path, skipped, len(self._url_index),
        )

    # ---- Persistence hook --------------------------------------------------

    def _persist(self, records: List[URLRecord]) -> None:
        payload = "".join(json.dumps(r.to_dict(), ensure_ascii=False) + "\n" for r in records).encode("utf-8")
        try:
            with open(self.file_path, "a+b", buffering=0) as fh:
                offset = fh.seek(0, os.SEEK_END)
                if offset > 0:
                    fh.seek(offset - 1)
                    if fh.read(1) != b"\n":
                        # Terminate a fragment left by an earlier failed append.
                        payload = b"\n" + payload
                try:
                    view = memoryview(payload)
                    while view:
                        view = view[fh.write(view):]
                    if self.fsync:
                        os.fsync(fh.fileno())
                except OSError:
                    fh.truncate(offset)
                    raise
        except OSError as exc:
            log.error("Failed to append %d record(s) to %s", len(records), self.file_path, exc_info=True)
            raise StorageError(f"cannot append to storage file {self.file_path!r}") from exc

    # ---- Contract overrides ------------------------------------------------

    def clear(self) -> None:
        with self._lock.write():
            try:
                with open(self.file_path, "w", encoding="utf-8"):
                    pass
            except OSError as exc:
                log.error("Failed to truncate storage file %s", self.file_path, exc_info=True)
                raise StorageError(f"cannot truncate storage file {self.file_path!r}") from exc
            self._reset()

    def reload(self) -> None:
        """Drop in-memory state and replay the log from disk."""
        with self._lock.write():
            self._reset()
            try:
                self._replay()
            except OSError as exc:
                raise StorageError(f"cannot read storage file {self.file_path!r}") from exc
