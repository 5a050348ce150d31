"""
In-memory storage backend for Shorty Platform.

Responsibilities:
    - Hold the canonical `short_id -> URLRecord` mapping
    - Maintain a secondary `original_url -> short_id` index over live records
      for O(1) dedup on save
    - Serialize writers and admit concurrent readers through one RWLock

Design:
    - Every operation holds the lock for its full duration; reads take the
      shared side, writes the exclusive side.
    - All mutations go through `_commit()`, which updates both dicts and then
      calls `_persist()`. Here `_persist()` does nothing; the file backend
      overrides it to append to its log. If persisting fails, `_commit()`
      restores the previous in-memory state before re-raising, so a failed
      write leaves no trace.
    - Records handed out are copies; callers cannot mutate stored state.
    - State is lost on restart.

LLM Prompt Example:
    "Show how a secondary index kept under the same lock as the primary map
     gives O(1) URL dedup without a check-then-act race."
"""

import dataclasses
import logging
from typing import Dict, Iterable, List, Mapping, Optional

from .base import BaseStorage
from .errors import ShortIDAlreadyExistsError, URLAlreadyExistsError
from .locks import RWLock
from .models import StoreStats, URLRecord

log = logging.getLogger(__name__)


class MemoryStorage(BaseStorage):
    def __init__(self) -> None:
        """
        Initialize empty storage.

        Internal schema:
            self._records   = {short_id: URLRecord}
            self._url_index = {original_url: short_id}   # live records only
        """
        self._records: Dict[str, URLRecord] = {}
        self._url_index: Dict[str, str] = {}
        self._lock = RWLock()

    # ---- Internal helpers (callers hold the write lock) --------------------

    def _index_record(self, record: URLRecord) -> None:
        previous = self._records.get(record.short_id)
        if previous is not None and self._url_index.get(previous.original_url) == record.short_id:
            del self._url_index[previous.original_url]
        self._records[record.short_id] = record
        if record.is_live:
            self._url_index[record.original_url] = record.short_id

    def _persist(self, records: List[URLRecord]) -> None:
        """Durability hook, called after the dicts are updated."""

    def _commit(self, records: List[URLRecord]) -> None:
        prior_records = {r.short_id: self._records.get(r.short_id) for r in records}
        prior_index: Dict[str, Optional[str]] = {}
        for r in records:
            prior_index.setdefault(r.original_url, self._url_index.get(r.original_url))
            old = prior_records[r.short_id]
            if old is not None:
                prior_index.setdefault(old.original_url, self._url_index.get(old.original_url))

        for r in records:
            self._index_record(r)

        try:
            self._persist(records)
        except Exception:
            for short_id, old in prior_records.items():
                if old is None:
                    self._records.pop(short_id, None)
                else:
                    self._records[short_id] = old
            for url, short_id in prior_index.items():
                if short_id is None:
                    self._url_index.pop(url, None)
                else:
                    self._url_index[url] = short_id
            raise

    def _reset(self) -> None:
        self._records = {}
        self._url_index = {}

    # ---- Contract methods --------------------------------------------------

    def save(self, short_id: str, url: str, owner_id: str = "") -> str:
        with self._lock.write():
            existing_id = self._url_index.get(url)
            if existing_id is not None:
                log.info("URL already exists: url=%s short_id=%s", url, existing_id)
                raise URLAlreadyExistsError(existing_id, url)
            if short_id in self._records:
                raise ShortIDAlreadyExistsError(short_id)
            self._commit([URLRecord(short_id=short_id, original_url=url, owner_id=owner_id or "")])
        return short_id

    def get(self, short_id: str) -> Optional[URLRecord]:
        with self._lock.read():
            record = self._records.get(short_id)
            return dataclasses.replace(record) if record is not None else None

    def batch_save(self, urls: Mapping[str, str], owner_id: str = "") -> None:
        if not urls:
            return
        with self._lock.write():
            # Validate the whole batch before touching anything (all-or-nothing).
            claimed: Dict[str, str] = {}
            for short_id, url in urls.items():
                existing_id = self._url_index.get(url) or claimed.get(url)
                if existing_id is not None:
                    log.info("URL already exists in batch: url=%s short_id=%s", url, existing_id)
                    raise URLAlreadyExistsError(existing_id, url)
                if short_id in self._records:
                    raise ShortIDAlreadyExistsError(short_id)
                claimed[url] = short_id

            self._commit([
                URLRecord(short_id=short_id, original_url=url, owner_id=owner_id or "")
                for short_id, url in urls.items()
            ])

    def get_by_owner(self, owner_id: str) -> List[URLRecord]:
        with self._lock.read():
            return [
                dataclasses.replace(r)
                for r in self._records.values()
                if r.is_live and r.owner_id == owner_id
            ]

    def batch_delete(self, owner_id: str, short_ids: Iterable[str]) -> None:
        with self._lock.write():
            changed: List[URLRecord] = []
            seen = set()
            for short_id in short_ids:
                if short_id in seen:
                    continue
                seen.add(short_id)
                record = self._records.get(short_id)
                if record is None or record.deleted or record.owner_id != owner_id:
                    continue
                changed.append(dataclasses.replace(record, deleted=True))
            if changed:
                self._commit(changed)
        log.debug("Batch delete completed: owner_id=%s deleted=%d", owner_id, len(changed))

    def stats(self) -> StoreStats:
        with self._lock.read():
            live = [r for r in self._records.values() if r.is_live]
            owners = {r.owner_id for r in live if r.owner_id}
            return StoreStats(urls=len(live), owners=len(owners))

    def clear(self) -> None:
        with self._lock.write():
            self._reset()
