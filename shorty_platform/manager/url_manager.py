"""
URLManager module for Shorty Platform.

Responsibilities:
    - Validate URLs before they reach storage
    - Generate short ids and retry when an id is already taken
    - Surface URL dedup conflicts as a redirectable result, not a failure
    - Shorten batches tagged with client correlation ids
    - Render short URLs from the configured base URL
    - List and delete an owner's URLs; deletes run on a worker pool
    - Report store statistics

Design notes:
    - Storage is an injected dependency; the manager never knows which backend
      it talks to.
    - Id generation is a pluggable strategy (see strategies.py).
    - Deletion is fire-and-forget for the HTTP caller but the storage write is
      synchronous inside the worker, so once the Future completes every
      subsequent read sees deleted=True.

LLM Prompt Example:
    "Explain why retry-on-collision belongs in the service layer while
     URL dedup belongs in storage, and how a conflict can carry the
     existing id back to the caller."
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence
from urllib.parse import urlparse

from shorty_platform.config import settings
from shorty_platform.storage.base import BaseStorage
from shorty_platform.storage.errors import ShortIDAlreadyExistsError, URLAlreadyExistsError
from shorty_platform.storage.models import StoreStats, URLRecord

from .strategies import BaseStrategy, get_strategy_from_config

log = logging.getLogger(__name__)


class UniqueIDGenerationError(RuntimeError):
    """No free short id was found within the retry budget."""


class ShortenResult(NamedTuple):
    short_id: str
    short_url: str
    created: bool  # False when the URL was already shortened


class BatchItem(NamedTuple):
    correlation_id: str
    original_url: str


class BatchResult(NamedTuple):
    correlation_id: str
    short_url: str


class URLManager:
    """
    Coordinates creation, lookup and deletion rules for short URLs.
    """

    def __init__(
        self,
        storage: BaseStorage,
        id_strategy: Optional[BaseStrategy] = None,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        delete_workers: Optional[int] = None,
    ):
        """
        Args:
            storage (BaseStorage): Backend storage instance.
            id_strategy (Optional[BaseStrategy]): Id generator; resolved from
                config when omitted.
            base_url (Optional[str]): Prefix for rendered short URLs.
            max_retries (Optional[int]): Attempts per id on collision.
            delete_workers (Optional[int]): Thread pool size for async deletes.
        """
        self.storage = storage
        self.id_strategy = id_strategy or get_strategy_from_config()
        self.base_url = (base_url if base_url is not None else settings.base_url).rstrip("/")
        self.max_retries = max_retries or settings.id_max_retries
        self._executor = ThreadPoolExecutor(
            max_workers=delete_workers or settings.delete_workers,
            thread_name_prefix="shorty-delete",
        )

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------
    def short_url(self, short_id: str) -> str:
        return f"{self.base_url}/{short_id}"

    def _validate_url(self, url: str) -> None:
        """
        Validate that a URL has an http/https scheme and a netloc.

        Raises:
            ValueError: If the URL is empty or malformed.
        """
        if not url:
            raise ValueError("Empty URL")
        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("Invalid URL format")

    def _generate_free_id(self, reserved: Iterable[str] = ()) -> str:
        """Return an id that is neither stored nor in `reserved`."""
        reserved = set(reserved)
        for _ in range(self.max_retries):
            candidate = self.id_strategy.generate()
            if candidate not in reserved and self.storage.get(candidate) is None:
                return candidate
        raise UniqueIDGenerationError("failed to generate unique ID")

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def create_short_url(self, url: str, owner_id: str = "") -> ShortenResult:
        """
        Shorten `url` for `owner_id` with a generated id.

        Returns:
            ShortenResult: `created` is False when the URL already had a live
            short id; that existing id is returned.

        Raises:
            ValueError: On invalid URL.
            UniqueIDGenerationError: Every generated id was already taken.
        """
        self._validate_url(url)
        for attempt in range(1, self.max_retries + 1):
            short_id = self.id_strategy.generate()
            try:
                return self.create_short_url_with_id(url, short_id, owner_id)
            except ShortIDAlreadyExistsError:
                log.debug("Short id collision on attempt %d: %s", attempt, short_id)
                continue
        raise UniqueIDGenerationError("failed to generate unique ID")

    def create_short_url_with_id(self, url: str, short_id: str, owner_id: str = "") -> ShortenResult:
        """
        Shorten `url` under a caller-chosen `short_id`.

        Raises:
            ValueError: On invalid URL or empty id.
            ShortIDAlreadyExistsError: `short_id` is taken.
        """
        self._validate_url(url)
        if not short_id:
            raise ValueError("Empty ID")
        try:
            stored_id = self.storage.save(short_id, url, owner_id)
        except URLAlreadyExistsError as exc:
            return ShortenResult(exc.short_id, self.short_url(exc.short_id), created=False)
        return ShortenResult(stored_id, self.short_url(stored_id), created=True)

    def batch_shorten(self, items: Sequence[BatchItem], owner_id: str = "") -> List[BatchResult]:
        """
        Shorten every item or none of them.

        Raises:
            ValueError: Empty batch, duplicate correlation id, or invalid URL.
            URLAlreadyExistsError: Some URL is already shortened (nothing stored).
            UniqueIDGenerationError: No free ids could be found.
        """
        if not items:
            raise ValueError("Empty batch")
        seen = set()
        for item in items:
            if item.correlation_id in seen:
                raise ValueError("Duplicate correlation_id")
            seen.add(item.correlation_id)
            self._validate_url(item.original_url)

        for attempt in range(1, self.max_retries + 1):
            ids: Dict[str, str] = {}
            urls: Dict[str, str] = {}
            for item in items:
                short_id = self._generate_free_id(reserved=urls.keys())
                ids[item.correlation_id] = short_id
                urls[short_id] = item.original_url
            try:
                self.storage.batch_save(urls, owner_id)
            except ShortIDAlreadyExistsError as exc:
                # Another writer took an id between our check and the save.
                log.debug("Batch id collision on attempt %d: %s", attempt, exc.short_id)
                continue
            return [BatchResult(item.correlation_id, self.short_url(ids[item.correlation_id])) for item in items]
        raise UniqueIDGenerationError("failed to generate unique IDs for batch")

    def get(self, short_id: str) -> Optional[URLRecord]:
        """Return the full record (live or deleted) or None."""
        return self.storage.get(short_id)

    def get_original_url(self, short_id: str) -> Optional[str]:
        """Return the original URL for a live record, else None."""
        record = self.storage.get(short_id)
        if record is None or record.deleted:
            return None
        return record.original_url

    def get_user_urls(self, owner_id: str) -> List[Dict[str, str]]:
        return [
            {"short_url": self.short_url(r.short_id), "original_url": r.original_url}
            for r in self.storage.get_by_owner(owner_id)
        ]

    def delete_urls(self, owner_id: str, short_ids: Iterable[str]) -> None:
        self.storage.batch_delete(owner_id, list(short_ids))

    def delete_urls_async(self, owner_id: str, short_ids: Iterable[str]) -> "Future[None]":
        """
        Schedule deletion on the worker pool and return its Future.

        Failures are logged here and remain available via `future.exception()`.
        """
        ids = list(short_ids)
        future = self._executor.submit(self.delete_urls, owner_id, ids)

        def _report(done: "Future[None]") -> None:
            exc = done.exception()
            if exc is not None:
                log.error("Async delete failed: owner_id=%s ids=%s", owner_id, ids, exc_info=exc)

        future.add_done_callback(_report)
        return future

    def stats(self) -> StoreStats:
        return self.storage.stats()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the delete worker pool; pending deletes finish when wait=True."""
        self._executor.shutdown(wait=wait)
