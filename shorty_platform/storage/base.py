"""
Base storage interface for Shorty Platform.

Purpose:
    Define the one contract that the in-memory, append-only file and
    PostgreSQL backends all implement, so the URL manager and the HTTP app
    never need to know which one is running.

Contract summary:
    - save / batch_save dedupe by original URL among live records. A duplicate
      raises URLAlreadyExistsError carrying the existing short id.
    - batch_save is all-or-nothing on every backend.
    - get returns deleted records too (with deleted=True); None means unknown.
    - get_by_owner and stats see live records only.
    - batch_delete is a one-way soft delete, scoped to the owner.

Testing & Coverage:
    Abstract methods are not executed directly in tests and carry
    `# pragma: no cover`.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Mapping, Optional

from .models import StoreStats, URLRecord


class BaseStorage(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod  # pragma: no cover
    def save(self, short_id: str, url: str, owner_id: str = "") -> str:
        """
        Store `url` under `short_id` for `owner_id`.

        Returns:
            str: The stored short id (equal to `short_id`).

        Raises:
            URLAlreadyExistsError: A live record already holds `url`; the
                exception's `short_id` is the existing id.
            ShortIDAlreadyExistsError: `short_id` is already assigned.
            StorageError: The backend failed.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get(self, short_id: str) -> Optional[URLRecord]:
        """Return the record for `short_id` (live or deleted), or None."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def batch_save(self, urls: Mapping[str, str], owner_id: str = "") -> None:
        """
        Store every `short_id -> url` pair in `urls`, or none of them.

        Raises:
            URLAlreadyExistsError: Some URL is already live, or appears twice
                in the batch. Nothing from the batch is stored.
            ShortIDAlreadyExistsError: Some short id is already assigned.
            StorageError: The backend failed.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_by_owner(self, owner_id: str) -> List[URLRecord]:
        """Return the live records created by `owner_id`."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def batch_delete(self, owner_id: str, short_ids: Iterable[str]) -> None:
        """
        Soft-delete the given ids that belong to `owner_id`.

        Unknown ids and ids owned by someone else are skipped silently.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def stats(self) -> StoreStats:
        """Return live URL count and distinct non-empty owner count."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def clear(self) -> None:
        """Reset the backend to an empty state (tests and storage rotation)."""
        raise NotImplementedError

    # ---- Lifecycle hooks (optional for backends) ---------------------------

    def open(self) -> None:
        """Prepare external resources (e.g. create the DB schema)."""

    def close(self) -> None:
        """Release external resources."""

    def ping(self) -> bool:
        """Return True when the backend can serve requests."""
        return True
