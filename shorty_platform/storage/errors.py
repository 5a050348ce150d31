"""
Storage error taxonomy for Shorty Platform.

Three outcomes leave a storage call without a value:

- **Conflict** (`URLAlreadyExistsError`): the URL is already held by a live
  record. Not a failure: callers treat it as a redirect to the existing id
  (HTTP 409) and read `exc.short_id`.
- **Id taken** (`ShortIDAlreadyExistsError`): the requested short id belongs to
  another record. The service layer retries with a fresh id.
- **Backend failure** (`StorageError`): disk or database trouble. Opaque to the
  caller; the underlying exception is chained as `__cause__`.

Not-found is never an exception: lookups return `None`.
"""

from typing import Optional

__all__ = ["StorageError", "URLAlreadyExistsError", "ShortIDAlreadyExistsError"]


class StorageError(Exception):
    """Base class for every error raised by a storage backend."""


class URLAlreadyExistsError(StorageError):
    """A live record already maps `url`; `short_id` is the authoritative id."""

    def __init__(self, short_id: str, url: Optional[str] = None) -> None:
        self.short_id = short_id
        self.url = url
        super().__init__(f"URL already exists under short id {short_id!r}")


class ShortIDAlreadyExistsError(StorageError):
    """The requested short id is already assigned to another record."""

    def __init__(self, short_id: str) -> None:
        self.short_id = short_id
        super().__init__(f"Short id {short_id!r} is already taken")
