"""
Storage factory: pick the storage backend from config
=====================================================

This module centralizes selection of the storage backend (memory, append-only
file, or PostgreSQL) so the rest of the app never branches on where data lives.

- Reads environment **at call time** to avoid stale values in tests.
- Imports the DB backend **only if** "postgres" is selected, so psycopg is not
  loaded for memory/file deployments.

Environment variables
---------------------
- SHORTY_STORAGE_BACKEND:   "memory", "file" or "postgres". If unset or empty,
                            postgres when a DSN is present, else file when a
                            path is present, else memory.
- SHORTY_FILE_STORAGE_PATH: log path if backend == "file"
- SHORTY_DB_DSN:            DSN string if backend == "postgres"
"""

import logging
import os
from typing import Optional

from shorty_platform.storage.base import BaseStorage
from shorty_platform.storage.memory_storage import MemoryStorage

log = logging.getLogger(__name__)


def get_storage(backend: Optional[str] = None, **kwargs) -> BaseStorage:
    """
    Return a BaseStorage instance based on configuration.

    Parameters
    ----------
    backend : str, optional
        "memory", "file" or "postgres". If omitted, reads SHORTY_STORAGE_BACKEND
        and falls back to auto-detection.
    kwargs : dict
        file_path="..." for the file backend, dsn="..." for postgres.

    Raises
    ------
    ValueError
        Unknown backend, or the backend's required setting is missing.
    """
    dsn = kwargs.get("dsn") or os.getenv("SHORTY_DB_DSN", "")
    file_path = kwargs.get("file_path") or os.getenv("SHORTY_FILE_STORAGE_PATH", "")

    be = (backend or os.getenv("SHORTY_STORAGE_BACKEND", "")).strip().lower()
    if not be:
        be = "postgres" if dsn else "file" if file_path else "memory"

    log.info("Selected storage backend: %s", be)

    if be == "memory":
        return MemoryStorage()

    if be == "file":
        if not file_path:
            raise ValueError("FILE_STORAGE_PATH is required for file backend (env SHORTY_FILE_STORAGE_PATH)")
        from shorty_platform.storage.file_storage import FileStorage
        return FileStorage(file_path=file_path, fsync=bool(kwargs.get("fsync", False)))

    if be == "postgres":
        if not dsn:
            raise ValueError("DB_DSN is required for postgres backend (env SHORTY_DB_DSN)")
        # Local import to avoid hard dependency when not using postgres
        from shorty_platform.storage.db_storage import DBStorage
        return DBStorage(dsn=dsn)

    raise ValueError(f"Unknown storage backend: {be!r}")
