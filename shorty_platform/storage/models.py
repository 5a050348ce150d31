"""
Record types shared by every storage backend.

`URLRecord` is the unit of storage. `to_dict()` produces the exact JSON line
layout used by the file backend; `from_dict()` parses it back and also accepts
the older line format (`short_url` / `user_id` / `is_deleted`), raising
`ValueError` on anything it cannot interpret so replay can skip the line.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, NamedTuple


@dataclass
class URLRecord:
    short_id: str
    original_url: str
    owner_id: str = ""
    deleted: bool = False

    @property
    def is_live(self) -> bool:
        return not self.deleted

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "URLRecord":
        """
        Build a record from a decoded JSON object.

        Raises:
            ValueError: If `data` is not an object or a required field is
                missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("record must be a JSON object")

        short_id = data.get("short_id", data.get("short_url"))
        original_url = data.get("original_url")
        owner_id = data.get("owner_id", data.get("user_id")) or ""
        deleted = data.get("deleted", data.get("is_deleted", False))

        if not isinstance(short_id, str) or not short_id:
            raise ValueError("missing or invalid short_id")
        if not isinstance(original_url, str) or not original_url:
            raise ValueError("missing or invalid original_url")
        if not isinstance(owner_id, str):
            raise ValueError("invalid owner_id")
        if not isinstance(deleted, bool):
            raise ValueError("invalid deleted flag")

        return cls(short_id=short_id, original_url=original_url, owner_id=owner_id, deleted=deleted)


class StoreStats(NamedTuple):
    """Counts over live records: URLs and distinct non-empty owners."""
    urls: int
    owners: int
