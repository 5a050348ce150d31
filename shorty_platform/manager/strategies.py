"""
Strategies for short-id generation in shorty_platform.

Provided strategies:
- URLSafeStrategy: random bytes -> base64url (`secrets.token_urlsafe`) -> truncate to L
- Base62Strategy:  L random characters from [0-9a-zA-Z]

Both are random: uniqueness is not guaranteed by the generator. The storage
layer rejects a taken id and the URL manager retries with a fresh one.

Configuration (via shorty_platform.config.settings):
- ID_STRATEGY: "urlsafe" (default) or "base62"
- ID_LENGTH:   default length (8; clamped 4..32)
"""

import secrets
import string
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Type

from shorty_platform.config import settings

_BASE62_ALPHABET = string.digits + string.ascii_lowercase + string.ascii_uppercase


def _safe_len(length: Optional[int]) -> int:
    """Resolve desired id length from arg or config, clamped to [4, 32]."""
    L = int(length) if length is not None else int(settings.id_length)
    return max(4, min(32, L))


class BaseStrategy(ABC):
    """Abstract base for id generation strategies."""

    @abstractmethod
    def generate(self, *, length: Optional[int] = None) -> str:
        """Return a new short id of `length` characters."""
        raise NotImplementedError


@dataclass(frozen=True)
class URLSafeStrategy(BaseStrategy):
    """base64url alphabet ([A-Za-z0-9_-]); 6 random bits per character."""
    length: Optional[int] = None

    def generate(self, *, length: Optional[int] = None) -> str:
        L = _safe_len(length if length is not None else self.length)
        # token_urlsafe(n) yields ~1.33*n chars; ask for enough bytes and cut.
        return secrets.token_urlsafe(L)[:L]


@dataclass(frozen=True)
class Base62Strategy(BaseStrategy):
    """[0-9a-zA-Z] only; avoids '-' and '_' for ids typed by hand."""
    length: Optional[int] = None

    def generate(self, *, length: Optional[int] = None) -> str:
        L = _safe_len(length if length is not None else self.length)
        return "".join(secrets.choice(_BASE62_ALPHABET) for _ in range(L))


STRATEGY_REGISTRY: Dict[str, Type[BaseStrategy]] = {
    "urlsafe": URLSafeStrategy,
    "base64url": URLSafeStrategy,
    "random": URLSafeStrategy,
    "base62": Base62Strategy,
}


def get_strategy_from_config(name: Optional[str] = None, length: Optional[int] = None) -> BaseStrategy:
    """
    Resolve the active strategy from parameter or settings.ID_STRATEGY.

    Raises:
        ValueError: If the name is not registered.
    """
    key = (name or settings.id_strategy or "urlsafe").strip().lower()
    cls = STRATEGY_REGISTRY.get(key)
    if cls is None:
        raise ValueError(f"Unknown id strategy: {key!r}")
    return cls(length=length)
