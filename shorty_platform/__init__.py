"""
shorty_platform package initializer.
"""

from . import auth
from . import manager
from . import storage

__all__ = ["auth", "manager", "storage"]
