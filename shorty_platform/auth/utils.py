"""
Utility functions for the owner cookie.

The cookie value is `<owner_id>.<hex HMAC-SHA256(secret, owner_id)>`. Owner ids
come from the url-safe id alphabet and never contain '.', so the last '.'
separates the signature.
"""

import hashlib
import hmac
from typing import Optional


def sign_owner_id(owner_id: str, secret: str) -> str:
    """Return the cookie value for `owner_id`."""
    digest = hmac.new(secret.encode("utf-8"), owner_id.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"{owner_id}.{digest}"


def verify_owner_cookie(value: Optional[str], secret: str) -> Optional[str]:
    """Return the owner id if `value` carries a valid signature, else None."""
    if not value or "." not in value:
        return None
    owner_id, _, _signature = value.rpartition(".")
    if not owner_id:
        return None
    if hmac.compare_digest(sign_owner_id(owner_id, secret), value):
        return owner_id
    return None
