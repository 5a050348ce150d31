"""
FastAPI dependency functions for owner identity.

These can be used in routes with Depends() to learn who is calling.

- `get_owner_id`: returns the owner from a valid cookie, or mints a new owner
  id and sets the cookie on the response (creation endpoints).
- `require_owner_id`: returns the owner from a valid cookie or answers 401
  (listing and deleting endpoints).

Both read the signing secret and id generator from `request.app.state`, which
`create_app` populates.
"""

import logging

from fastapi import HTTPException, Request, Response, status

from .utils import sign_owner_id, verify_owner_cookie

log = logging.getLogger(__name__)

COOKIE_NAME = "user_id"
COOKIE_MAX_AGE = 24 * 60 * 60


def get_owner_id(request: Request, response: Response) -> str:
    """
    Dependency that retrieves the current owner, issuing one if needed.

    Returns:
        str: The owner id.
    """
    secret = request.app.state.settings.cookie_secret
    owner_id = verify_owner_cookie(request.cookies.get(COOKIE_NAME), secret)
    if owner_id is not None:
        return owner_id

    owner_id = request.app.state.manager.id_strategy.generate()
    response.set_cookie(
        COOKIE_NAME,
        sign_owner_id(owner_id, secret),
        max_age=COOKIE_MAX_AGE,
        httponly=True,
    )
    log.debug("Issued new owner id %s", owner_id)
    return owner_id


def require_owner_id(request: Request) -> str:
    """
    Dependency that validates the current owner.

    Raises:
        HTTPException: 401 if the cookie is missing or badly signed.
    """
    secret = request.app.state.settings.cookie_secret
    owner_id = verify_owner_cookie(request.cookies.get(COOKIE_NAME), secret)
    if owner_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid user cookie",
        )
    return owner_id
