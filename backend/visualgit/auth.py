"""Authentication helpers and FastAPI security dependencies.

This module provides utilities to decode access tokens and the FastAPI
dependencies that protect routes:

- `get_current_user` validates the bearer token and returns the
  corresponding `User` from the database (401 on any problem).
- `get_request_user` decodes an optional bearer token and stores the
  payload on `request.state.user` without rejecting anonymous calls.
- `get_user_id` returns the authenticated subject id, rejecting with
  400 "User not authenticated" when there is none.
- `require_admin` narrows `get_current_user` to ADMIN accounts.

Token verification raises HTTPExceptions on failure so the helpers can
be used directly inside route dependencies.
"""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .database import get_session
from .services import decode_token

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict:
    """Decode and verify an access token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return decode_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail='invalid token')


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency that returns the authenticated, active user."""
    if credentials is None:
        raise HTTPException(status_code=401, detail='not authenticated')
    payload = decode_access_token(credentials.credentials)
    user_id = payload.get('sub')
    if not user_id:
        raise HTTPException(status_code=401, detail='invalid token payload')
    user = repositories.UserRepository(db).get(user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail='user not found')
    request.state.user = payload
    return user


def get_request_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Optional[dict]:
    """Optional authentication: the token payload, or None for anonymous calls.

    A token that is present but invalid is still rejected with 401.
    """
    payload = decode_access_token(credentials.credentials) if credentials else None
    request.state.user = payload
    return payload


def get_user_id(request: Request, payload: Optional[dict] = Depends(get_request_user)) -> str:
    """The authenticated subject id of the request."""
    user = payload or getattr(request.state, 'user', None)
    user_id = user.get('sub') if user else None
    if not user_id:
        raise HTTPException(status_code=400, detail='User not authenticated')
    return user_id


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    """Like `get_current_user`, but only for accounts with the ADMIN role (403 otherwise)."""
    if user.role != models.ROLE_ADMIN:
        raise HTTPException(status_code=403, detail='Admin access required')
    return user
