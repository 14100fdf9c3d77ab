from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status
from sqlalchemy.orm import Session

from bidportal.models.security import User

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer"


class InvalidBearer(ValueError):
    pass


def parse_bearer_user_id(raw: str) -> int:
    """
    Demo principal: `Authorization: Bearer <user id>`.

    Authentication proper happens upstream (a gateway validates the session and
    forwards the principal); this service only needs the resulting user id.
    """

    scheme, _, token = raw.partition(" ")
    if scheme != BEARER_PREFIX:
        raise InvalidBearer(f"Invalid {AUTHORIZATION_HEADER}. Expected '{BEARER_PREFIX} <token>'.")
    token = token.strip()
    if not token:
        raise InvalidBearer(f"Invalid {AUTHORIZATION_HEADER}. Missing token after '{BEARER_PREFIX}'.")
    try:
        return int(token)
    except ValueError:
        raise InvalidBearer("Invalid bearer token for demo (expected integer user id).") from None


def extract_user_id(request: Request) -> int | None:
    """None when the header is absent; 400 when it is present but unusable."""

    raw = request.headers.get(AUTHORIZATION_HEADER)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    try:
        return parse_bearer_user_id(raw)
    except InvalidBearer as exc:
        logger.warning("Rejected Authorization header path=%s method=%s: %s", request.url.path, request.method, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def load_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)

    if user is None or not user.is_active:
        logger.info("Unknown or inactive user_id=%s", user_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or inactive user")

    return user
