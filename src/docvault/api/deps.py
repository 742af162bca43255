"""FastAPI dependencies resolving the components built by ``create_app``."""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from docvault.core.config import Settings
from docvault.db.repository import DocumentRepository
from docvault.storage.base import StorageBackend
from docvault.tus.handler import TusHandler

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_tus_handler(request: Request) -> TusHandler:
    return request.app.state.tus_handler


def get_repository(request: Request) -> DocumentRepository:
    return request.app.state.repository


def get_storage(request: Request) -> StorageBackend:
    return request.app.state.storage


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user_id(
    request: Request, settings: Settings = Depends(get_settings)
) -> Optional[str]:
    """Resolve the user id from an ``Authorization: Bearer`` token.

    A presented token must be valid. Without a token the result is None,
    unless AUTH_ENABLED requires one.
    """
    authorization = request.headers.get("Authorization")
    if not authorization:
        if settings.AUTH_ENABLED:
            raise _unauthorized("Not authenticated")
        return None

    if not authorization.startswith("Bearer "):
        raise _unauthorized("Invalid authorization header format")

    try:
        payload = jwt.decode(
            authorization[7:],
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        logger.warning("Rejected bearer token", extra={"error": str(e)})
        raise _unauthorized("Invalid token")

    user_id = payload.get("sub") or payload.get("user_id")
    if not user_id:
        raise _unauthorized("Token has no subject")
    return str(user_id)


def require_user_id(user_id: Optional[str] = Depends(get_current_user_id)) -> str:
    if user_id is None:
        raise _unauthorized("Not authenticated")
    return user_id
