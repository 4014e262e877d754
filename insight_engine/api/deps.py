"""
FastAPI dependencies for authentication and service access.
"""

from typing import Optional

from fastapi import Header, HTTPException, WebSocket, status
from jose import JWTError, jwt

from insight_engine.core.config import settings
from insight_engine.services.digest_service import DigestService, digest_service
from insight_engine.services.question_service import QuestionService, question_service

DEV_USER_ID = "dev-user-001"


def _user_from_token(authorization: str) -> str:
    """Decode a bearer token and return its subject."""
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
        )
    if scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme",
        )

    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id: Optional[str] = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return user_id


def resolve_user_id(authorization: Optional[str]) -> str:
    """
    Extract and validate user ID from a bearer credential.

    Development mode falls back to a fixed user when no token is sent.
    """
    if not authorization:
        if settings.environment == "development":
            return DEV_USER_ID
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _user_from_token(authorization)


async def get_current_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    return resolve_user_id(authorization)


def websocket_user_id(websocket: WebSocket) -> str:
    """
    Resolve the user of a WebSocket handshake.

    Browsers cannot set headers on WebSocket requests, so `?token=` is
    accepted alongside the Authorization header.
    """
    authorization = websocket.headers.get("authorization")
    token = websocket.query_params.get("token")
    if not authorization and token:
        authorization = f"Bearer {token}"
    return resolve_user_id(authorization)


def get_question_service() -> QuestionService:
    return question_service


def get_digest_service() -> DigestService:
    return digest_service
