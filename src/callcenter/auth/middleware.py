"""
Authentication dependency for JWT validation.

This module exposes:
- CurrentUser
- get_current_user
- CurrentUserDep (FastAPI dependency alias)
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from callcenter.auth.jwt import JWTHandler
from callcenter.auth.repository import UserRepository
from callcenter.config import Settings, get_settings
from callcenter.shared.database import get_db_session
from callcenter.shared.exceptions import InvalidTokenError, TokenExpiredError
from callcenter.shared.logging import get_logger

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """Current authenticated user information."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(..., description="User ID")
    email: str = Field(default="", description="User email")
    name: str = Field(default="", description="User display name")
    role: str = Field(..., description="User role")
    extension: str | None = Field(default=None, description="Internal PBX extension")


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    """Extract and validate current user from JWT token.

    Role and extension come from the token claims; when either is missing
    the users table is consulted.
    """
    if credentials is None:
        logger.warning(
            "Missing authentication credentials",
            extra={
                "endpoint": str(request.url.path),
                "method": request.method,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": "MISSING_CREDENTIALS",
                "message": "Authentication credentials required",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = JWTHandler(settings).validate_access_token(credentials.credentials)

        user_id = payload.get("user_id") or payload.get("sub")
        if not user_id:
            raise InvalidTokenError(
                message="Token missing user_id",
                details={"payload_keys": list(payload.keys())},
            )
        try:
            uid = UUID(str(user_id))
        except ValueError:
            raise InvalidTokenError(message="Malformed user_id", details={"user_id": user_id})

        role = payload.get("role")
        extension = payload.get("extension")
        email = payload.get("email", "") or ""
        name = payload.get("name", "") or ""

        if role is None or extension is None:
            user = await UserRepository(session).get_by_id(uid)
            if user is None:
                raise InvalidTokenError(
                    message="User not found",
                    details={"user_id": str(uid)},
                )
            role = role or user.role
            extension = extension if extension is not None else user.extension
            email = email or user.email
            name = name or user.name

        return CurrentUser(
            id=uid,
            email=email,
            name=name,
            role=role,
            extension=extension,
        )

    except TokenExpiredError:
        logger.info(
            "Token expired",
            extra={"endpoint": str(request.url.path), "method": request.method},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "TOKEN_EXPIRED", "message": "Token has expired"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    except InvalidTokenError as e:
        logger.warning(
            "Invalid token",
            extra={
                "endpoint": str(request.url.path),
                "method": request.method,
                "error": e.message,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": e.code, "message": e.message},
            headers={"WWW-Authenticate": "Bearer"},
        )


CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
