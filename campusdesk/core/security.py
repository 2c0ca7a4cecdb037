# campusdesk/core/security.py
"""Bearer token validation and permission checks.

Tokens are issued by the external identity provider; this service only
verifies them and maps the subject to an internal user with roles and
permission codes.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Optional
from uuid import UUID
import logging

import jwt
from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_db
from .exceptions import AuthenticationError, PermissionDenied
from ..models.user import User

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class CallerIdentity:
    user_id: UUID
    roles: FrozenSet[str] = field(default_factory=frozenset)
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles

    def can(self, permission_code: str) -> bool:
        return self.is_admin or permission_code in self.permissions


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token") from exc

    if "sub" not in payload:
        raise AuthenticationError("Invalid token payload")
    return payload


def _parse_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise AuthenticationError("Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthenticationError("Invalid auth scheme")
    return parts[1].strip()


async def get_current_user(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> CallerIdentity:
    payload = decode_access_token(_parse_token(authorization))
    try:
        user_id = UUID(str(payload["sub"]))
    except ValueError as exc:
        raise AuthenticationError("Invalid token subject") from exc

    user = (await db.execute(
        select(User).where(User.id == user_id, User.deleted_at.is_(None))
    )).scalar_one_or_none()
    if not user:
        raise AuthenticationError("Unknown user")
    if user.account_status != "active":
        raise PermissionDenied("Account is not active")

    roles = frozenset(role.code for role in user.roles)
    permissions = frozenset(permission.code for role in user.roles for permission in role.permissions)
    return CallerIdentity(user_id=user.id, roles=roles, permissions=permissions)


def require_permission(permission_code: str) -> Callable:
    async def dependency(caller: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
        if not caller.can(permission_code):
            logger.warning("User %s denied: missing permission %s", caller.user_id, permission_code)
            raise PermissionDenied(f"Missing permission {permission_code}")
        return caller

    return dependency
