from dataclasses import dataclass
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config import settings
from .constants import Role
from .exceptions import ForbiddenError, UnauthorizedError

security = HTTPBearer(auto_error=False)

WRITE_ROLES = {Role.ADMIN.value, Role.LEAD.value, Role.MEMBER.value}
MANAGE_ROLES = {Role.ADMIN.value, Role.LEAD.value}


@dataclass(frozen=True)
class Principal:
    """Caller identity as asserted by the identity provider's token."""
    id: str
    organization_id: str
    role: str = Role.MEMBER.value

    @property
    def can_write(self) -> bool:
        return self.role in WRITE_ROLES

    @property
    def can_manage(self) -> bool:
        return self.role in MANAGE_ROLES


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """Create JWT access token"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

    return encoded_jwt


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """Get the calling principal from the bearer JWT"""

    if credentials is None:
        raise UnauthorizedError("Not authenticated")

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.algorithm]
        )
    except JWTError:
        raise UnauthorizedError("Could not validate credentials")

    principal_id = payload.get("sub")
    organization_id = payload.get("org")
    if not principal_id or not organization_id:
        raise UnauthorizedError("Could not validate credentials")

    role = payload.get("role", Role.MEMBER.value)
    if role not in {r.value for r in Role}:
        raise UnauthorizedError(f"Unknown role '{role}'")

    return Principal(id=str(principal_id), organization_id=str(organization_id), role=role)


def authorize_project(
    principal: Principal,
    organization_id: str,
    write: bool = False,
    manage: bool = False,
) -> None:
    """Raise ForbiddenError unless the principal may act on a project of ``organization_id``"""

    if principal.organization_id != organization_id:
        raise ForbiddenError("Access denied")

    if manage and not principal.can_manage:
        raise ForbiddenError("Only project leads can change workflow, board or sprint state")

    if write and not principal.can_write:
        raise ForbiddenError("Viewers cannot modify project data")
