"""
Identity context for dispatch requests.

Tokens are issued by the external auth service; this module only verifies them
and turns the claims into an ``Identity`` (company, acting user, role). No
credentials are stored or checked here.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from poolroute.core.config import settings
from poolroute.core.exceptions import (
    AuthenticationException,
    PermissionDeniedException,
    TechnicianNotFoundException,
    ValidationException,
)
from poolroute.core.logging import bind_actor

security_scheme = HTTPBearer(auto_error=False)


class Role(str, enum.Enum):
    """Roles recognised by the dispatch core."""

    OWNER = "owner"
    ADMIN = "admin"
    TECHNICIAN = "technician"


@dataclass(frozen=True)
class Identity:
    """Authenticated (company, acting user, role) triple."""

    company_id: UUID
    user_id: UUID
    role: Role
    technician_id: Optional[UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.OWNER, Role.ADMIN)

    def scope_technician(self, requested: Optional[UUID] = None) -> UUID:
        """
        Resolve which technician a read or field action applies to.

        Technicians always act as themselves; naming someone else is reported
        as not found so other technicians' data stays invisible. Admins must
        name the technician explicitly.
        """
        if not self.is_admin:
            if self.technician_id is None:
                raise PermissionDeniedException("Token is not linked to a technician")
            if requested is not None and requested != self.technician_id:
                raise TechnicianNotFoundException(requested)
            return self.technician_id

        if requested is None:
            raise ValidationException("technician_id is required", field="technician_id")
        return requested


# ============== Token Utilities ==============


def create_access_token(identity: Identity, expires_delta: Optional[timedelta] = None) -> str:
    """Create an identity token (used by tooling and tests; production tokens come from auth)."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))

    to_encode = {
        "sub": str(identity.user_id),
        "company_id": str(identity.company_id),
        "role": identity.role.value,
        "exp": expire,
        "type": "access",
    }
    if identity.technician_id is not None:
        to_encode["technician_id"] = str(identity.technician_id)

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def identity_from_claims(payload: dict) -> Identity:
    """Build an Identity from verified token claims."""
    if payload.get("type") != "access":
        raise AuthenticationException("Could not validate credentials")

    try:
        role = Role(payload.get("role"))
        technician_claim = payload.get("technician_id")
        return Identity(
            company_id=UUID(payload["company_id"]),
            user_id=UUID(payload["sub"]),
            role=role,
            technician_id=UUID(technician_claim) if technician_claim else None,
        )
    except (KeyError, TypeError, ValueError):
        raise AuthenticationException("Could not validate credentials")


# ============== Dependencies ==============


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Identity:
    """Get the caller's identity from the bearer token."""
    if credentials is None:
        raise AuthenticationException()

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise AuthenticationException("Could not validate credentials")

    identity = identity_from_claims(payload)
    bind_actor(str(identity.company_id), str(identity.user_id))
    return identity


async def require_admin(
    identity: Identity = Depends(get_identity),
) -> Identity:
    """Require owner or admin role."""
    if not identity.is_admin:
        raise PermissionDeniedException("Admin access required")
    return identity
