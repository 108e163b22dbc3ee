"""
Bearer authentication for the admin back-office.

Tokens are HS256 JWTs issued by Supabase auth. A caller is an administrator
when the token carries role=admin or its e-mail is listed in ADMIN_EMAILS.
Patient booking endpoints are public and never depend on this module.
"""
import os
import logging
from dataclasses import dataclass, field
from typing import Optional

import jwt  # PyJWT
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config import ADMIN_EMAILS

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

JWT_SECRET = os.getenv("JWT_SECRET", "development-secret-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class TokenPayload:
    """Claims the back-office cares about."""
    sub: Optional[str]
    email: Optional[str]
    role: str
    claims: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_claims(cls, claims: dict) -> "TokenPayload":
        email = claims.get("email")
        return cls(
            sub=claims.get("sub"),
            email=email.lower() if email else None,
            role=claims.get("role") or "user",
            claims=claims,
        )

    @property
    def actor(self) -> str:
        """Identifier written to performed_by in the audit trail."""
        return self.sub or self.email or ADMIN_ROLE

    @property
    def is_admin(self) -> bool:
        if self.role == ADMIN_ROLE:
            return True
        return self.email is not None and self.email in ADMIN_EMAILS


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def decode_bearer(token: str) -> TokenPayload:
    """Verify signature and expiry, raising 401 on any failure."""
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise _unauthorized("Invalid token")
    return TokenPayload.from_claims(claims)


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenPayload:
    """
    Dependency guarding every /api/admin route.

    Usage:
        @router.get("/contracts")
        async def list_contracts(admin: TokenPayload = Depends(require_admin)):
            ...
    """
    if credentials is None:
        raise _unauthorized("Authentication required")

    payload = decode_bearer(credentials.credentials)
    if not payload.is_admin:
        logger.warning(f"Back-office access denied for {payload.actor} (role={payload.role})")
        raise HTTPException(status_code=403, detail="Admin access required")
    return payload
