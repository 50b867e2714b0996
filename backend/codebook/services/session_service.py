# Overview: Service-layer operations for bearer sessions; issues and verifies signed tokens.

"""
Bearer Token Sessions

WHY: Request handlers are stateless. Every privileged call needs to know who
is acting without a database round-trip, so identity travels in a signed JWT
and is unpacked into an AuthContext once per request.

TOKEN CLAIMS:
- sub:   user id
- email, name, role: copied from the user at issue time
- iat / exp: issue and expiry (JWT_EXPIRES_DAYS, default 7 days)

SECURITY:
- HS256 with JWT_SECRET from config
- Expired, malformed or tampered tokens raise Unauthenticated (401)
- Role is taken from the token; a role change applies on next login
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app
from jose import ExpiredSignatureError, JWTError, jwt

from ..errors import Unauthenticated
from ..models import ROLE_ADMIN, ROLE_USER, VALID_ROLES


@dataclass(frozen=True)
class AuthContext:
    """
    Identity of the caller for one request.

    Passed explicitly into every privileged service function.
    """
    user_id: str
    email: str | None
    name: str | None
    role: str
    issued_at: datetime | None = None
    expires_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def owns(self, user_id: str | None) -> bool:
        return user_id is not None and str(user_id) == str(self.user_id)


def issue_token(user: dict) -> str:
    """Sign a token for a user document."""
    cfg = current_app.config
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user["id"]),
        "email": user.get("email"),
        "name": user.get("name"),
        "role": user.get("role") or ROLE_USER,
        "iat": now,
        "exp": now + timedelta(days=cfg["JWT_EXPIRES_DAYS"]),
    }
    return jwt.encode(claims, cfg["JWT_SECRET"], algorithm=cfg["JWT_ALGORITHM"])


def validate_token(token: str) -> AuthContext:
    """
    Verify signature and expiry and build the AuthContext.

    Raises Unauthenticated for any token that cannot be trusted.
    """
    cfg = current_app.config
    try:
        claims = jwt.decode(token, cfg["JWT_SECRET"], algorithms=[cfg["JWT_ALGORITHM"]])
    except ExpiredSignatureError:
        raise Unauthenticated("Token has expired") from None
    except JWTError:
        raise Unauthenticated("Invalid token") from None

    user_id = claims.get("sub") or claims.get("id")
    if not user_id:
        raise Unauthenticated("Invalid token")

    role = claims.get("role") if claims.get("role") in VALID_ROLES else ROLE_USER

    def _ts(value):
        if value is None:
            return None
        return datetime.fromtimestamp(int(value), tz=timezone.utc)

    return AuthContext(
        user_id=str(user_id),
        email=claims.get("email"),
        name=claims.get("name"),
        role=role,
        issued_at=_ts(claims.get("iat")),
        expires_at=_ts(claims.get("exp")),
    )
