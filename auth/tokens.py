"""
auth/tokens.py -- JWT and password hashing utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (user id), role, email and expiry. verify_access_token() raises
       InvalidToken on any failure -- the role gate turns that into 401.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  SECRET_KEY: read from core.config.get_settings() at call time, so tests
       that clear the settings cache pick up a new key without re-importing.

Layer rule: no imports from api/ or hub/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import IdentityClaim, Role
from core.config import get_settings
from core.errors import InvalidToken

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("repohub.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; the API caps passwords at 72
    characters so nothing is silently ignored for ASCII input.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("repohub_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / verify
# ---------------------------------------------------------------------------


def create_access_token(
    user_id: str,
    role: Role | str,
    email: str | None = None,
    expire_seconds: int = 0,
) -> str:
    """Encode a signed JWT for the given identity.

    expire_seconds of 0 (default) uses Settings.token_expire_seconds.
    A negative value produces an already-expired token (used by tests).
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds != 0 else settings.token_expire_seconds
    payload = {
        "sub": user_id,
        "role": Role(role).value,
        "email": email,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=duration),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def verify_access_token(token: str) -> IdentityClaim:
    """Verify signature and expiry, then build the IdentityClaim.

    Raises InvalidToken when the token is malformed, expired, signed with a
    different key, or carries no subject / an unknown role.
    """
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except JWTError as exc:
        raise InvalidToken(str(exc)) from exc

    subject = payload.get("sub")
    if not subject:
        raise InvalidToken("Token has no subject")
    try:
        role = Role(payload.get("role"))
    except ValueError as exc:
        raise InvalidToken(f"Unknown role {payload.get('role')!r}") from exc
    return IdentityClaim(subject_id=subject, role=role, email=payload.get("email"))


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
