"""Credential helpers: provisioning secrets, bcrypt hashing and admin JWTs.

Provisioning token layout::

    scim_<prefix>_<secret>
         12 hex    base64url (43 chars)

The prefix is stored in clear and indexed; only a bcrypt hash of the secret
part is persisted.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import HTTPException, status

from scimgate.core.clock import RandomSource
from scimgate.core.config import get_settings
from scimgate.core.errors import InvalidStateError, TokenInvalid

TOKEN_TAG = "scim_"
PREFIX_BYTES = 6
SECRET_BYTES = 32
PREFIX_LENGTH = PREFIX_BYTES * 2
_SEPARATOR_AT = len(TOKEN_TAG) + PREFIX_LENGTH


class OneTimeSecret:
    """A plaintext credential that can be revealed exactly once.

    It refuses pickling and never shows its value in ``repr``/``str``, so it
    cannot end up in a log line, a cache or a task queue by accident.
    """

    __slots__ = ("_value", "_revealed")

    def __init__(self, value: str) -> None:
        self._value: str | None = value
        self._revealed = False

    def reveal(self) -> str:
        if self._revealed or self._value is None:
            raise InvalidStateError("secret has already been revealed")
        value, self._value = self._value, None
        self._revealed = True
        return value

    @property
    def revealed(self) -> bool:
        return self._revealed

    def __repr__(self) -> str:
        return "OneTimeSecret('**********')"

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("OneTimeSecret cannot be serialized")

    def __copy__(self):
        raise TypeError("OneTimeSecret cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("OneTimeSecret cannot be copied")


@dataclass(frozen=True)
class CredentialMaterial:
    """Everything produced when minting a credential; only ``prefix``/``secret_hash`` are stored."""

    plaintext: OneTimeSecret
    prefix: str
    secret_hash: str


def mint_credential(random_source: RandomSource, rounds: int) -> CredentialMaterial:
    prefix = random_source(PREFIX_BYTES).hex()
    secret = base64.urlsafe_b64encode(random_source(SECRET_BYTES)).decode().rstrip("=")
    return CredentialMaterial(
        plaintext=OneTimeSecret(f"{TOKEN_TAG}{prefix}_{secret}"),
        prefix=prefix,
        secret_hash=hash_secret(secret, rounds),
    )


def split_credential(presented: str) -> tuple[str, str]:
    """Return ``(prefix, secret)`` or raise ``TokenInvalid`` for a malformed value."""
    if (
        not presented.startswith(TOKEN_TAG)
        or len(presented) <= _SEPARATOR_AT + 1
        or presented[_SEPARATOR_AT] != "_"
    ):
        raise TokenInvalid("malformed token")
    prefix = presented[len(TOKEN_TAG):_SEPARATOR_AT]
    if any(c not in "0123456789abcdef" for c in prefix):
        raise TokenInvalid("malformed token")
    return prefix, presented[_SEPARATOR_AT + 1:]


def hash_secret(secret: str, rounds: int) -> str:
    return bcrypt.hashpw(secret.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def check_secret(secret: str, hashed: str) -> bool:
    """Constant-time comparison (bcrypt.checkpw compares digests with a safe compare)."""
    try:
        return bcrypt.checkpw(secret.encode(), hashed.encode())
    except ValueError:
        # Corrupt hash in storage
        return False


# ── Admin JWT (issued by the host application) ──────────────────────────────

def decode_admin_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iss"]},
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def create_admin_token(subject: str, role: str = "admin", expires_minutes: int = 60) -> str:
    """Mint an admin JWT; used by tooling and tests, the host normally issues these."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
        "iss": settings.jwt_issuer,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
