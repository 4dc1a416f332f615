"""Exception hierarchy shared by the provisioning components.

The HTTP layer maps these onto status codes (see ``scimgate.api.app``); the
components themselves never raise ``HTTPException``.
"""

from __future__ import annotations


class ProvisioningError(Exception):
    """Root of every error raised by the control plane."""

    def __init__(self, message: str = "", **context: object) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context = context


class NotFoundError(ProvisioningError):
    pass


class ConflictError(ProvisioningError):
    pass


class InvalidStateError(ProvisioningError):
    pass


class ValidationError(ProvisioningError):
    pass


class UnavailableError(ProvisioningError):
    """The persistence layer could not be reached."""


class InvalidScope(ValidationError):
    pass


class MappingNotFound(NotFoundError):
    pass


class TargetNotFound(NotFoundError):
    """No team (or team member) row matched in any internal schema."""


# ── Token verification ──────────────────────────────────────────────────────

class TokenVerificationError(ProvisioningError):
    """Any reason a presented bearer credential was refused.

    ``reason`` is kept for audit rows; callers answering the IdP must not echo it.
    """

    reason = "unauthorized"


class TokenNotFound(TokenVerificationError, NotFoundError):
    reason = "not_found"


class TokenInvalid(TokenVerificationError):
    reason = "invalid"


class TokenRevoked(TokenVerificationError, InvalidStateError):
    reason = "revoked"


class TokenExpired(TokenVerificationError, InvalidStateError):
    reason = "expired"
