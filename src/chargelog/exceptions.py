"""Custom exception hierarchy for chargelog."""

from __future__ import annotations

from chargelog._constants import AUTH_ERROR_MESSAGES, DEFAULT_AUTH_ERROR_MESSAGE


class ChargelogError(Exception):
    """Base exception for all chargelog errors."""


class ChargelogConfigError(ChargelogError):
    """Invalid or missing configuration."""


class TrackerValidationError(ChargelogError):
    """User input rejected before any store call."""

    def __init__(self, message: str, *, field: str = "") -> None:
        self.field = field
        super().__init__(message)


class NotAuthenticatedError(ChargelogError):
    """Operation attempted while no identity is signed in."""


class RecordNotFoundError(ChargelogError):
    """Referenced record does not exist in the scoped collection."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class StoreUnavailableError(ChargelogError):
    """Transport or backend failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)


class InvalidFormatError(ChargelogError):
    """Import payload does not have the expected snapshot structure."""


class AuthProviderError(ChargelogError):
    """The authentication provider rejected an operation.

    ``code`` uses the provider-neutral ``auth/<reason>`` form
    (e.g. ``auth/wrong-password``) so callers can map it to a
    user-facing message via :attr:`user_message`.
    """

    def __init__(self, message: str, *, code: str = "") -> None:
        self.code = code
        super().__init__(message)

    @property
    def user_message(self) -> str:
        return AUTH_ERROR_MESSAGES.get(self.code, DEFAULT_AUTH_ERROR_MESSAGE)
