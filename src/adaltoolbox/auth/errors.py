"""Exception types raised by the token acquisition engine.

Flow errors abort the current acquisition or refresh and are returned to the
caller as-is; no retries happen inside the core.
"""

from __future__ import annotations


class AdalError(Exception):
    """Base exception for all adaltoolbox errors."""


class InvalidTenantError(AdalError, ValueError):
    """Raised when a tenant identifier is empty or malformed."""


class FlowError(AdalError):
    """Raised when a credential flow cannot produce a token.

    Attributes:
        error_code: OAuth2 error code from the provider response (if any).
        status_code: HTTP status code of the failing response (if any).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class InvalidCredentialError(FlowError, ValueError):
    """Raised for missing credential fields or credentials rejected by the provider."""


class CertificateUnreadableError(FlowError):
    """Raised when a client certificate cannot be read or parsed."""


class NetworkError(FlowError):
    """Raised on transport failures, timeouts and non-OAuth HTTP errors."""


class ExpiredError(FlowError):
    """Raised when a device code or refresh token expired before completion."""


class AccessDeniedError(FlowError):
    """Raised when the user declined sign-in or the provider refused the request."""


class FlowCancelledError(FlowError):
    """Raised when the caller cancelled a flow or its deadline passed."""


class ProviderResponseError(FlowError):
    """Raised when a successful provider response is unusable."""


class TokenStoreError(AdalError):
    """Raised when the token cache cannot be read or written."""


class TokenNotFoundError(TokenStoreError):
    """Raised when no token cache file exists at the requested path."""


class CorruptTokenError(TokenStoreError):
    """Raised when a token cache file holds structurally invalid content."""


class CallbackFailedError(AdalError):
    """Raised when a registered token callback fails.

    The token that triggered the callback is kept by the controller; the
    original exception is available as ``__cause__``.
    """

    def __init__(self, message: str, callback: object | None = None) -> None:
        super().__init__(message)
        self.callback = callback
