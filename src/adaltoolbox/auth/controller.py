"""Service principal token controller.

Owns the current :class:`Token`, drives the configured credential flow to
obtain and refresh it, and notifies token callbacks whenever it changes.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterable

import requests
from azure.core.credentials import AccessToken

from .credentials import Credential
from .directory import DirectoryConfig
from .errors import CallbackFailedError
from .flows import Flow, Prompt, flow_for
from .token import Token, utcnow

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_SKEW = timedelta(minutes=5)

TokenCallback = Callable[[Token], None]


class TokenState(str, Enum):
    """Lifecycle states of a controller's token."""

    UNINITIALIZED = "uninitialized"
    ACQUIRING = "acquiring"
    VALID = "valid"
    REFRESHING = "refreshing"
    INVALID = "invalid"


class ServicePrincipalToken:
    """Acquires, refreshes and publishes the token of one client application.

    Callbacks receive every newly obtained token, in registration order. A
    callback signals failure by raising; the remaining callbacks are skipped
    and the triggering call raises :class:`CallbackFailedError`, but the new
    token is kept.

    Public methods may be called from several threads. Refreshes are
    serialised and readers always observe a complete token.
    """

    def __init__(
        self,
        directory: DirectoryConfig,
        credential: Credential,
        resource: str,
        *,
        callbacks: Iterable[TokenCallback] = (),
        token: Token | None = None,
        session: requests.Session | None = None,
        prompt: Prompt | None = None,
        refresh_skew: timedelta = DEFAULT_REFRESH_SKEW,
        clock: Callable[[], datetime] = utcnow,
        flow: Flow | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            directory: Endpoints of the tenant.
            credential: Credential presented to the provider.
            resource: Resource the token is requested for.
            callbacks: Token callbacks, e.g. persisting the token on disk.
            token: Previously cached token to start from.
            session: HTTP session used by the credential flow.
            prompt: Receives the device code when the device flow runs.
            refresh_skew: Margin before expiry at which the token is refreshed.
            clock: Source of the current UTC time.
            flow: Flow override; built from ``credential`` when omitted.
        """
        self.directory = directory
        self.credential = credential
        self.resource = resource
        self.refresh_skew = refresh_skew
        self._clock = clock
        self._owns_flow = flow is None
        self._flow = flow or flow_for(
            credential, session=session, prompt=prompt, clock=clock
        )
        self._callbacks: list[TokenCallback] = list(callbacks)
        self._token = token
        self._state = TokenState.VALID if token else TokenState.UNINITIALIZED
        self._refresh_lock = threading.Lock()
        self._state_lock = threading.Lock()

    @property
    def current_token(self) -> Token | None:
        """Last known token, which may be expired or stale."""
        with self._state_lock:
            return self._token

    @property
    def state(self) -> TokenState:
        with self._state_lock:
            return self._state

    @property
    def is_stale(self) -> bool:
        """True when the last refresh failed and the held token was not replaced."""
        with self._state_lock:
            return self._state is TokenState.INVALID and self._token is not None

    def register_callback(self, callback: TokenCallback) -> None:
        with self._state_lock:
            self._callbacks.append(callback)

    def refresh(
        self, *, cancel: threading.Event | None = None, timeout: float | None = None
    ) -> None:
        """Obtain a new token.

        Uses the held refresh token when there is one, otherwise runs the
        credential flow.

        Raises:
            FlowError: If the provider did not issue a token.
            CallbackFailedError: If a callback failed after a token was issued.
        """
        with self._refresh_lock:
            self._refresh_locked(cancel=cancel, timeout=timeout)

    def reauthenticate(
        self, *, cancel: threading.Event | None = None, timeout: float | None = None
    ) -> None:
        """Run the full credential flow, ignoring any refresh token."""
        with self._refresh_lock:
            self._refresh_locked(cancel=cancel, timeout=timeout, use_refresh_token=False)

    def ensure_fresh(
        self, *, cancel: threading.Event | None = None, timeout: float | None = None
    ) -> None:
        """Refresh the token if it is missing or about to expire.

        A stale token that is still outside the refresh window is kept as is;
        call :meth:`refresh` or :meth:`reauthenticate` to retry immediately.
        """
        with self._refresh_lock:
            with self._state_lock:
                token = self._token
            if token is not None and not token.will_expire_in(
                self.refresh_skew, self._clock()
            ):
                return
            self._refresh_locked(cancel=cancel, timeout=timeout)

    def close(self) -> None:
        """Release the HTTP session of a flow this controller created."""
        if self._owns_flow:
            self._flow.close()

    def __enter__(self) -> ServicePrincipalToken:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        """Return a fresh token through the azure-core ``TokenCredential`` protocol.

        The controller is bound to one resource, so ``scopes`` are ignored.
        """
        self.ensure_fresh()
        return self.current_token.to_access_token()

    def _refresh_locked(
        self,
        *,
        cancel: threading.Event | None,
        timeout: float | None,
        use_refresh_token: bool = True,
    ) -> None:
        with self._state_lock:
            previous = self._token
            self._state = (
                TokenState.ACQUIRING if previous is None else TokenState.REFRESHING
            )

        try:
            if use_refresh_token and previous is not None and previous.refresh_token:
                logger.debug("Refreshing token for %s", self.resource)
                token = self._flow.refresh(
                    self.directory, previous.refresh_token, self.resource
                )
            else:
                logger.debug("Acquiring token for %s", self.resource)
                token = self._flow.acquire(
                    self.directory, self.resource, cancel=cancel, timeout=timeout
                )
        except Exception as e:
            with self._state_lock:
                self._state = TokenState.INVALID
            logger.warning("Failed to obtain token for %s: %s", self.resource, e)
            raise

        if previous is not None and token.expires_on < previous.expires_on:
            logger.warning(
                "Provider issued a token for %s expiring at %s, before the held "
                "one at %s; keeping the held token",
                self.resource,
                token.expires_on.isoformat(),
                previous.expires_on.isoformat(),
            )
            with self._state_lock:
                self._state = TokenState.VALID
            return

        with self._state_lock:
            self._token = token
            self._state = TokenState.VALID
            callbacks = list(self._callbacks)

        logger.info(
            "Obtained token for %s expiring at %s",
            self.resource,
            token.expires_on.isoformat(),
        )
        self._notify(callbacks, token)

    def _notify(self, callbacks: list[TokenCallback], token: Token) -> None:
        for callback in callbacks:
            try:
                callback(token)
            except Exception as e:
                name = getattr(callback, "__name__", repr(callback))
                logger.error("Token callback %s failed: %s", name, e)
                raise CallbackFailedError(
                    f"Token callback {name} failed: {e}", callback=callback
                ) from e
