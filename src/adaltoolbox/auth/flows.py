"""Credential flows that obtain tokens from the directory's token endpoint.

Each flow implements ``acquire`` (initial token) and ``refresh`` (refresh-token
grant). Flows never persist tokens and never retry; errors are mapped onto
:mod:`adaltoolbox.auth.errors` and raised to the caller.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, assert_never

import requests

from .certificate import CLIENT_ASSERTION_TYPE, build_client_assertion, load_client_certificate
from .credentials import (
    ClientCertificateCredential,
    ClientSecretCredential,
    Credential,
    DeviceCodeCredential,
)
from .directory import DirectoryConfig
from .errors import (
    AccessDeniedError,
    ExpiredError,
    FlowCancelledError,
    FlowError,
    InvalidCredentialError,
    NetworkError,
    ProviderResponseError,
)
from .token import Token, utcnow

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0
SLOW_DOWN_INCREMENT = 5.0
MIN_POLL_INTERVAL = 1.0

_PENDING = "authorization_pending"
_SLOW_DOWN = "slow_down"
_EXPIRED_CODES = frozenset({"code_expired", "expired_token"})
_DENIED_CODES = frozenset(
    {"authorization_declined", "access_denied", "consent_required", "interaction_required"}
)


@dataclass(frozen=True)
class DeviceCode:
    """Device code issued to a public client, shown to the operator."""

    user_code: str
    device_code: str
    verification_url: str
    expires_in: float
    interval: float
    message: str = ""


Prompt = Callable[[DeviceCode], None]


def _log_prompt(device_code: DeviceCode) -> None:
    logger.info(
        "%s",
        device_code.message
        or f"To sign in, open {device_code.verification_url} "
        f"and enter the code {device_code.user_code}",
    )


class _TokenEndpointFlow:
    """Shared plumbing for flows talking to the token endpoint."""

    def __init__(
        self,
        application_id: str,
        *,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.application_id = application_id
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._clock = clock

    def close(self) -> None:
        """Close the HTTP session if this flow created it."""
        if self._owns_session:
            self._session.close()

    def _client_auth(self, directory: DirectoryConfig) -> dict[str, str]:
        """Return the form fields authenticating this client."""
        return {}

    def _post(self, url: str, data: Mapping[str, str]) -> tuple[int, dict[str, Any]]:
        try:
            response = self._session.post(
                url,
                data=dict(data),
                headers={"Accept": "application/json"},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}
        return response.status_code, body

    def _exchange(
        self,
        directory: DirectoryConfig,
        resource: str,
        data: Mapping[str, str],
        refresh_token: str = "",
    ) -> Token:
        issued_at = self._clock()
        status, body = self._post(directory.token_endpoint, data)
        if status >= 400 or "error" in body:
            raise _error_from_response(status, body)
        return Token.from_response(
            body, resource=resource, now=issued_at, refresh_token=refresh_token
        )

    def refresh(
        self, directory: DirectoryConfig, refresh_token: str, resource: str
    ) -> Token:
        """Redeem ``refresh_token`` for a new token.

        Raises:
            ExpiredError: If the provider rejects the refresh token as expired
                or revoked.
        """
        data = {
            "grant_type": "refresh_token",
            "client_id": self.application_id,
            "refresh_token": refresh_token,
            "resource": resource,
            **self._client_auth(directory),
        }
        try:
            return self._exchange(directory, resource, data, refresh_token=refresh_token)
        except InvalidCredentialError as e:
            if e.error_code == "invalid_grant":
                raise ExpiredError(
                    f"Refresh token was rejected: {e}", e.error_code, e.status_code
                ) from e
            raise


class _ClientCredentialsFlow(_TokenEndpointFlow):
    """Client credentials grant: one round trip, no user interaction."""

    def acquire(
        self,
        directory: DirectoryConfig,
        resource: str,
        *,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Token:
        logger.debug(
            "Requesting client credentials token for %s...", self.application_id[:8]
        )
        data = {
            "grant_type": "client_credentials",
            "client_id": self.application_id,
            "resource": resource,
            **self._client_auth(directory),
        }
        return self._exchange(directory, resource, data)


class ClientSecretFlow(_ClientCredentialsFlow):
    """Client credentials grant authenticated with an application secret."""

    def __init__(self, credential: ClientSecretCredential, **kwargs: Any) -> None:
        super().__init__(credential.application_id, **kwargs)
        self._secret = credential.secret

    def _client_auth(self, directory: DirectoryConfig) -> dict[str, str]:
        return {"client_secret": self._secret}


class ClientCertificateFlow(_ClientCredentialsFlow):
    """Client credentials grant authenticated with a certificate-signed assertion."""

    def __init__(self, credential: ClientCertificateCredential, **kwargs: Any) -> None:
        super().__init__(credential.application_id, **kwargs)
        self._certificate_path = credential.certificate_path
        self._certificate_password = credential.certificate_password

    def _client_auth(self, directory: DirectoryConfig) -> dict[str, str]:
        # Loaded per request so a rotated certificate on disk is picked up.
        certificate = load_client_certificate(
            self._certificate_path, self._certificate_password
        )
        assertion = build_client_assertion(
            certificate,
            self.application_id,
            audience=directory.token_endpoint,
            now=self._clock(),
        )
        return {
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": assertion,
        }


class DeviceCodeFlow(_TokenEndpointFlow):
    """Device code grant for a public client.

    The operator is shown a user code through ``prompt`` and signs in on
    another device while this flow polls the token endpoint.
    """

    def __init__(
        self,
        credential: DeviceCodeCredential,
        *,
        prompt: Prompt | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        **kwargs: Any,
    ) -> None:
        super().__init__(credential.application_id, **kwargs)
        self._prompt = prompt or _log_prompt
        self._monotonic = monotonic

    def request_device_code(
        self, directory: DirectoryConfig, resource: str
    ) -> DeviceCode:
        status, body = self._post(
            directory.device_code_endpoint,
            {"client_id": self.application_id, "resource": resource},
        )
        if status >= 400 or "error" in body:
            raise _error_from_response(status, body)
        try:
            return DeviceCode(
                user_code=body["user_code"],
                device_code=body["device_code"],
                verification_url=body.get("verification_url")
                or body["verification_uri"],
                expires_in=float(body["expires_in"]),
                interval=max(float(body.get("interval") or 5), MIN_POLL_INTERVAL),
                message=body.get("message", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderResponseError(f"Malformed device code response: {e}") from e

    def acquire(
        self,
        directory: DirectoryConfig,
        resource: str,
        *,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Token:
        device_code = self.request_device_code(directory, resource)
        self._prompt(device_code)
        return self.wait_for_token(
            directory, resource, device_code, cancel=cancel, timeout=timeout
        )

    def wait_for_token(
        self,
        directory: DirectoryConfig,
        resource: str,
        device_code: DeviceCode,
        *,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> Token:
        """Poll the token endpoint until sign-in completes.

        Waits ``device_code.interval`` seconds before every poll and never
        polls past the device code's expiry.

        Args:
            directory: Endpoints of the tenant.
            resource: Resource the token is requested for.
            device_code: Code returned by :meth:`request_device_code`.
            cancel: Event that aborts the wait when set.
            timeout: Upper bound in seconds for the whole wait.

        Raises:
            FlowCancelledError: If ``cancel`` was set or ``timeout`` elapsed.
            ExpiredError: If the device code expired before sign-in completed.
            AccessDeniedError: If the user declined or the provider refused.
            NetworkError: On transport failures.
        """
        cancel = cancel or threading.Event()
        started = self._monotonic()
        expires_at = started + device_code.expires_in
        deadline = started + timeout if timeout is not None else None
        interval = device_code.interval
        data = {
            "grant_type": "device_code",
            "client_id": self.application_id,
            "code": device_code.device_code,
            "resource": resource,
        }
        polls = 0

        while True:
            now = self._monotonic()
            wait = min(interval, max(expires_at - now, 0.0))
            if deadline is not None:
                wait = min(wait, max(deadline - now, 0.0))
            if cancel.wait(wait):
                raise FlowCancelledError("Device code sign-in was cancelled")
            now = self._monotonic()
            if deadline is not None and now >= deadline:
                raise FlowCancelledError(
                    f"Device code sign-in did not complete within {timeout} seconds"
                )
            if now >= expires_at:
                raise ExpiredError("Device code expired before sign-in completed")

            issued_at = self._clock()
            status, body = self._post(directory.token_endpoint, data)
            polls += 1
            error = body.get("error")

            if error == _PENDING:
                continue
            if error == _SLOW_DOWN:
                interval += SLOW_DOWN_INCREMENT
                logger.debug("Provider asked to slow down; interval now %.0fs", interval)
                continue
            if status >= 400 or error:
                failure = _error_from_response(status, body)
                if isinstance(failure, InvalidCredentialError):
                    failure = AccessDeniedError(
                        str(failure), failure.error_code, failure.status_code
                    )
                raise failure

            logger.info("Device code sign-in completed after %d polls", polls)
            return Token.from_response(body, resource=resource, now=issued_at)


Flow = ClientSecretFlow | ClientCertificateFlow | DeviceCodeFlow


def flow_for(
    credential: Credential,
    *,
    session: requests.Session | None = None,
    prompt: Prompt | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Flow:
    """Return the flow that presents ``credential`` to the provider."""
    match credential:
        case DeviceCodeCredential():
            return DeviceCodeFlow(credential, prompt=prompt, session=session, clock=clock)
        case ClientCertificateCredential():
            return ClientCertificateFlow(credential, session=session, clock=clock)
        case ClientSecretCredential():
            return ClientSecretFlow(credential, session=session, clock=clock)
        case _:
            assert_never(credential)


def _error_from_response(status: int, body: Mapping[str, Any]) -> FlowError:
    """Map an error response from the provider onto a flow error."""
    error = body.get("error")
    description = body.get("error_description") or error or f"HTTP {status}"
    if not error:
        return NetworkError(f"Provider returned HTTP {status}", None, status)
    if error in _EXPIRED_CODES:
        return ExpiredError(description, error, status)
    if error in _DENIED_CODES:
        return AccessDeniedError(description, error, status)
    if status >= 500:
        return NetworkError(description, error, status)
    return InvalidCredentialError(description, error, status)
