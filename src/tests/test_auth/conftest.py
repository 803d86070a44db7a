from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

import pytest
import requests

from adaltoolbox.auth.certificate import generate_self_signed_certificate
from adaltoolbox.auth.directory import DirectoryConfig, build_directory_config

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Remove environment variables to prevent cross-test leakage.

    Yields:
        Iterator[None]: Context manager semantics for pytest.
    """
    for k in list(os.environ.keys()):
        if k.startswith(("ADAL_", "AZURE_")):
            monkeypatch.delenv(k, raising=False)
    yield


class StubResponse:
    """Minimal stand-in for :class:`requests.Response`."""

    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self._body = body

    def json(self) -> Any:
        if isinstance(self._body, str):
            raise ValueError("not JSON")
        return self._body


class StubProvider:
    """In-memory identity provider replaying scripted responses.

    Each scripted item is ``(status, body)`` or an exception instance to raise.
    Every call to :meth:`post` is recorded in :attr:`calls`.
    """

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def post(self, url: str, data: dict[str, str] | None = None, **kwargs: Any):
        self.calls.append({"url": url, "data": dict(data or {}), **kwargs})
        if not self.responses:
            raise AssertionError(f"unexpected request to {url}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        status, body = item
        return StubResponse(status, body)

    def close(self) -> None:
        self.closed = True


class FakeMonotonic:
    """Monotonic clock advanced only by :class:`FakeCancel` waits."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class FakeCancel:
    """Event-like cancellation token that advances a fake clock instead of sleeping."""

    def __init__(self, clock: FakeMonotonic, cancel_after: int | None = None) -> None:
        self.clock = clock
        self.waits: list[float] = []
        self.cancel_after = cancel_after

    def wait(self, timeout: float | None = None) -> bool:
        if self.cancel_after is not None and len(self.waits) >= self.cancel_after:
            self.waits.append(0.0)
            return True
        self.waits.append(timeout or 0.0)
        self.clock.now += timeout or 0.0
        return False


def token_body(access_token: str = "AT1", refresh_token: str = "RT1", expires_in: int = 3600):
    body = {
        "token_type": "Bearer",
        "access_token": access_token,
        "expires_in": str(expires_in),
        "resource": "https://example/",
    }
    if refresh_token:
        body["refresh_token"] = refresh_token
    return body


@pytest.fixture()
def directory() -> DirectoryConfig:
    return build_directory_config("https://login.example/", "t1")


@pytest.fixture()
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture()
def network_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection refused")


@pytest.fixture(scope="session")
def pem_certificate(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """A PEM bundle holding a self-signed certificate and its private key."""
    path = tmp_path_factory.mktemp("certs") / "app.pem"
    generate_self_signed_certificate("adal-test", pem_path=path)
    return path


@pytest.fixture(scope="session")
def pfx_certificate(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """A password-protected PKCS#12 archive."""
    path = tmp_path_factory.mktemp("certs") / "app.pfx"
    generate_self_signed_certificate("adal-test", pfx_path=path, pfx_password="pw")
    return path
