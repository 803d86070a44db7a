from __future__ import annotations

import stat
from datetime import timedelta
from pathlib import Path

import pytest
import requests
from click.testing import CliRunner

from adaltoolbox.auth.store import DEFAULT_PERMISSIONS, load_token, save_token
from adaltoolbox.auth.token import Token, utcnow
from adaltoolbox.cli import main

from conftest import StubProvider, token_body


@pytest.fixture()
def provider(monkeypatch: pytest.MonkeyPatch) -> StubProvider:
    stub = StubProvider()
    monkeypatch.setattr(requests, "Session", lambda: stub)
    return stub


def _secret_args(cache: Path) -> list[str]:
    return [
        "acquire",
        "--mode", "secret",
        "--resource", "https://example/",
        "--tenant-id", "t1",
        "--application-id", "a1",
        "--secret", "s1",
        "--authority", "https://login.example/",
        "--token-cache-path", str(cache),
    ]


def test_acquire_secret__saves_token(provider: StubProvider, tmp_path: Path) -> None:
    provider.queue((200, token_body("AT1", "RT1")))
    cache = tmp_path / ".adal" / "accessToken.json"

    result = CliRunner().invoke(main, _secret_args(cache))

    assert result.exit_code == 0, result.output
    assert load_token(cache).access_token == "AT1"
    assert stat.S_IMODE(cache.stat().st_mode) == 0o600
    assert provider.calls[0]["url"] == (
        "https://login.example/t1/oauth2/token?api-version=1.0"
    )
    assert provider.closed


def test_acquire__missing_mandatory_option(provider: StubProvider, tmp_path: Path) -> None:
    args = _secret_args(tmp_path / "t.json")
    i = args.index("--secret")
    del args[i : i + 2]

    result = CliRunner().invoke(main, args)

    assert result.exit_code == 2
    assert "Authentication mode 'secret' requires mandatory option 'secret'." in result.output
    assert provider.calls == []


def test_acquire__provider_rejection_exits_with_message(
    provider: StubProvider, tmp_path: Path
) -> None:
    provider.queue((401, {"error": "invalid_client", "error_description": "bad secret"}))
    cache = tmp_path / "accessToken.json"

    result = CliRunner().invoke(main, _secret_args(cache))

    assert result.exit_code == 1
    assert (
        "Failed to acquire a token for resource https://example/. Error: bad secret"
        in result.output
    )
    assert not cache.exists()


def test_acquire_device__shows_code(provider: StubProvider, tmp_path: Path) -> None:
    provider.queue(
        (
            200,
            {
                "user_code": "ABCD",
                "device_code": "dc",
                "verification_url": "https://microsoft.com/devicelogin",
                "expires_in": "900",
                "interval": "1",
            },
        ),
        (200, token_body("AT-device")),
    )
    cache = tmp_path / "accessToken.json"

    result = CliRunner().invoke(
        main,
        [
            "acquire",
            "--mode", "device",
            "--resource", "https://example/",
            "--tenant-id", "t1",
            "--application-id", "a1",
            "--token-cache-path", str(cache),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "enter the code ABCD" in result.output
    assert load_token(cache).access_token == "AT-device"


def test_acquire__reuse_cache_skips_network(provider: StubProvider, tmp_path: Path) -> None:
    cache = tmp_path / "accessToken.json"
    cached = Token(
        access_token="AT-cached",
        expires_on=utcnow() + timedelta(hours=1),
        resource="https://example/",
    )
    save_token(cache, DEFAULT_PERMISSIONS, cached)

    result = CliRunner().invoke(main, [*_secret_args(cache), "--reuse-cache"])

    assert result.exit_code == 0, result.output
    assert provider.calls == []
    assert load_token(cache) == cached


def test_acquire__reuse_cache_ignores_corrupt_file(provider: StubProvider, tmp_path: Path) -> None:
    cache = tmp_path / "accessToken.json"
    cache.write_text("{not json")
    provider.queue((200, token_body("AT1")))

    result = CliRunner().invoke(main, [*_secret_args(cache), "--reuse-cache"])

    assert result.exit_code == 0, result.output
    assert load_token(cache).access_token == "AT1"


def test_acquire__reuse_cache_unreadable_path_reports_failure(
    provider: StubProvider, tmp_path: Path
) -> None:
    cache = tmp_path / "accessToken.json"
    cache.mkdir()
    provider.queue((200, token_body("AT1")))

    result = CliRunner().invoke(main, [*_secret_args(cache), "--reuse-cache"])

    assert result.exit_code == 1
    assert "Failed to acquire a token for resource https://example/." in result.output
    assert not isinstance(result.exception, OSError)
    assert len(provider.calls) == 1


def test_generate_certificate(tmp_path: Path) -> None:
    pem = tmp_path / "app.pem"

    result = CliRunner().invoke(
        main, ["generate-certificate", "--common-name", "my-app", "--pem-path", str(pem)]
    )

    assert result.exit_code == 0, result.output
    assert result.output.startswith("-----BEGIN CERTIFICATE-----")
    assert b"PRIVATE KEY" in pem.read_bytes()


def test_generate_certificate__requires_output(tmp_path: Path) -> None:
    result = CliRunner().invoke(main, ["generate-certificate", "--common-name", "my-app"])
    assert result.exit_code == 2
