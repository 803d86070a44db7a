from __future__ import annotations

from urllib.parse import urlparse

import pytest
from hypothesis import given
from hypothesis import strategies as st

from adaltoolbox.auth.directory import (
    ACTIVE_DIRECTORY_ENDPOINT,
    authority_from_url,
    build_directory_config,
)
from adaltoolbox.auth.errors import InvalidTenantError

# Strategy: absolute http/https authorities with host
authorities = st.builds(
    lambda scheme, host: f"{scheme}://{host}",
    scheme=st.sampled_from(["http", "https"]),
    host=st.from_regex(
        r"(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,}", fullmatch=True
    ),
)
tenants = st.from_regex(r"[A-Za-z0-9][A-Za-z0-9.-]{0,40}", fullmatch=True)


@given(authorities, tenants)
def test_build__endpoints_are_absolute_and_under_tenant(authority: str, tenant: str) -> None:
    """Every endpoint is an absolute URL below <authority>/<tenant>/oauth2/."""
    cfg = build_directory_config(authority, tenant)
    for url in (cfg.authorize_endpoint, cfg.token_endpoint, cfg.device_code_endpoint):
        parsed = urlparse(url)
        assert parsed.scheme and parsed.netloc == urlparse(authority).netloc
        assert parsed.path.startswith(f"/{tenant}/oauth2/")
        assert parsed.query == "api-version=1.0"
    assert cfg.tenant_id == tenant


def test_build__default_authority() -> None:
    cfg = build_directory_config(ACTIVE_DIRECTORY_ENDPOINT, "  t1 ")
    assert cfg.tenant_id == "t1"
    assert cfg.authorize_endpoint == (
        "https://login.microsoftonline.com/t1/oauth2/authorize?api-version=1.0"
    )
    assert cfg.token_endpoint == (
        "https://login.microsoftonline.com/t1/oauth2/token?api-version=1.0"
    )
    assert cfg.device_code_endpoint == (
        "https://login.microsoftonline.com/t1/oauth2/devicecode?api-version=1.0"
    )


def test_build__authority_without_trailing_slash_keeps_path() -> None:
    cfg = build_directory_config("https://login.example/base", "t1")
    assert cfg.token_endpoint == "https://login.example/base/t1/oauth2/token?api-version=1.0"


@pytest.mark.parametrize("bad", ["", "   ", "a/b", "t?x", "t#x"])
def test_build__invalid_tenant_raises(bad: str) -> None:
    with pytest.raises(InvalidTenantError):
        build_directory_config(ACTIVE_DIRECTORY_ENDPOINT, bad)


def test_build__none_tenant_raises() -> None:
    with pytest.raises(InvalidTenantError):
        build_directory_config(ACTIVE_DIRECTORY_ENDPOINT, None)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "bad",
    ["", "foo", "/relative", "://", "http:///only-path", "https://"],
)
def test_authority_from_url__invalid_inputs_raise(bad: str) -> None:
    """Relative or malformed URLs must raise ValueError."""
    with pytest.raises(ValueError, match="must be an absolute URL"):
        authority_from_url(bad)
