from __future__ import annotations

from dataclasses import dataclass
from typing import Final
from urllib.parse import quote, urljoin, urlparse

from .errors import InvalidTenantError

ACTIVE_DIRECTORY_ENDPOINT: Final[str] = "https://login.microsoftonline.com/"
API_VERSION: Final[str] = "1.0"

_TENANT_FORBIDDEN = frozenset("/?#")


@dataclass(frozen=True)
class DirectoryConfig:
    """OAuth2 endpoints of one directory tenant."""

    tenant_id: str
    authorize_endpoint: str
    token_endpoint: str
    device_code_endpoint: str


def authority_from_url(url: str) -> str:
    """Return ``url`` normalised to end with a single slash.

    Args:
        url: Absolute authority URL (e.g., "https://login.microsoftonline.com").

    Returns:
        The URL with a trailing slash, suitable for :func:`urllib.parse.urljoin`.

    Raises:
        ValueError: If ``url`` is not absolute or lacks a host.
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError("authority must be an absolute URL")
    return url.rstrip("/") + "/"


def build_directory_config(
    authority: str = ACTIVE_DIRECTORY_ENDPOINT, tenant_id: str = ""
) -> DirectoryConfig:
    """Build the endpoint set for ``tenant_id`` under ``authority``.

    No network access happens here.

    Args:
        authority: Base URL of the directory (e.g., "https://login.microsoftonline.com/").
        tenant_id: Directory (tenant) id or domain name.

    Returns:
        The tenant's :class:`DirectoryConfig`.

    Raises:
        InvalidTenantError: If ``tenant_id`` is empty or contains URL separators.
        ValueError: If ``authority`` is not an absolute URL.
    """
    tenant = (tenant_id or "").strip()
    if not tenant:
        raise InvalidTenantError("tenant_id must be a non-empty string")
    if _TENANT_FORBIDDEN.intersection(tenant):
        raise InvalidTenantError(f"tenant_id contains URL separators: {tenant!r}")

    tenant_url = urljoin(authority_from_url(authority), quote(tenant, safe="") + "/")
    query = f"?api-version={API_VERSION}"

    return DirectoryConfig(
        tenant_id=tenant,
        authorize_endpoint=urljoin(tenant_url, "oauth2/authorize") + query,
        token_endpoint=urljoin(tenant_url, "oauth2/token") + query,
        device_code_endpoint=urljoin(tenant_url, "oauth2/devicecode") + query,
    )
