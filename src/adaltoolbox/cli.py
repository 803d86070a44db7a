"""Command-line interface for acquiring directory tokens.

Usage:
    adal-token acquire --mode secret --resource https://management.azure.com/ \
        --tenant-id <tenant> --application-id <app> --secret <secret>
    adal-token acquire --mode device --resource <resource> --tenant-id <tenant> \
        --application-id <app>
    adal-token generate-certificate --common-name my-app --pem-path app.pem
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from pydantic import ValidationError

from adaltoolbox.auth.certificate import generate_self_signed_certificate
from adaltoolbox.auth.config import AuthConfig, Mode
from adaltoolbox.auth.controller import ServicePrincipalToken, TokenCallback
from adaltoolbox.auth.errors import AdalError, TokenNotFoundError, TokenStoreError
from adaltoolbox.auth.flows import DeviceCode
from adaltoolbox.auth.store import DEFAULT_PERMISSIONS, load_token, save_token
from adaltoolbox.auth.token import Token

logger = logging.getLogger("adaltoolbox")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _config_error(error: ValueError) -> str:
    if isinstance(error, ValidationError):
        return "; ".join(
            e["msg"].removeprefix("Value error, ") for e in error.errors()
        )
    return str(error)


def _persist_to(path: Path) -> TokenCallback:
    def save_token_to_cache(token: Token) -> None:
        save_token(path, DEFAULT_PERMISSIONS, token)
        logger.info("Acquired token was saved in '%s' file", path)

    return save_token_to_cache


def _show_device_code(device_code: DeviceCode) -> None:
    click.echo(
        device_code.message
        or f"To sign in, open {device_code.verification_url} "
        f"and enter the code {device_code.user_code}"
    )


def _cached_token(config: AuthConfig) -> Token | None:
    try:
        token = load_token(config.token_cache_path)
    except TokenNotFoundError:
        return None
    except TokenStoreError as e:
        logger.warning("Ignoring token cache: %s", e)
        return None
    if token.resource != config.resource:
        logger.info("Cached token is for %s, not reusing it", token.resource)
        return None
    return token


@click.group()
def main() -> None:
    """Acquire OAuth2 tokens from a directory-based identity provider."""


@main.command()
@click.option(
    "--mode",
    type=click.Choice([m.value for m in Mode]),
    default=None,
    help="Authentication mode (device, secret, cert). Defaults to device.",
)
@click.option("--resource", default=None, help="Resource for which the token is requested.")
@click.option("--tenant-id", default=None, help="Tenant id.")
@click.option("--application-id", default=None, help="Application id.")
@click.option("--secret", default=None, help="Application secret.")
@click.option(
    "--certificate-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to a PEM bundle or PKCS#12 application certificate.",
)
@click.option("--certificate-password", default=None, help="Certificate password.")
@click.option(
    "--token-cache-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Location of the token cache (default: ~/.adal/accessToken.json).",
)
@click.option("--authority", default=None, help="Directory authority URL.")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Give up waiting for device code sign-in after this many seconds.",
)
@click.option("--reuse-cache", is_flag=True, help="Start from the cached token if valid.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def acquire(
    timeout: float | None, reuse_cache: bool, verbose: bool, **options: object
) -> None:
    """Acquire a token and save it in the token cache."""
    configure_logging(verbose)

    try:
        config = AuthConfig(**{k: v for k, v in options.items() if v is not None})
        directory = config.directory()
        credential = config.credential()
    except ValueError as e:
        raise click.UsageError(_config_error(e)) from e

    logger.info("Authenticating with mode '%s'", config.mode.value)
    try:
        with ServicePrincipalToken(
            directory,
            credential,
            config.resource,
            callbacks=[_persist_to(config.token_cache_path)],
            token=_cached_token(config) if reuse_cache else None,
            prompt=_show_device_code,
        ) as spt:
            if reuse_cache:
                spt.ensure_fresh(timeout=timeout)
            else:
                spt.refresh(timeout=timeout)
    except AdalError as e:
        raise click.ClickException(
            f"Failed to acquire a token for resource {config.resource}. Error: {e}"
        ) from e


@main.command("generate-certificate")
@click.option("--common-name", required=True, help="Common Name of the certificate subject.")
@click.option("--organization", default=None, help="Organization of the certificate subject.")
@click.option("--pem-path", type=click.Path(path_type=Path), default=None)
@click.option("--pfx-path", type=click.Path(path_type=Path), default=None)
@click.option("--pfx-password", default=None)
@click.option("--validity-days", type=int, default=365, show_default=True)
def generate_certificate(
    common_name: str,
    organization: str | None,
    pem_path: Path | None,
    pfx_path: Path | None,
    pfx_password: str | None,
    validity_days: int,
) -> None:
    """Create a self-signed certificate for certificate authentication.

    Upload the certificate part to the application registration and pass the
    written file to ``acquire --mode cert --certificate-path``.
    """
    if pem_path is None and pfx_path is None:
        raise click.UsageError("Specify --pem-path and/or --pfx-path.")

    cert_pem, _ = generate_self_signed_certificate(
        common_name,
        organization_name=organization,
        validity_days=validity_days,
        pem_path=pem_path,
        pfx_path=pfx_path,
        pfx_password=pfx_password,
    )
    click.echo(cert_pem.decode("ascii"), nl=False)
