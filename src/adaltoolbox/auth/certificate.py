"""Client certificate helpers: loading, signed assertions and self-signed generation."""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from .errors import CertificateUnreadableError

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
ASSERTION_LIFETIME = timedelta(minutes=10)


@dataclass(frozen=True)
class ClientCertificate:
    """An RSA private key with the certificate registered for the application."""

    private_key: rsa.RSAPrivateKey
    certificate: x509.Certificate

    @property
    def thumbprint(self) -> str:
        """Base64url SHA-1 thumbprint, as expected in the ``x5t`` JWT header."""
        digest = self.certificate.fingerprint(hashes.SHA1())
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def load_client_certificate(
    certificate_path: str | Path, password: str | None = None
) -> ClientCertificate:
    """Load a private key and certificate from a PEM bundle or PKCS#12 file.

    Args:
        certificate_path: Path to a ``.pem`` bundle holding both the certificate
            and its private key, or to a ``.pfx``/``.p12`` archive.
        password: Optional password protecting the key or archive.

    Returns:
        The loaded :class:`ClientCertificate`.

    Raises:
        CertificateUnreadableError: If the file cannot be read, cannot be
            parsed, or does not hold an RSA key with a certificate.
    """
    path = Path(certificate_path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise CertificateUnreadableError(
            f"Error reading certificate file {path}: {e}"
        ) from e

    secret = password.encode() if password else None
    try:
        if b"-----BEGIN" in data:
            key = serialization.load_pem_private_key(data, password=secret)
            certificate = x509.load_pem_x509_certificate(data)
        else:
            key, certificate, _ = pkcs12.load_key_and_certificates(data, secret)
    except (ValueError, TypeError) as e:
        raise CertificateUnreadableError(
            f"Could not parse certificate file {path}: {e}"
        ) from e

    if certificate is None:
        raise CertificateUnreadableError(f"No certificate found in {path}")
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CertificateUnreadableError(f"No RSA private key found in {path}")
    return ClientCertificate(private_key=key, certificate=certificate)


def build_client_assertion(
    client_certificate: ClientCertificate,
    application_id: str,
    audience: str,
    now: datetime | None = None,
) -> str:
    """Sign a JWT proving possession of the application's certificate.

    Args:
        client_certificate: Key and certificate of the application.
        application_id: Application (client) id; used as issuer and subject.
        audience: Token endpoint the assertion is presented to.
        now: Issue time. Defaults to the current time.

    Returns:
        The compact RS256 JWT.
    """
    now = now or datetime.now(timezone.utc)
    claims = {
        "aud": audience,
        "iss": application_id,
        "sub": application_id,
        "jti": uuid.uuid4().hex,
        "nbf": int(now.timestamp()),
        "exp": int((now + ASSERTION_LIFETIME).timestamp()),
    }
    return jwt.encode(
        claims,
        client_certificate.private_key,
        algorithm="RS256",
        headers={"x5t": client_certificate.thumbprint},
    )


def generate_self_signed_certificate(
    common_name: str,
    *,
    organization_name: str | None = None,
    country_name: str | None = None,
    validity_days: int = 365,
    key_size: int = 2048,
    pem_path: str | Path | None = None,
    pfx_path: str | Path | None = None,
    pfx_password: str | None = None,
) -> tuple[bytes, bytes]:
    """Generate a self-signed certificate for registering with an application.

    The certificate and private key PEM bytes are always returned. Optionally
    a combined PEM bundle and/or a PKCS#12 archive are written to disk, both
    with owner-only permissions.

    Args:
        common_name: Common Name (CN) of the certificate subject.
        organization_name: Organization Name (O) of the subject.
        country_name: Country Name (C) of the subject.
        validity_days: Days from now until the certificate expires.
        key_size: RSA key size in bits.
        pem_path: Where to write the certificate and key as one PEM bundle.
        pfx_path: Where to write a PKCS#12 archive.
        pfx_password: Password protecting the PKCS#12 archive.

    Returns:
        A tuple ``(certificate_pem, private_key_pem)``.
    """
    if not common_name or not common_name.strip():
        raise ValueError("common_name must be a non-empty string.")

    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    # Only non-empty attributes end up in the subject
    name_parts: list[tuple[x509.ObjectIdentifier, str | None]] = [
        (NameOID.COUNTRY_NAME, country_name),
        (NameOID.ORGANIZATION_NAME, organization_name),
        (NameOID.COMMON_NAME, common_name),
    ]
    name = x509.Name(
        [x509.NameAttribute(oid, value) for oid, value in name_parts if value]
    )
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(private_key=key, algorithm=hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )

    if pem_path is not None:
        _write_private(Path(pem_path), cert_pem + key_pem)
    if pfx_path is not None:
        encryption = (
            serialization.BestAvailableEncryption(pfx_password.encode())
            if pfx_password
            else serialization.NoEncryption()
        )
        archive = pkcs12.serialize_key_and_certificates(
            name=common_name.encode(),
            key=key,
            cert=cert,
            cas=None,
            encryption_algorithm=encryption,
        )
        _write_private(Path(pfx_path), archive)

    return cert_pem, key_pem


def _write_private(path: Path, data: bytes) -> None:
    path.touch(mode=0o600, exist_ok=True)
    path.chmod(0o600)
    path.write_bytes(data)
