"""Credential variants accepted by the token controller.

Exactly one variant is used per session. Each validates its mandatory fields
on construction so a malformed credential never reaches the network.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from .errors import InvalidCredentialError


def _require(mode: str, **fields: object) -> None:
    for name, value in fields.items():
        if isinstance(value, Path) and value == Path(""):
            value = ""
        if value is None or not str(value).strip():
            raise InvalidCredentialError(
                f"Authentication mode '{mode}' requires mandatory option '{name}'."
            )


@dataclass(frozen=True)
class DeviceCodeCredential:
    """Public client signing in a user through the device code flow."""

    application_id: str

    def __post_init__(self) -> None:
        _require("device", application_id=self.application_id)


@dataclass(frozen=True)
class ClientSecretCredential:
    """Confidential client presenting an application secret."""

    application_id: str
    secret: str = field(repr=False)

    def __post_init__(self) -> None:
        _require("secret", application_id=self.application_id, secret=self.secret)


@dataclass(frozen=True)
class ClientCertificateCredential:
    """Confidential client presenting an assertion signed with its certificate.

    ``certificate_path`` points at a PEM bundle (certificate and private key)
    or a PKCS#12 file.
    """

    application_id: str
    certificate_path: Path
    certificate_password: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        _require(
            "cert",
            application_id=self.application_id,
            certificate_path=self.certificate_path,
        )
        object.__setattr__(self, "certificate_path", Path(self.certificate_path))


Credential = Union[DeviceCodeCredential, ClientSecretCredential, ClientCertificateCredential]
