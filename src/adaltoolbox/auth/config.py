from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .credentials import (
    ClientCertificateCredential,
    ClientSecretCredential,
    Credential,
    DeviceCodeCredential,
)
from .directory import ACTIVE_DIRECTORY_ENDPOINT, DirectoryConfig, build_directory_config
from .store import default_token_cache_path


class Mode(str, Enum):
    """Supported authentication modes."""

    DEVICE = "device"
    SECRET = "secret"
    CERT = "cert"


_MANDATORY: dict[Mode, tuple[str, ...]] = {
    Mode.SECRET: ("resource", "tenant_id", "application_id", "secret"),
    Mode.CERT: ("resource", "tenant_id", "application_id", "certificate_path"),
    Mode.DEVICE: ("resource", "tenant_id", "application_id"),
}


class AuthConfig(BaseSettings):
    """Settings selecting the authentication mode and its credential material.

    Values are read from keyword arguments or from the environment using the
    ``ADAL_`` prefix (e.g., ``ADAL_TENANT_ID``). Cross-field validation checks
    the mandatory options of the selected :class:`Mode`.

    Environment variables (aliases supported where noted):
        - ADAL_MODE
        - ADAL_RESOURCE
        - ADAL_TENANT_ID (alias: AZURE_TENANT_ID)
        - ADAL_APPLICATION_ID (alias: AZURE_CLIENT_ID)
        - ADAL_SECRET (alias: AZURE_CLIENT_SECRET)
        - ADAL_CERTIFICATE_PATH (alias: AZURE_CLIENT_CERTIFICATE_PATH)
        - ADAL_CERTIFICATE_PASSWORD (alias: AZURE_CLIENT_CERTIFICATE_PASSWORD)
        - ADAL_TOKEN_CACHE_PATH
        - ADAL_AUTHORITY (alias: AZURE_AUTHORITY_HOST)
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    # Field names are listed in the alias choices so keyword arguments keep
    # working alongside the environment variable names.

    mode: Mode = Field(
        default=Mode.DEVICE,
        validation_alias=AliasChoices("mode", "ADAL_MODE"),
    )
    resource: str | None = Field(
        default=None, validation_alias=AliasChoices("resource", "ADAL_RESOURCE")
    )
    tenant_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("tenant_id", "ADAL_TENANT_ID", "AZURE_TENANT_ID"),
    )
    application_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "application_id", "ADAL_APPLICATION_ID", "AZURE_CLIENT_ID"
        ),
    )
    secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("secret", "ADAL_SECRET", "AZURE_CLIENT_SECRET"),
    )
    certificate_path: Path | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "certificate_path",
            "ADAL_CERTIFICATE_PATH",
            "AZURE_CLIENT_CERTIFICATE_PATH",
        ),
    )
    certificate_password: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "certificate_password",
            "ADAL_CERTIFICATE_PASSWORD",
            "AZURE_CLIENT_CERTIFICATE_PASSWORD",
        ),
    )
    token_cache_path: Path = Field(
        default_factory=default_token_cache_path,
        validation_alias=AliasChoices("token_cache_path", "ADAL_TOKEN_CACHE_PATH"),
    )
    authority: str = Field(
        default=ACTIVE_DIRECTORY_ENDPOINT,
        validation_alias=AliasChoices(
            "authority", "ADAL_AUTHORITY", "AZURE_AUTHORITY_HOST"
        ),
    )

    @field_validator("mode", mode="before")
    @classmethod
    def _normalise_mode(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("certificate_path")
    @classmethod
    def _ensure_existing_path(cls, v: Path | None) -> Path | None:
        """Ensure the certificate exists if provided."""
        if v is not None and str(v).strip() and not v.exists():
            raise ValueError(f"Path does not exist: {v}")
        return v

    @model_validator(mode="after")
    def _cross_field_validation(self) -> "AuthConfig":
        """Validate required options for the selected mode."""
        for name in _MANDATORY[self.mode]:
            value = getattr(self, name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if value is None or not str(value).strip():
                raise ValueError(
                    f"Authentication mode '{self.mode.value}' requires "
                    f"mandatory option '{name}'."
                )
        return self

    def directory(self) -> DirectoryConfig:
        """Build the tenant's endpoints under the configured authority."""
        return build_directory_config(self.authority, self.tenant_id)

    def credential(self) -> Credential:
        """Construct the credential of the selected mode."""
        match self.mode:
            case Mode.SECRET:
                return ClientSecretCredential(
                    application_id=self.application_id,
                    secret=self.secret.get_secret_value(),
                )
            case Mode.CERT:
                return ClientCertificateCredential(
                    application_id=self.application_id,
                    certificate_path=self.certificate_path,
                    certificate_password=(
                        self.certificate_password.get_secret_value()
                        if self.certificate_password
                        else None
                    ),
                )
            case _:
                return DeviceCodeCredential(application_id=self.application_id)
