"""Token acquisition and refresh for directory-based OAuth2 providers.

Public API:
- build_directory_config() → DirectoryConfig
- DeviceCodeCredential, ClientSecretCredential, ClientCertificateCredential
- ServicePrincipalToken (acquire/refresh controller)
- Token, save_token(), load_token() (token cache)
- AuthConfig, Mode (host settings)
"""

from .config import AuthConfig, Mode
from .controller import ServicePrincipalToken, TokenState
from .credentials import (
    ClientCertificateCredential,
    ClientSecretCredential,
    Credential,
    DeviceCodeCredential,
)
from .directory import ACTIVE_DIRECTORY_ENDPOINT, DirectoryConfig, build_directory_config
from .store import default_token_cache_path, load_token, save_token
from .token import Token

__all__ = [
    "ACTIVE_DIRECTORY_ENDPOINT",
    "AuthConfig",
    "ClientCertificateCredential",
    "ClientSecretCredential",
    "Credential",
    "DeviceCodeCredential",
    "DirectoryConfig",
    "Mode",
    "ServicePrincipalToken",
    "Token",
    "TokenState",
    "build_directory_config",
    "default_token_cache_path",
    "load_token",
    "save_token",
]
