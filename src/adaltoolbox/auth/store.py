"""Durable token cache.

Tokens are written as JSON through a temporary file in the target directory
which is renamed over the destination, so readers never see a partial write.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from .errors import CorruptTokenError, TokenNotFoundError, TokenStoreError
from .token import Token

logger = logging.getLogger(__name__)

DEFAULT_PERMISSIONS = 0o600


def default_token_cache_path() -> Path:
    """Return the per-user token cache location (``~/.adal/accessToken.json``)."""
    return Path.home() / ".adal" / "accessToken.json"


def save_token(path: str | Path, permissions: int, token: Token) -> None:
    """Atomically write ``token`` to ``path``.

    The temporary file receives ``permissions`` before any token material is
    written to it.

    Args:
        path: Destination file. Missing parent directories are created with
            owner-only access.
        permissions: File mode of the written file (e.g., ``0o600``).
        token: Token to persist.

    Raises:
        TokenStoreError: If the file cannot be written.
    """
    path = Path(path)
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
    except OSError as e:
        raise TokenStoreError(f"Failed to create token cache in {path.parent}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            os.fchmod(handle.fileno(), permissions)
            handle.write(token.model_dump_json())
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise TokenStoreError(f"Failed to save token to {path}: {e}") from e

    logger.debug("Token saved to %s", path)


def load_token(path: str | Path) -> Token:
    """Read a token previously written by :func:`save_token`.

    Raises:
        TokenNotFoundError: If ``path`` does not exist.
        CorruptTokenError: If the content is not a complete token record.
        TokenStoreError: On any other read failure.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except FileNotFoundError as e:
        raise TokenNotFoundError(f"No token cache at {path}") from e
    except OSError as e:
        raise TokenStoreError(f"Failed to read token cache {path}: {e}") from e

    try:
        return Token.model_validate_json(raw)
    except ValidationError as e:
        raise CorruptTokenError(
            f"Token cache {path} is corrupt ({e.error_count()} errors)"
        ) from e
