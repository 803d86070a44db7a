from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from azure.core.credentials import AccessToken
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ProviderResponseError


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Token(BaseModel):
    """An OAuth2 access/refresh token pair issued for one resource.

    Instances are immutable; a refresh produces a new ``Token``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(min_length=1, repr=False)
    refresh_token: str = Field(default="", repr=False)
    expires_on: datetime
    not_before: datetime | None = None
    resource: str = ""
    token_type: str = "Bearer"

    @field_validator("expires_on", "not_before")
    @classmethod
    def _ensure_utc(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def will_expire_in(self, skew: timedelta, now: datetime | None = None) -> bool:
        """Return True if the token expires within ``skew`` of ``now``."""
        return (now or utcnow()) >= self.expires_on - skew

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.will_expire_in(timedelta(0), now)

    def to_access_token(self) -> AccessToken:
        """Expose the token through the azure-core credential protocol."""
        return AccessToken(self.access_token, int(self.expires_on.timestamp()))

    @classmethod
    def from_response(
        cls,
        payload: Mapping[str, Any],
        *,
        resource: str,
        now: datetime | None = None,
        refresh_token: str = "",
    ) -> "Token":
        """Build a token from a token-endpoint JSON response.

        ``expires_in`` (relative to ``now``) is preferred over the absolute
        ``expires_on`` so local clock drift does not matter.

        Args:
            payload: Decoded JSON body of a successful token response.
            resource: Resource the token was requested for; used when the
                response does not echo it.
            now: Time the request was issued. Defaults to the current time.
            refresh_token: Refresh token to keep when the response has none.

        Raises:
            ProviderResponseError: If the response lacks an access token or
                any usable expiry.
        """
        now = now or utcnow()
        try:
            if payload.get("expires_in") not in (None, ""):
                expires_on = now + timedelta(seconds=int(payload["expires_in"]))
            elif payload.get("expires_on") not in (None, ""):
                expires_on = datetime.fromtimestamp(
                    int(payload["expires_on"]), tz=timezone.utc
                )
            else:
                raise ProviderResponseError("token response carries no expiry")

            not_before = None
            if payload.get("not_before") not in (None, ""):
                not_before = datetime.fromtimestamp(
                    int(payload["not_before"]), tz=timezone.utc
                )

            return cls(
                access_token=payload.get("access_token") or "",
                refresh_token=payload.get("refresh_token") or refresh_token,
                expires_on=expires_on,
                not_before=not_before,
                resource=payload.get("resource") or resource,
                token_type=payload.get("token_type") or "Bearer",
            )
        except (TypeError, ValueError, ValidationError) as e:
            raise ProviderResponseError(f"Malformed token response: {e}") from e
