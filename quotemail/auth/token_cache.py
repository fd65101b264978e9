# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Persisted OAuth credential.

The cache is a single JSON record::

    {"accessToken": "...", "refreshToken": "...",
     "expiresOn": "2026-01-01T12:00:00+00:00", ...}

Any other fields of the token response are passed through unchanged.  Every
save replaces the whole file atomically; nothing is merged with the previous
record.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from quotemail.atomic import atomic_write
from quotemail.logging import SecretFilter


logger = logging.getLogger(__name__)

# Token response fields mapped onto CachedCredential attributes.
_MAPPED_RESPONSE_KEYS = frozenset(
    {"access_token", "refresh_token", "expires_in"}
)
_MAPPED_CACHE_KEYS = frozenset({"accessToken", "refreshToken", "expiresOn"})


@dataclass(frozen=True)
class CachedCredential:
    """An access token with its refresh token and expiry.

    Attributes:
        access_token: Bearer token for Graph calls.
        expires_on: Absolute expiry (timezone-aware, UTC).
        refresh_token: Token for silent renewal, if issued.
        extra: Other provider fields, stored opaquely.
    """

    access_token: str
    expires_on: datetime
    refresh_token: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def is_valid(self, now: datetime) -> bool:
        """Whether the access token is still usable at ``now``."""
        return self.expires_on > now

    @classmethod
    def from_token_response(
        cls, response: Mapping[str, Any], now: datetime
    ) -> "CachedCredential":
        """Build a credential from an MSAL token response.

        A response without ``expires_in`` is treated as already expired.

        Args:
            response: MSAL result dict (must contain ``access_token``).
            now: Time the response was received.

        Returns:
            CachedCredential instance.
        """
        expires_in = int(response.get("expires_in") or 0)
        return cls(
            access_token=response["access_token"],
            expires_on=now + timedelta(seconds=expires_in),
            refresh_token=response.get("refresh_token") or None,
            extra={
                k: v
                for k, v in response.items()
                if k not in _MAPPED_RESPONSE_KEYS
            },
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk JSON shape."""
        data = dict(self.extra)
        data["accessToken"] = self.access_token
        data["refreshToken"] = self.refresh_token
        data["expiresOn"] = self.expires_on.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CachedCredential":
        """Deserialize from the on-disk JSON shape.

        Raises:
            KeyError: If ``accessToken`` or ``expiresOn`` is missing.
            ValueError: If ``expiresOn`` is not an ISO 8601 timestamp.
        """
        expires_on = datetime.fromisoformat(data["expiresOn"])
        if expires_on.tzinfo is None:
            expires_on = expires_on.replace(tzinfo=UTC)
        return cls(
            access_token=data["accessToken"],
            expires_on=expires_on,
            refresh_token=data.get("refreshToken") or None,
            extra={
                k: v for k, v in data.items() if k not in _MAPPED_CACHE_KEYS
            },
        )


class TokenCache:
    """File-backed store for a single CachedCredential.

    Attributes:
        path: Location of the JSON cache file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> CachedCredential | None:
        """Read the cached credential.

        An unreadable or malformed file is logged and treated as absent.

        Returns:
            The credential, or None if there is no usable cache.
        """
        if not self.path.exists():
            logger.debug("No token cache at %s", self.path)
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            credential = CachedCredential.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                "Ignoring unreadable token cache %s: %s", self.path, e
            )
            return None

        SecretFilter.register_secret(credential.access_token)
        SecretFilter.register_secret(credential.refresh_token)
        return credential

    def save(self, credential: CachedCredential) -> None:
        """Replace the cache with ``credential`` (owner-only permissions)."""
        SecretFilter.register_secret(credential.access_token)
        SecretFilter.register_secret(credential.refresh_token)
        with atomic_write(self.path, mode=0o600) as f:
            json.dump(credential.to_dict(), f, indent=2)
        logger.debug("Saved token cache to %s", self.path)

    def clear(self) -> bool:
        """Delete the cache file to force re-authorization.

        Returns:
            True if a cache file was removed.
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True
