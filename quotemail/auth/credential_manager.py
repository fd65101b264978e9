# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Access token lifecycle for delegated Microsoft Graph access.

Uses MSAL (Microsoft Authentication Library) with the authorization code
flow and PKCE.  A token is obtained in the cheapest way still possible:

1. cached access token that has not expired
2. refresh token exchange (silent)
3. interactive login in the browser, with the redirect captured by a
   one-shot local listener

The cache file is read once per manager; every successful exchange
replaces it entirely.  A failed refresh falls back to interactive login;
a failed interactive login raises ``AuthorizationError``.

The manager is meant for a single thread of control.
"""

import logging
import webbrowser
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from msal import ConfidentialClientApplication

from quotemail.auth.callback_server import (
    AuthorizationCallbackServer,
    CallbackServerError,
)
from quotemail.auth.token_cache import CachedCredential, TokenCache
from quotemail.config import AuthConfig


logger = logging.getLogger(__name__)


class AuthorizationError(Exception):
    """Raised when no access token can be obtained."""


class TokenState(Enum):
    """Where the manager is in the token lifecycle."""

    NO_CACHE = "no_cache"
    CACHED_VALID = "cached_valid"
    CACHED_EXPIRED = "cached_expired"
    REFRESHING = "refreshing"
    AUTHORIZING = "authorizing"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _describe_error(result: Mapping[str, Any] | None) -> str:
    if not result:
        return "empty response"
    error = result.get("error", "unknown_error")
    description = result.get("error_description", "No description")
    return f"{error}: {description}"


def _create_app(config: AuthConfig) -> ConfidentialClientApplication:
    """Create the MSAL app, which discovers the tenant authority on creation.

    Raises:
        AuthorizationError: If discovery fails.
    """
    try:
        return ConfidentialClientApplication(
            config.client_id,
            authority=config.authority,
            client_credential=config.client_secret,
        )
    except (OSError, ValueError) as e:
        # requests' exceptions derive from OSError.
        raise AuthorizationError(
            f"Cannot reach authority {config.authority}: {e}"
        ) from e


class CredentialManager:
    """Supplies a valid bearer token, refreshing or re-authorizing as needed.

    Attributes:
        config: App registration and token settings.
        cache: Persistent credential store.
        state: Last lifecycle state entered.
    """

    def __init__(
        self,
        config: AuthConfig,
        cache: TokenCache | None = None,
        *,
        app: ConfidentialClientApplication | None = None,
        clock: Callable[[], datetime] = _utcnow,
        browser: Callable[[str], object] = webbrowser.open,
    ) -> None:
        """Initialize the manager.

        Args:
            config: App registration and token settings.
            cache: Credential store.  Defaults to the configured path.
            app: MSAL application.  Created from ``config`` if omitted.
            clock: Returns the current aware UTC time.
            browser: Opens the authorization URL for the user.

        Raises:
            AuthorizationError: If the tenant authority cannot be reached or
                is rejected by MSAL.
        """
        self.config = config
        self.cache = cache or TokenCache(config.token_cache_path)
        self._app = app or _create_app(config)
        self._clock = clock
        self._browser = browser
        self._credential: CachedCredential | None = None
        self._cache_loaded = False
        self.state: TokenState | None = None

    def get_valid_access_token(self) -> str:
        """Return a bearer token valid at the time of the call.

        Returns:
            OAuth2 access token string.

        Raises:
            AuthorizationError: If interactive authorization fails.
        """
        logger.debug("Checking for valid access token")
        if not self._cache_loaded:
            self._credential = self.cache.load()
            self._cache_loaded = True

        credential = self._credential
        if credential is None:
            self._enter(TokenState.NO_CACHE)
        elif credential.is_valid(self._clock()):
            self._enter(TokenState.CACHED_VALID)
            return credential.access_token
        else:
            self._enter(TokenState.CACHED_EXPIRED)
            if credential.refresh_token:
                refreshed = self._refresh(credential.refresh_token)
                if refreshed is not None:
                    return refreshed.access_token

        return self._authorize().access_token

    def _enter(self, state: TokenState) -> None:
        if state is not self.state:
            logger.info("Token state: %s", state.value)
        self.state = state

    def _store(self, response: Mapping[str, Any]) -> CachedCredential:
        credential = CachedCredential.from_token_response(
            response, self._clock()
        )
        self.cache.save(credential)
        self._credential = credential
        self._enter(TokenState.CACHED_VALID)
        return credential

    def _refresh(self, refresh_token: str) -> CachedCredential | None:
        """Exchange a refresh token.

        Returns:
            The new credential, or None if the refresh failed.
        """
        self._enter(TokenState.REFRESHING)
        try:
            result = self._app.acquire_token_by_refresh_token(
                refresh_token, scopes=list(self.config.scopes)
            )
        except (OSError, ValueError) as e:
            # requests' exceptions derive from OSError.
            logger.warning("Token refresh failed: %s", e)
            return None

        if not result or "access_token" not in result:
            logger.warning(
                "Token refresh failed: %s", _describe_error(result)
            )
            return None

        logger.info("Access token refreshed")
        return self._store(result)

    def _authorize(self) -> CachedCredential:
        """Run the interactive authorization code flow.

        Raises:
            AuthorizationError: If no code is received or the exchange fails.
        """
        self._enter(TokenState.AUTHORIZING)
        flow = self._app.initiate_auth_code_flow(
            list(self.config.scopes),
            redirect_uri=self.config.redirect_uri,
            prompt="consent",
        )
        auth_uri = flow.get("auth_uri")
        if not auth_uri:
            raise AuthorizationError(
                f"Cannot start authorization: {_describe_error(flow)}"
            )

        redirect_path = urlsplit(self.config.redirect_uri).path or "/"
        try:
            with AuthorizationCallbackServer(
                self.config.callback_host,
                self.config.callback_port,
                redirect_path,
            ) as server:
                logger.info(
                    "Navigate to this URL to authenticate: %s", auth_uri
                )
                if self.config.open_browser:
                    self._browser(auth_uri)
                params = server.wait_for_redirect(
                    self.config.auth_timeout_seconds
                )
        except CallbackServerError as e:
            raise AuthorizationError(str(e)) from e

        if params is None:
            raise AuthorizationError("Timed out waiting for authorization")
        if "code" not in params:
            raise AuthorizationError(
                f"Authorization code not found: {_describe_error(params)}"
            )

        try:
            result = self._app.acquire_token_by_auth_code_flow(flow, params)
        except (OSError, ValueError) as e:
            # MSAL raises ValueError on a state mismatch.
            raise AuthorizationError(
                f"Authorization code exchange failed: {e}"
            ) from e

        if not result or "access_token" not in result:
            raise AuthorizationError(
                f"Failed to acquire token: {_describe_error(result)}"
            )

        logger.info("Authorization complete")
        return self._store(result)
