# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Microsoft OAuth2 access for the mailbox.

- credential_manager: token lifecycle state machine (CredentialManager)
- token_cache: persisted credential record (TokenCache, CachedCredential)
- callback_server: one-shot redirect listener for interactive login
"""

from quotemail.auth.callback_server import (
    AuthorizationCallbackServer,
    CallbackServerError,
)
from quotemail.auth.credential_manager import (
    AuthorizationError,
    CredentialManager,
    TokenState,
)
from quotemail.auth.token_cache import CachedCredential, TokenCache


__all__ = [
    "AuthorizationCallbackServer",
    "AuthorizationError",
    "CachedCredential",
    "CallbackServerError",
    "CredentialManager",
    "TokenCache",
    "TokenState",
]
