# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Process-wide logging for a quotemail run.

A run handles three kinds of secret: the app's client secret, the access
token sent to Graph, and the refresh token kept in the token cache.  Each
is handed to ``SecretFilter.register_secret`` the moment it is loaded or
refreshed, and the handler installed by ``configure_logging`` masks them
in every record, including records emitted by msal and httpx.
"""

import logging
import re
from typing import ClassVar


_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_MASK = "[REDACTED]"

# Third-party loggers that echo request URLs or token endpoint traffic.
_CHATTY_LOGGERS = ("httpx", "httpcore", "msal")


class SecretFilter(logging.Filter):
    """Masks registered secrets in log records.

    Secrets are held at class level, so a value registered by the config
    loader is also masked in records that pass through a filter created
    earlier by ``configure_logging``.
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    @classmethod
    def redact(cls, text: str) -> str:
        """Return *text* with every registered secret masked.

        >>> SecretFilter.register_secret("rt-0.AX4")
        >>> SecretFilter.redact("refresh_token=rt-0.AX4&scope=Mail.Send")
        'refresh_token=[REDACTED]&scope=Mail.Send'
        """
        if cls._pattern is None:
            return text
        return cls._pattern.sub(_MASK, text)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is None:
            return True
        record.msg = self.redact(str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(
                self.redact(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True

    @classmethod
    def register_secret(cls, secret: str | None) -> None:
        """Start masking *secret*; empty values are ignored."""
        if not secret or secret in cls._secrets:
            return
        cls._secrets.add(secret)
        # Longest first so a token that embeds a shorter secret is masked
        # whole.
        ordered = sorted(cls._secrets, key=len, reverse=True)
        cls._pattern = re.compile("|".join(map(re.escape, ordered)))

    @classmethod
    def clear_secrets(cls) -> None:
        """Forget every registered secret."""
        cls._secrets.clear()
        cls._pattern = None


def configure_logging(
    level: int = logging.INFO, add_secret_filter: bool = True
) -> None:
    """Send log records to stderr for a single CLI run.

    Replaces any handlers already on the root logger.  Outside of debug
    runs the msal and httpx loggers are limited to warnings, so per-request
    lines do not drown out the per-message decisions.

    Args:
        level: Root logger level.
        add_secret_filter: Attach ``SecretFilter`` to the handler.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    third_party_level = logging.WARNING
    if level <= logging.DEBUG:
        third_party_level = logging.DEBUG
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
