# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Command-line entry point.

Runs a single quote-reply batch over the configured inbox and exits.
"""

import argparse
import logging
import sys
from pathlib import Path

from quotemail.auth import AuthorizationError, CredentialManager, TokenCache
from quotemail.catalog import CatalogError
from quotemail.config import AppConfig, ConfigError
from quotemail.logging import configure_logging
from quotemail.mailbox import GraphMailbox, MailboxError
from quotemail.runner import QuoteRunner


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_AUTH_ERROR = 2
EXIT_RUNTIME_ERROR = 3


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="quotemail",
        description="Reply to quote requests in a Microsoft 365 mailbox",
        epilog=(
            "Matches catalog items in inbox messages, replies with prices "
            "and writes an audit report."
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML config (default: config/quotemail.yaml)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--reset-token",
        action="store_true",
        help="Delete the cached token and exit",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to ``sys.argv[1:]``).

    Returns:
        Exit code (0=success, 1=config error, 2=authorization failure,
        3=runtime error).
    """
    args = _parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        add_secret_filter=True,
    )

    try:
        config = AppConfig.from_yaml(args.config)
    except ConfigError as e:
        logger.critical("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    if args.reset_token:
        cache = TokenCache(config.auth.token_cache_path)
        if cache.clear():
            logger.info("Deleted token cache %s", cache.path)
        else:
            logger.info("No token cache at %s", cache.path)
        return EXIT_OK

    try:
        credentials = CredentialManager(config.auth)
        with GraphMailbox(
            config.mailbox, credentials.get_valid_access_token
        ) as mailbox:
            summary = QuoteRunner(config, credentials, mailbox).run()
    except AuthorizationError as e:
        logger.critical("Authorization failed: %s", e)
        return EXIT_AUTH_ERROR
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_RUNTIME_ERROR
    except (CatalogError, MailboxError, OSError) as e:
        logger.critical("Fatal error: %s", e)
        return EXIT_RUNTIME_ERROR
    except Exception as e:
        logger.exception("Fatal runtime error: %s", e)
        return EXIT_RUNTIME_ERROR

    if summary.failed:
        logger.warning("%d messages had errors", summary.failed)
    return EXIT_OK


def cli() -> None:
    """Entry point for the ``quotemail`` console script."""
    sys.exit(main())
