# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the command-line entry point."""

import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from quotemail.auth import AuthorizationError
from quotemail.auth.token_cache import TokenCache
from quotemail.catalog import CatalogError
from quotemail.cli import cli, main
from quotemail.config import AppConfig, ConfigError
from quotemail.mailbox import MailboxError
from quotemail.runner import RunSummary


@pytest.fixture(autouse=True)
def _no_logging_setup() -> Iterator[MagicMock]:
    """Leave pytest's log capture handlers in place."""
    with patch("quotemail.cli.configure_logging") as mock_configure:
        yield mock_configure


@pytest.fixture
def patched(app_config: AppConfig) -> Iterator[dict[str, MagicMock]]:
    """Patch config loading and the collaborators main() builds."""
    with (
        patch(
            "quotemail.cli.AppConfig.from_yaml", return_value=app_config
        ) as from_yaml,
        patch("quotemail.cli.CredentialManager") as manager_cls,
        patch("quotemail.cli.GraphMailbox") as mailbox_cls,
        patch("quotemail.cli.QuoteRunner") as runner_cls,
    ):
        runner_cls.return_value.run.return_value = RunSummary(fetched=1)
        yield {
            "from_yaml": from_yaml,
            "manager_cls": manager_cls,
            "mailbox_cls": mailbox_cls,
            "runner_cls": runner_cls,
        }


def test_success(
    patched: dict[str, MagicMock], app_config: AppConfig
) -> None:
    """A completed run exits 0 and wires the token supplier."""
    assert main([]) == 0

    patched["from_yaml"].assert_called_once_with(None)
    manager = patched["manager_cls"].return_value
    patched["mailbox_cls"].assert_called_once_with(
        app_config.mailbox, manager.get_valid_access_token
    )
    mailbox = patched["mailbox_cls"].return_value.__enter__.return_value
    patched["runner_cls"].assert_called_once_with(app_config, manager, mailbox)


def test_per_message_failures_still_succeed(
    patched: dict[str, MagicMock],
) -> None:
    """Per-message errors do not change the exit code."""
    patched["runner_cls"].return_value.run.return_value = RunSummary(failed=2)
    assert main([]) == 0


def test_config_path_passed(patched: dict[str, MagicMock]) -> None:
    """--config selects the YAML file."""
    main(["--config", "other.yaml"])
    patched["from_yaml"].assert_called_once_with(Path("other.yaml"))


def test_debug_level(
    patched: dict[str, MagicMock], _no_logging_setup: MagicMock
) -> None:
    """--debug enables debug logging."""
    main(["--debug"])
    _no_logging_setup.assert_called_once_with(
        level=logging.DEBUG, add_secret_filter=True
    )


def test_config_error_exit_1() -> None:
    """Configuration errors exit 1."""
    with patch(
        "quotemail.cli.AppConfig.from_yaml",
        side_effect=ConfigError("bad"),
    ):
        assert main([]) == 1


def test_authorization_error_exit_2(patched: dict[str, MagicMock]) -> None:
    """Authorization failures exit 2."""
    patched["runner_cls"].return_value.run.side_effect = AuthorizationError(
        "denied"
    )
    assert main([]) == 2


def test_unreachable_authority_exit_2(
    patched: dict[str, MagicMock],
) -> None:
    """A credential manager that cannot be built exits 2."""
    patched["manager_cls"].side_effect = AuthorizationError(
        "Cannot reach authority"
    )
    assert main([]) == 2
    patched["runner_cls"].assert_not_called()


@pytest.mark.parametrize(
    "error",
    [
        CatalogError("no catalog"),
        MailboxError("inbox down"),
        OSError("disk full"),
        RuntimeError("unexpected"),
    ],
)
def test_runtime_errors_exit_3(
    patched: dict[str, MagicMock], error: Exception
) -> None:
    """Other fatal errors exit 3."""
    patched["runner_cls"].return_value.run.side_effect = error
    assert main([]) == 3


def test_reset_token(
    patched: dict[str, MagicMock], app_config: AppConfig
) -> None:
    """--reset-token deletes the cache and skips the run."""
    path = app_config.auth.token_cache_path
    path.parent.mkdir(parents=True)
    path.write_text("{}")

    assert main(["--reset-token"]) == 0

    assert not path.exists()
    patched["runner_cls"].assert_not_called()


def test_reset_token_without_cache(
    patched: dict[str, MagicMock], app_config: AppConfig
) -> None:
    """--reset-token succeeds when there is nothing to delete."""
    with patch.object(TokenCache, "clear", return_value=False) as clear:
        assert main(["--reset-token"]) == 0
    clear.assert_called_once()


def test_cli_exits_with_code() -> None:
    """cli() passes main()'s result to sys.exit."""
    with patch("quotemail.cli.main", return_value=2):
        with pytest.raises(SystemExit) as exc_info:
            cli()
    assert exc_info.value.code == 2
