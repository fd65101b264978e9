# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

from collections.abc import Iterator
from decimal import Decimal
from pathlib import Path

import pytest

from quotemail.config import AppConfig, AuthConfig, MailboxConfig
from quotemail.logging import SecretFilter
from quotemail.models import CatalogItem, InboundEmail


@pytest.fixture(autouse=True)
def _clear_secrets() -> Iterator[None]:
    """Keep registered secrets from leaking between tests."""
    yield
    SecretFilter.clear_secrets()


def make_item(name: str, price: str = "10", item_id: str = "") -> CatalogItem:
    """Build a catalog item."""
    return CatalogItem(id=item_id, name=name, price=Decimal(price))


def make_email(
    body: str = "",
    sender: str = "someone@example.com",
    subject: str = "Quote request",
    message_id: str = "msg-1",
) -> InboundEmail:
    """Build an inbound email."""
    return InboundEmail(
        id=message_id,
        subject=subject,
        body_text=body,
        sender_address=sender,
    )


@pytest.fixture
def auth_config(tmp_path: Path) -> AuthConfig:
    """Auth settings with the token cache under tmp_path."""
    return AuthConfig(
        tenant_id="tenant-123",
        client_id="client-456",
        client_secret="s3cret-value",
        redirect_uri="http://localhost:4001",
        token_cache_path=tmp_path / "state" / "token_cache.json",
        auth_timeout_seconds=5,
        open_browser=False,
    )


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Directory with a small catalog and customer list.

    Returns:
        Path containing ``catalog.csv`` and ``customers.csv``.
    """
    data = tmp_path / "data"
    data.mkdir()
    (data / "catalog.csv").write_text(
        "id,name,price\n1,Chair,49.99\n2,Desk,120\n3,Widget,10\n"
    )
    (data / "customers.csv").write_text(
        "email,name\nbuyer@contoso.com,Contoso\n"
    )
    return data


@pytest.fixture
def app_config(
    tmp_path: Path, auth_config: AuthConfig, data_dir: Path
) -> AppConfig:
    """Complete config pointing at the fixture data files."""
    return AppConfig(
        auth=auth_config,
        mailbox=MailboxConfig(),
        catalog_path=data_dir / "catalog.csv",
        customers_path=data_dir / "customers.csv",
        audit_path=tmp_path / "reports" / "audit.csv",
    )
