# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Value types shared by the matching, reply and mailbox layers.

All types are frozen.  Emails are snapshots taken once per run and never
mutated; match results and reply drafts are recomputed on every run.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class CatalogItem:
    """A quotable item from the catalog.

    Attributes:
        id: Catalog identifier (may be empty).
        name: Display name, matched case-insensitively.
        price: Non-negative unit price.
    """

    id: str
    name: str
    price: Decimal

    @property
    def match_key(self) -> str:
        """Case-insensitive identity used for de-duplication."""
        return self.name.casefold()


@dataclass(frozen=True)
class InboundEmail:
    """Provider-neutral snapshot of a fetched message.

    Attributes:
        id: Provider message ID.
        subject: Message subject.
        body_text: Plain-text body (HTML already converted).
        sender_address: Sender email address.
    """

    id: str
    subject: str
    body_text: str
    sender_address: str


@dataclass(frozen=True)
class MatchResult:
    """Inclusion decision for a single email.

    Attributes:
        email: The evaluated email.
        matched_items: Matched catalog items in catalog order, unique by
            case-insensitive name.
        sender_domain: Lowercased domain of the sender ("" if none).
        domain_trusted: Whether the sender domain is a known customer.
    """

    email: InboundEmail
    matched_items: tuple[CatalogItem, ...]
    sender_domain: str
    domain_trusted: bool

    @property
    def has_match(self) -> bool:
        """Whether any catalog item matched."""
        return len(self.matched_items) > 0

    @property
    def included(self) -> bool:
        """Whether the email is in scope."""
        return self.domain_trusted or self.has_match


@dataclass(frozen=True)
class ReplyDraft:
    """A composed reply, ready to send."""

    subject: str
    body: str
