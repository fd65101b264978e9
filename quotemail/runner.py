# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Batch orchestration.

One run:

1. obtain an access token (fatal on failure)
2. load the catalog and trusted customer domains
3. fetch every message of the inbox folder
4. evaluate each message
5. for messages with matched items: send the quote reply, then move the
   message to the replied folder
6. write the audit report for the whole batch

Messages are handled strictly one at a time.  A failed send or move is
logged and the run continues; a move failure never causes a second reply.
Losing authorization mid-batch stops the run, but the audit report is still
written for the messages evaluated so far.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from quotemail.audit import AuditRecord, write_audit
from quotemail.auth.credential_manager import AuthorizationError
from quotemail.catalog import load_catalog, load_trusted_domains
from quotemail.config import AppConfig
from quotemail.mailbox import MailboxError
from quotemail.matching import evaluate
from quotemail.models import CatalogItem, InboundEmail, MatchResult
from quotemail.reply import compose_reply


if TYPE_CHECKING:
    from quotemail.auth import CredentialManager

logger = logging.getLogger(__name__)


class Mailbox(Protocol):
    """Mailbox operations used by the run."""

    def list_messages(self, folder: str) -> Iterator[InboundEmail]:
        """Yield every message in a folder."""
        ...

    def send_reply(self, message_id: str, subject: str, body: str) -> None:
        """Reply to a message."""
        ...

    def find_or_create_folder(self, display_name: str) -> str:
        """Return a folder ID, creating the folder if needed."""
        ...

    def move_message(self, message_id: str, folder_id: str) -> str:
        """Move a message and return its new ID."""
        ...


@dataclass
class RunSummary:
    """Counters for one run.

    Attributes:
        fetched: Messages fetched from the inbox.
        included: Messages in scope (trusted domain or item match).
        replied: Quote replies sent.
        moved: Replied messages moved to the replied folder.
        failed: Messages with a send or move failure.
    """

    fetched: int = 0
    included: int = 0
    replied: int = 0
    moved: int = 0
    failed: int = 0


class QuoteRunner:
    """Runs one quote-reply batch over the inbox.

    Attributes:
        config: Run configuration.
        credentials: Access token supplier.
        mailbox: Mailbox adapter.
    """

    def __init__(
        self,
        config: AppConfig,
        credentials: "CredentialManager",
        mailbox: Mailbox,
    ) -> None:
        self.config = config
        self.credentials = credentials
        self.mailbox = mailbox

    def run(self) -> RunSummary:
        """Process the inbox once.

        Returns:
            Summary of what was done.

        Raises:
            AuthorizationError: If no access token can be obtained.
            CatalogError: If the catalog or customer file is unreadable.
            MailboxError: If the inbox cannot be listed.
            OSError: If the audit report cannot be written.
        """
        self.credentials.get_valid_access_token()

        catalog = load_catalog(self.config.catalog_path)
        trusted_domains = load_trusted_domains(self.config.customers_path)

        inbox = self.config.mailbox.inbox_folder
        emails = list(self.mailbox.list_messages(inbox))
        logger.info("Fetched %d messages from %s", len(emails), inbox)

        summary = RunSummary(fetched=len(emails))
        records: list[AuditRecord] = []
        try:
            for email in emails:
                result = self._evaluate(email, catalog, trusted_domains)
                records.append(AuditRecord.from_result(result))
                if result.included:
                    summary.included += 1
                if result.has_match:
                    self._reply_and_file(result, summary)
        except AuthorizationError:
            # Replies already sent must still be on record.
            logger.error(
                "Authorization lost after %d of %d messages; stopping",
                len(records),
                len(emails),
            )
            write_audit(self.config.audit_path, records)
            raise

        write_audit(self.config.audit_path, records)
        logger.info(
            "Run complete: %d fetched, %d included, %d replied, %d moved, "
            "%d failed",
            summary.fetched,
            summary.included,
            summary.replied,
            summary.moved,
            summary.failed,
        )
        return summary

    def _evaluate(
        self,
        email: InboundEmail,
        catalog: list[CatalogItem],
        trusted_domains: frozenset[str],
    ) -> MatchResult:
        result = evaluate(
            email,
            catalog,
            trusted_domains,
            self.config.match_mode,
            self.config.fuzzy_threshold,
        )
        logger.info(
            "Message %s from %s: included=%s, trusted_domain=%s, items=[%s]",
            email.id,
            email.sender_address,
            result.included,
            result.domain_trusted,
            ", ".join(item.name for item in result.matched_items),
        )
        return result

    def _reply_and_file(self, result: MatchResult, summary: RunSummary) -> None:
        """Send the quote reply and move the message out of the inbox."""
        email = result.email
        draft = compose_reply(
            email.subject, result.matched_items, self.config.reply_signature
        )

        try:
            self.mailbox.send_reply(email.id, draft.subject, draft.body)
        except MailboxError as e:
            summary.failed += 1
            logger.error("Failed to send reply to message %s: %s", email.id, e)
            return
        summary.replied += 1
        logger.info("Sent quote reply to %s", email.sender_address)

        try:
            folder_id = self.mailbox.find_or_create_folder(
                self.config.mailbox.replied_folder
            )
            self.mailbox.move_message(email.id, folder_id)
        except MailboxError as e:
            summary.failed += 1
            logger.error(
                "Reply sent but failed to move message %s: %s", email.id, e
            )
            return
        summary.moved += 1
        logger.info(
            "Moved message %s to %s",
            email.id,
            self.config.mailbox.replied_folder,
        )
