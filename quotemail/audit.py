# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Per-run audit report.

One row per processed email.  The file is written once, after the whole
batch, via a temp file and ``os.replace`` so a crash mid-run leaves either
the previous report or none at all.
"""

import csv
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from quotemail.atomic import atomic_write
from quotemail.models import MatchResult
from quotemail.reply import format_price


logger = logging.getLogger(__name__)

AUDIT_COLUMNS = (
    "sender",
    "subject",
    "requestedItems",
    "requestedPrices",
    "isAllowedDomain",
    "hasMatch",
)

#: Written in the item columns when nothing matched.
NO_MATCH = "FALSE"


@dataclass(frozen=True)
class AuditRecord:
    """One audit row."""

    sender: str
    subject: str
    requested_items: str
    requested_prices: str
    is_allowed_domain: bool
    has_match: bool

    @classmethod
    def from_result(cls, result: MatchResult) -> "AuditRecord":
        """Build the record for a match result."""
        items = result.matched_items
        return cls(
            sender=result.email.sender_address,
            subject=result.email.subject,
            requested_items=(
                ", ".join(item.name for item in items) if items else NO_MATCH
            ),
            requested_prices=(
                ", ".join(format_price(item.price) for item in items)
                if items
                else NO_MATCH
            ),
            is_allowed_domain=result.domain_trusted,
            has_match=result.has_match,
        )

    def to_row(self) -> dict[str, str]:
        """Serialize to a CSV row keyed by ``AUDIT_COLUMNS``."""
        return {
            "sender": self.sender,
            "subject": self.subject,
            "requestedItems": self.requested_items,
            "requestedPrices": self.requested_prices,
            "isAllowedDomain": str(self.is_allowed_domain).lower(),
            "hasMatch": str(self.has_match).lower(),
        }


def write_audit(path: Path, records: Sequence[AuditRecord]) -> None:
    """Atomically write the audit CSV, replacing any previous report.

    Args:
        path: Destination file.
        records: Rows to write (may be empty; the header is always written).

    Raises:
        OSError: If the file cannot be written.
    """
    with atomic_write(path) as f:
        writer = csv.DictWriter(f, fieldnames=AUDIT_COLUMNS)
        writer.writeheader()
        for record in records:
            writer.writerow(record.to_row())

    logger.info("Wrote %d audit records to %s", len(records), path)
