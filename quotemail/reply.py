# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Quote reply composition."""

from collections.abc import Sequence
from decimal import Decimal, InvalidOperation

from quotemail.models import CatalogItem, ReplyDraft


DEFAULT_SIGNATURE = "Kind regards, The Sales Team"

_OPENING = "Thanks for getting into contact with us!"
_INTRO = "Here are the quotes for the requested items:"


def format_price(price: object) -> str:
    """Format a price with two decimals.

    Anything that is not a finite, non-negative number formats as ``0.00``.
    """
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        return "0.00"
    if not value.is_finite() or value < 0:
        return "0.00"
    return f"{value:.2f}"


def compose_reply(
    subject: str,
    matched_items: Sequence[CatalogItem],
    signature: str = DEFAULT_SIGNATURE,
) -> ReplyDraft:
    """Build the quote reply for an email's matched items.

    The body lists one line per item in the given order.  Callers are
    expected to skip emails with no matched items; an empty list still
    yields the opening and signature.

    Args:
        subject: Subject of the email being answered.
        matched_items: Items to quote.
        signature: Closing line.

    Returns:
        ReplyDraft with ``"Re: "`` prefixed to the subject.
    """
    lines = [_OPENING, "", _INTRO, ""]
    lines.extend(
        f"Item: {item.name}, Price: £{format_price(item.price)} (Approx)"
        for item in matched_items
    )
    lines.extend(["", signature])
    return ReplyDraft(subject=f"Re: {subject}", body="\n".join(lines) + "\n")
