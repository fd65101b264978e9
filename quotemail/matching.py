# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Item matching and inclusion decisions.

Pure functions: no I/O, no state beyond a compiled-pattern cache.

Two matching strategies are available:

- ``MatchMode.EXACT`` (default): an item matches when its name occurs in the
  body as a whole word, case-insensitively.  A boundary is any position not
  adjacent to an alphanumeric character, so ``"Pen"`` matches ``"a pen,"``
  but not ``"happen"``.  Whitespace inside a name matches any whitespace run.
- ``MatchMode.FUZZY``: the body is split into words and every window of as
  many words as the item name is scored against the name with
  ``difflib.SequenceMatcher``; a ratio at or above the threshold matches.

Either way results follow catalog order and contain each name once.
"""

import functools
import logging
import re
from collections.abc import Iterable, Set
from difflib import SequenceMatcher
from enum import Enum

from quotemail.models import CatalogItem, InboundEmail, MatchResult


logger = logging.getLogger(__name__)

DEFAULT_FUZZY_THRESHOLD = 0.85

# ``[^\W_]`` is a single alphanumeric character (Unicode-aware).
_WORD_RE = re.compile(r"[^\W_]+")


class MatchMode(Enum):
    """Item matching strategy."""

    EXACT = "exact"
    FUZZY = "fuzzy"


@functools.lru_cache(maxsize=1024)
def _name_pattern(name: str) -> re.Pattern[str] | None:
    """Compile the whole-word pattern for an item name.

    Returns None for names with no visible characters.
    """
    words = name.split()
    if not words:
        return None
    body = r"\s+".join(re.escape(word) for word in words)
    return re.compile(rf"(?<![^\W_]){body}(?![^\W_])", re.IGNORECASE)


def _exact_match(body_text: str, name: str) -> bool:
    pattern = _name_pattern(name)
    return pattern is not None and pattern.search(body_text) is not None


def _fuzzy_match(body_words: list[str], name: str, threshold: float) -> bool:
    target_words = _WORD_RE.findall(name.casefold())
    if not target_words:
        return False
    target = " ".join(target_words)
    width = len(target_words)
    for start in range(len(body_words) - width + 1):
        candidate = " ".join(body_words[start : start + width])
        if SequenceMatcher(None, candidate, target).ratio() >= threshold:
            return True
    return False


def match_items(
    body_text: str,
    catalog: Iterable[CatalogItem],
    mode: MatchMode = MatchMode.EXACT,
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
) -> list[CatalogItem]:
    """Find the catalog items referenced in an email body.

    Args:
        body_text: Plain-text email body.
        catalog: Catalog items in load order.
        mode: Matching strategy.
        threshold: Minimum similarity ratio for ``MatchMode.FUZZY``.

    Returns:
        Matched items in catalog order, unique by case-insensitive name.
    """
    if not body_text:
        return []

    body_words = (
        _WORD_RE.findall(body_text.casefold())
        if mode is MatchMode.FUZZY
        else []
    )

    matched: list[CatalogItem] = []
    seen: set[str] = set()
    for item in catalog:
        if not item.name.strip() or item.match_key in seen:
            continue
        if mode is MatchMode.FUZZY:
            hit = _fuzzy_match(body_words, item.name, threshold)
        else:
            hit = _exact_match(body_text, item.name)
        if hit:
            matched.append(item)
            seen.add(item.match_key)
    return matched


def extract_domain(sender_address: str) -> str | None:
    """Return the lowercased domain of an address, or None without ``@``."""
    if "@" not in sender_address:
        return None
    return sender_address.rsplit("@", 1)[1].strip().lower()


def classify_domain(sender_address: str, trusted_domains: Set[str]) -> bool:
    """Check whether the sender belongs to a trusted customer domain.

    An address without ``@`` is logged and treated as untrusted.

    Args:
        sender_address: Sender email address.
        trusted_domains: Lowercase customer domains.

    Returns:
        True if the sender's domain is trusted.
    """
    domain = extract_domain(sender_address)
    if domain is None:
        logger.warning(
            "Sender address has no domain part: %r", sender_address
        )
        return False
    return domain in trusted_domains


def evaluate(
    email: InboundEmail,
    catalog: Iterable[CatalogItem],
    trusted_domains: Set[str],
    mode: MatchMode = MatchMode.EXACT,
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
) -> MatchResult:
    """Compute the inclusion decision for one email.

    Args:
        email: The email to evaluate.
        catalog: Catalog items in load order.
        trusted_domains: Lowercase customer domains.
        mode: Matching strategy.
        threshold: Minimum similarity ratio for ``MatchMode.FUZZY``.

    Returns:
        MatchResult for the email.
    """
    return MatchResult(
        email=email,
        matched_items=tuple(
            match_items(email.body_text, catalog, mode, threshold)
        ),
        sender_domain=extract_domain(email.sender_address) or "",
        domain_trusted=classify_domain(email.sender_address, trusted_domains),
    )
