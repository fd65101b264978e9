# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Catalog and customer directory loading.

The catalog CSV needs ``name`` and ``price`` columns (``id`` is optional).
The customer CSV needs an ``email`` column; only the domain part of each
address is kept.  Malformed rows are logged and skipped; a missing file or
missing column is a ``CatalogError``.
"""

import csv
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path

from quotemail.matching import extract_domain
from quotemail.models import CatalogItem


logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Raised when a catalog or customer file cannot be read."""


def _read_rows(path: Path, required: set[str]) -> list[dict[str, str]]:
    """Read a CSV file into dicts, checking required columns.

    Raises:
        CatalogError: If the file is unreadable or lacks a column.
    """
    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            reader = csv.DictReader(f)
            columns = {c.strip().lower() for c in reader.fieldnames or []}
            missing = required - columns
            if missing:
                raise CatalogError(
                    f"{path} is missing column(s): "
                    f"{', '.join(sorted(missing))}"
                )
            return [
                {
                    k.strip().lower(): (v or "").strip()
                    for k, v in row.items()
                    if k is not None
                }
                for row in reader
            ]
    except OSError as e:
        raise CatalogError(f"Cannot read {path}: {e}") from e
    except csv.Error as e:
        raise CatalogError(f"Malformed CSV in {path}: {e}") from e


def _parse_price(raw: str) -> Decimal | None:
    try:
        price = Decimal(raw)
    except InvalidOperation:
        return None
    if not price.is_finite() or price < 0:
        return None
    return price


def load_catalog(path: Path) -> list[CatalogItem]:
    """Load catalog items in file order.

    Rows with an empty name or a price that is not a non-negative number
    are skipped.  Duplicate names are kept.

    Args:
        path: Catalog CSV path.

    Returns:
        Catalog items in file order.

    Raises:
        CatalogError: If the file cannot be read.
    """
    items: list[CatalogItem] = []
    for line_no, row in enumerate(_read_rows(path, {"name", "price"}), 2):
        name = row.get("name", "")
        if not name:
            logger.warning("Skipping catalog row %d: empty name", line_no)
            continue
        price = _parse_price(row.get("price", ""))
        if price is None:
            logger.warning(
                "Skipping catalog row %d (%s): invalid price %r",
                line_no,
                name,
                row.get("price", ""),
            )
            continue
        items.append(CatalogItem(id=row.get("id", ""), name=name, price=price))

    logger.info("Loaded %d catalog items from %s", len(items), path)
    return items


def load_trusted_domains(path: Path) -> frozenset[str]:
    """Load the set of customer email domains.

    Args:
        path: Customer CSV path.

    Returns:
        Lowercase domains of all customer addresses.

    Raises:
        CatalogError: If the file cannot be read.
    """
    domains: set[str] = set()
    for line_no, row in enumerate(_read_rows(path, {"email"}), 2):
        domain = extract_domain(row.get("email", ""))
        if not domain:
            logger.warning(
                "Skipping customer row %d: no domain in %r",
                line_no,
                row.get("email", ""),
            )
            continue
        domains.add(domain)

    logger.info("Loaded %d trusted domains from %s", len(domains), path)
    return frozenset(domains)
