# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for quote reply composition."""

from decimal import Decimal

import pytest

from quotemail.reply import DEFAULT_SIGNATURE, compose_reply, format_price

from tests.conftest import make_item


class TestFormatPrice:
    """Tests for format_price."""

    @pytest.mark.parametrize(
        ("price", "expected"),
        [
            (Decimal("49.99"), "49.99"),
            (Decimal("10"), "10.00"),
            (Decimal("0.005"), "0.00"),
            (Decimal("2.675"), "2.68"),
            (12, "12.00"),
            ("7.5", "7.50"),
        ],
    )
    def test_valid(self, price: object, expected: str) -> None:
        """Valid prices get two decimals."""
        assert format_price(price) == expected

    @pytest.mark.parametrize(
        "price", [Decimal("-1"), Decimal("NaN"), "abc", None, float("inf")]
    )
    def test_invalid_is_zero(self, price: object) -> None:
        """Negative, NaN and non-numeric prices render as 0.00."""
        assert format_price(price) == "0.00"


class TestComposeReply:
    """Tests for compose_reply."""

    def test_subject_prefixed(self) -> None:
        """The subject gets a Re: prefix."""
        draft = compose_reply("Need chairs", [make_item("Chair")])
        assert draft.subject == "Re: Need chairs"

    def test_body_layout(self) -> None:
        """Opening, intro, one line per item and signature."""
        draft = compose_reply(
            "Quote",
            [make_item("Chair", "49.99"), make_item("Desk", "120")],
            signature="Cheers, Sales",
        )
        assert draft.body == (
            "Thanks for getting into contact with us!\n"
            "\n"
            "Here are the quotes for the requested items:\n"
            "\n"
            "Item: Chair, Price: £49.99 (Approx)\n"
            "Item: Desk, Price: £120.00 (Approx)\n"
            "\n"
            "Cheers, Sales\n"
        )

    def test_item_order_preserved(self) -> None:
        """Items are listed in the order given."""
        draft = compose_reply(
            "Quote", [make_item("Desk"), make_item("Chair")]
        )
        assert draft.body.index("Item: Desk") < draft.body.index("Item: Chair")

    def test_default_signature(self) -> None:
        """The default signature closes the body."""
        draft = compose_reply("Quote", [make_item("Chair")])
        assert draft.body.rstrip().endswith(DEFAULT_SIGNATURE)

    def test_empty_items_still_has_body(self) -> None:
        """An empty item list yields the opening and signature."""
        draft = compose_reply("Quote", [])
        assert "Thanks for getting into contact with us!" in draft.body
        assert "Item:" not in draft.body
