# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""HTML to plain text conversion for email bodies.

Graph returns Outlook HTML for most messages.  Item matching only needs the
words the customer wrote, so markup is dropped rather than rendered:

- ``<script>``/``<style>`` content is removed
- block elements (``<p>``, ``<div>``, ``<br>``, list items, table rows)
  become line breaks; table cells are separated by spaces
- HTML entities are decoded

With ``strip_quotes=True`` the quoted-reply containers of common clients are
removed entirely, so a customer replying to an earlier quote does not match
the items listed in that quote again:

- Outlook web/mobile: ``<div id="mail-editor-reference-message-container">``
- Outlook desktop: ``<div id="divRplyFwdMsg">``
- Gmail: ``<div class="gmail_quote">``
- Yahoo: ``<div class="yahoo_quoted">``
- Thunderbird/Apple Mail: ``<blockquote type="cite">``
"""

import re
from html.parser import HTMLParser


_QUOTE_IDS = frozenset(
    {
        "mail-editor-reference-message-container",
        "divrplyfwdmsg",
    }
)

_QUOTE_CLASSES = frozenset(
    {
        "gmail_quote",
        "yahoo_quoted",
        "moz-cite-prefix",
    }
)

_BLOCK_TAGS = frozenset(
    {
        "p",
        "div",
        "section",
        "article",
        "blockquote",
        "li",
        "tr",
        "table",
        "ul",
        "ol",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "hr",
        "pre",
    }
)

# Void elements never get a closing tag, so they must not be counted as
# nested opens inside a quote container.
_VOID_TAGS = frozenset({"br", "hr", "img", "meta", "link", "input", "wbr"})


def html_to_text(html_content: str, *, strip_quotes: bool = False) -> str:
    """Convert HTML to plain text.

    Args:
        html_content: HTML string to convert.
        strip_quotes: Drop quoted reply containers from known clients.

    Returns:
        Plain text with one line per block element.
    """
    if not html_content:
        return ""

    parser = _HTMLToTextParser(strip_quotes=strip_quotes)
    parser.feed(html_content)
    parser.close()
    return parser.get_text()


def _is_quote_element(tag: str, attrs: dict[str, str | None]) -> bool:
    """Check if a tag/attrs combination is a known quote container."""
    element_id = attrs.get("id")
    if element_id and element_id.lower() in _QUOTE_IDS:
        return True

    class_attr = attrs.get("class")
    if class_attr and set(class_attr.lower().split()) & _QUOTE_CLASSES:
        return True

    return tag == "blockquote" and (attrs.get("type") or "").lower() == "cite"


class _HTMLToTextParser(HTMLParser):
    """HTML parser that accumulates visible text."""

    def __init__(self, *, strip_quotes: bool = False) -> None:
        super().__init__(convert_charrefs=True)
        self._output: list[str] = []
        self._strip_quotes = strip_quotes
        self._skip_depth = 0
        # Tag of the outermost quote container and how many same-named
        # elements are open inside it.
        self._quote_tag: str | None = None
        self._quote_nesting = 0

    def handle_starttag(
        self, tag: str, attrs: list[tuple[str, str | None]]
    ) -> None:
        """Handle opening HTML tags."""
        tag = tag.lower()

        if self._quote_tag is not None:
            if tag == self._quote_tag and tag not in _VOID_TAGS:
                self._quote_nesting += 1
            return

        if self._strip_quotes and _is_quote_element(tag, dict(attrs)):
            self._quote_tag = tag
            self._quote_nesting = 0
            return

        if tag in ("script", "style"):
            self._skip_depth += 1
        elif tag == "br" or tag in _BLOCK_TAGS:
            self._output.append("\n")
        elif tag in ("td", "th"):
            self._output.append(" ")

    def handle_endtag(self, tag: str) -> None:
        """Handle closing HTML tags."""
        tag = tag.lower()

        if self._quote_tag is not None:
            if tag == self._quote_tag:
                if self._quote_nesting > 0:
                    self._quote_nesting -= 1
                else:
                    self._quote_tag = None
            return

        if tag in ("script", "style"):
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag in _BLOCK_TAGS:
            self._output.append("\n")

    def handle_data(self, data: str) -> None:
        """Handle text content."""
        if self._skip_depth or self._quote_tag is not None:
            return
        self._output.append(data)

    def get_text(self) -> str:
        """Return the accumulated text with whitespace normalized."""
        text = "".join(self._output).replace("\xa0", " ")
        text = "\n".join(
            re.sub(r"[ \t\r\f\v]+", " ", line).strip()
            for line in text.split("\n")
        )
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()
