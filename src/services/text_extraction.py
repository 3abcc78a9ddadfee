"""
HTML to plain-text extraction for classifier input.

The output is the text of the document <body> with scripts and styles removed,
restricted to letters, digits, punctuation and whitespace, and flattened onto a
single line with single spaces.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Any

from bs4 import BeautifulSoup, NavigableString
from bs4.builder import ParserRejectedMarkup
from bs4.element import PreformattedString

from src.services.errors import NoBodyError, ParseError

LOGGER = logging.getLogger(__name__)

HTML_PARSER = "lxml"
REMOVED_TAGS = ("script", "style")
WHITESPACE_RUN = re.compile(r"\s+")


def _keep_char(char: str) -> bool:
    if char.isspace():
        return True
    category = unicodedata.category(char)
    return category[0] in ("L", "P") or category == "Nd"


def sanitize_text(text: str) -> str:
    """Drop every code point that is not a letter, digit, punctuation or whitespace."""
    return "".join(char for char in text if _keep_char(char))


def collapse_whitespace(text: str) -> str:
    """Remove blank lines, join the rest with spaces and squeeze whitespace runs."""
    lines = [line.strip() for line in text.split("\n")]
    joined = " ".join(line for line in lines if line)
    return WHITESPACE_RUN.sub(" ", joined)


def _collect_text(node: Any) -> str:
    parts: list[str] = []
    for descendant in node.descendants:
        # Comments, doctypes, CDATA and processing instructions are not page text.
        if isinstance(descendant, NavigableString) and not isinstance(descendant, PreformattedString):
            parts.append(sanitize_text(str(descendant)))
    return "".join(parts)


def extract_text(raw_html: str) -> str:
    """Return sanitized plain text from the <body> of ``raw_html``.

    The lxml tree builder places stray text inside a synthesized <body>, so
    fragments and plain text extract like full documents. Raises
    ``ParseError`` when the markup cannot be parsed and ``NoBodyError`` when
    the parsed document still has no body element.
    """
    if not isinstance(raw_html, str):
        raise ParseError(f"expected HTML text, got {type(raw_html).__name__}")
    if not raw_html.strip():
        return ""
    try:
        soup = BeautifulSoup(raw_html, HTML_PARSER)
    except ParserRejectedMarkup as exc:
        raise ParseError(f"unable to parse HTML: {exc}") from exc
    body = soup.find("body")
    if body is None:
        raise NoBodyError("no body element found")
    for tag in body.find_all(REMOVED_TAGS):
        tag.decompose()
    text = collapse_whitespace(_collect_text(body))
    LOGGER.debug("Extracted %s characters of body text", len(text))
    return text
