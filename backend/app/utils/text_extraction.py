"""Visible text extraction from raw HTML pages.

Uses BeautifulSoup to drop boilerplate markup (scripts, styles,
navigation, header, footer) and returns the remaining body text with
whitespace collapsed, truncated to a character budget.
"""

import re

from bs4 import BeautifulSoup

# Default character budget for extracted page text
MAX_TEXT_LENGTH = 15_000

BOILERPLATE_TAGS = [
    "script",
    "style",
    "noscript",
    "iframe",
    "nav",
    "footer",
    "header",
]

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace to single spaces and trim."""
    return _WHITESPACE.sub(" ", text).strip()


def extract_visible_text(html: str | None, max_chars: int = MAX_TEXT_LENGTH) -> str:
    """Extract the readable body text of an HTML document.

    Args:
        html: Raw HTML content.
        max_chars: Maximum characters returned.

    Returns:
        Body text with boilerplate removed; empty string for empty input.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for element in soup(BOILERPLATE_TAGS):
        element.decompose()

    root = soup.body or soup
    text = collapse_whitespace(root.get_text(separator=" ", strip=True))
    return text[:max_chars]
