"""Utility modules for the application.

This package contains shared utility functions and classes.
"""

from app.utils.text_extraction import collapse_whitespace, extract_visible_text
from app.utils.url import InvalidURLError, domain_of, domain_stem, ensure_scheme, with_www

__all__ = [
    # Text extraction
    "collapse_whitespace",
    "extract_visible_text",
    # URLs
    "InvalidURLError",
    "domain_of",
    "domain_stem",
    "ensure_scheme",
    "with_www",
]
