from __future__ import annotations

import html
import re
from typing import Any

from bs4 import BeautifulSoup

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_WS_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-+")
_NON_DIGIT_RE = re.compile(r"\D")

DESCRIPTION_MAX_CHARS = 200
ELLIPSIS = "..."


def generate_slug(name: str) -> str:
    """
    URL-safe slug: lowercase, drop everything but [a-z0-9], whitespace and
    hyphens, then collapse whitespace/hyphen runs into single hyphens.

    >>> generate_slug("Lov-A Burger Grill & Cafe")
    'lov-a-burger-grill-cafe'
    """
    s = (name or "").lower()
    s = _SLUG_STRIP_RE.sub("", s)
    s = _WS_RE.sub("-", s.strip())
    s = _HYPHENS_RE.sub("-", s)
    return s.strip("-")


def format_price_level(level: Any) -> str:
    try:
        n = int(level)
    except (TypeError, ValueError):
        n = 1
    return "$" * max(1, min(4, n))


def format_phone_number(phone: str) -> str:
    digits = _NON_DIGIT_RE.sub("", phone or "")
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return phone


def strip_tags(text: str) -> str:
    if "<" not in text:
        return text
    return BeautifulSoup(text, "html.parser").get_text()


def clean_html_text(value: Any) -> str:
    """Decode HTML entities, then strip any tags that decoding exposed or that were already there."""
    if value is None:
        return ""
    text = html.unescape(str(value))
    return strip_tags(text).strip()


def truncate(text: str, max_chars: int = DESCRIPTION_MAX_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + ELLIPSIS


def clean_description(value: Any, max_chars: int = DESCRIPTION_MAX_CHARS) -> str:
    return truncate(clean_html_text(value), max_chars)
