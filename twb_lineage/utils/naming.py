"""
Name helpers shared by the parser and the graph builder.

Tableau refers to the same entity as ``[Sales]``, ``Sales`` or `` sales `` in
different places, so every cross-reference goes through ``normalize_name``.
"""

import re
from typing import Any

_BRACKETS = re.compile(r"[\[\]]")
_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9]+")


def normalize_name(name: Any) -> str:
    """Lookup key: brackets stripped, whitespace collapsed, case folded."""
    text = _BRACKETS.sub("", str(name or ""))
    return _WHITESPACE.sub(" ", text).strip().casefold()


def clean_internal_id(raw_id: Any) -> str:
    """Strip Tableau bracket decoration from an internal identifier.

    Examples:
        [Calculation_123] -> Calculation_123
        '  [Sales] ' -> Sales
    """
    if not raw_id:
        return ""
    return _BRACKETS.sub("", str(raw_id).strip()).strip()


def display_name(name: Any) -> str:
    """Wrap a field name in brackets, Tableau style, unless it already is."""
    text = str(name or "").strip()
    if text.startswith("[") and text.endswith("]"):
        return text
    return f"[{text}]"


def slugify(text: Any) -> str:
    """Lowercase, bracket-free, dash-separated slug."""
    lowered = _BRACKETS.sub("", str(text or "").lower())
    return _NON_SLUG.sub("-", lowered).strip("-")
