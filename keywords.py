"""Keyword splitting for the archive's free-form keyword field."""

from __future__ import annotations

import re

# Commas/semicolons not enclosed in (), [], {} or <>.
_PRIMARY_SPLIT_RE = re.compile(r"[,;](?![^{\[(<]*[\])}>])")

# Secondary separators authors use inside a single entry: middle dot, hyphen,
# en dash, the Symbol-font bullet (U+F0D7) that survives PDF copy/paste, and "/ ".
_SECONDARY_SPLIT_RE = re.compile(" \u00b7|-|\u2013|\uf0d7|/ ")


def split_keywords(raw: str) -> list[str]:
    """Split a raw keyword string into trimmed keywords.

    Empty input yields ``[""]``, not ``[]``. Persistence skips empty keywords,
    so the placeholder never becomes a stored keyword.

    >>> split_keywords("a, (b, c), d")
    ['a', '(b, c)', 'd']
    """
    return [
        piece.strip()
        for part in _PRIMARY_SPLIT_RE.split(raw)
        for piece in _SECONDARY_SPLIT_RE.split(part)
    ]
