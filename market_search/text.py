"""Text normalization and tokenization for Vietnamese search input.

Two helpers are shared by query construction and document building:

    1) :func:`normalize_text` folds diacritics (``"Cà chua đen"`` becomes
       ``"ca chua den"``), lowercases and collapses whitespace, so that a user
       typing without accents still matches accented catalog names.
    2) :func:`build_search_tokens` splits any number of strings into a
       deduplicated token list containing both the accented and the folded
       form of every word. Documents store this list as ``searchTerms`` and
       queries send it as an exact ``terms`` boost.

Both functions are pure and deterministic; ``normalize_text`` is idempotent.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from typing import Iterable, Optional

from unidecode import unidecode

logger = logging.getLogger(__name__)

# Inputs longer than this are cut before tokenization.
MAX_TOKENIZE_LENGTH = 140
# Each folded letter becomes a character class of up to ~200 bytes.
MAX_PATTERN_LENGTH = 100

_WHITESPACE_RE = re.compile(r"\s+")
# Token boundaries: anything that is not a letter or digit (underscore included).
_TOKEN_SPLIT_RE = re.compile(r"[\W_]+")


def _fold_char(ch: str) -> str:
    # NFD leaves letters such as "đ" and "ø" untouched since they have no
    # canonical decomposition; transliterate the remaining Latin letters.
    if ch.isascii() or not ch.isalpha():
        return ch
    if unicodedata.name(ch, "").startswith("LATIN"):
        return unidecode(ch)
    return ch


def normalize_text(text: Optional[str]) -> str:
    """Strip diacritics, lowercase and collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    folded = "".join(_fold_char(ch) for ch in stripped).lower()
    return _WHITESPACE_RE.sub(" ", folded).strip()


def _split_tokens(text: str) -> list[str]:
    return [token for token in _TOKEN_SPLIT_RE.split(text) if token]


def build_search_tokens(*values: Optional[str]) -> list[str]:
    """Return ordered, deduplicated tokens for the raw and folded form of each value."""
    seen: set[str] = set()
    tokens: list[str] = []

    def push(candidates: Iterable[str]) -> None:
        for token in candidates:
            if token in seen:
                continue
            seen.add(token)
            tokens.append(token)

    for value in values:
        if not value:
            continue
        text = str(value)[:MAX_TOKENIZE_LENGTH]
        push(_split_tokens(unicodedata.normalize("NFC", text.lower())))
        push(_split_tokens(normalize_text(text)))
    return tokens


def _build_variant_table() -> dict[str, str]:
    groups: dict[str, list[str]] = {}
    # Latin-1 Supplement through Latin Extended Additional covers Vietnamese.
    for codepoint in range(0x00C0, 0x1F00):
        ch = chr(codepoint)
        if not ch.isalpha():
            continue
        base = normalize_text(ch)
        if len(base) == 1 and base.isascii() and base.isalpha():
            groups.setdefault(base, [base, base.upper()]).append(ch)
    return {base: "[" + "".join(dict.fromkeys(chars)) + "]" for base, chars in groups.items()}


_VARIANTS = _build_variant_table()


def folding_pattern(text: Optional[str]) -> str:
    """Regex source matching ``text`` regardless of diacritics.

    Used by datastores that cannot fold accents themselves: ``"ca chua"``
    yields a pattern that also matches ``"Cà chua"``.
    """
    parts = []
    # MongoDB rejects regex sources above 32KB.
    for ch in normalize_text(text)[:MAX_PATTERN_LENGTH].rstrip():
        variants = _VARIANTS.get(ch)
        parts.append(variants if variants else re.escape(ch))
    return "".join(parts)
