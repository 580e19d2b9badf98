"""
Text canonicalization for catalog comparisons.

Titles, category names and brand names arrive in a mix of Persian/Arabic and
Latin script with inconsistent punctuation. Every comparison in the engine is
made between two strings that went through ``normalize_text`` independently.
"""

import re

ARABIC_COMMA_VARIANTS = ("\u060c", "\u060d", "\u066b")  # ، ؍ ٫
ZERO_WIDTH_NON_JOINER = "\u200c"

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^\u0600-\u06ff\u200c\u200da-zA-Z0-9\s,.\-]")

# Short function words that carry no product identity.
STOP_WORDS = frozenset(
    ["و", "در", "با", "به", "از", "برای", "که", "این", "آن", "تا", "را", "های"]
)
MIN_WORD_LENGTH = 2


def _collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_text(text: str) -> str:
    """Normalize text for comparison.

    Trims and collapses whitespace, unifies the Arabic comma/decimal marks to
    ``,``, turns the zero-width non-joiner into a space, lowercases, and drops
    anything outside Arabic letters, Latin letters, digits, whitespace and
    ``, . -``. Whitespace is collapsed again at the end so that removing
    characters never leaves double or edge spaces behind.
    """
    if not text:
        return ""

    normalized = _collapse_whitespace(text)
    for variant in ARABIC_COMMA_VARIANTS:
        normalized = normalized.replace(variant, ",")
    normalized = normalized.replace(ZERO_WIDTH_NON_JOINER, " ")
    normalized = normalized.lower()
    normalized = _DISALLOWED_RE.sub("", normalized)

    return _collapse_whitespace(normalized)


def extract_meaningful_words(text: str) -> list[str]:
    """Split normalized text into unique words, skipping stop words and very short tokens."""
    words: list[str] = []
    seen: set[str] = set()

    for word in normalize_text(text).split(" "):
        word = word.strip()
        if len(word) < MIN_WORD_LENGTH or word in STOP_WORDS:
            continue
        if word in seen:
            continue
        seen.add(word)
        words.append(word)

    return words
