"""
Word normalization shared by phrase extraction and transcript matching.

Both sides of a match must go through the same function, otherwise a
perfectly recited phrase can score below 1.0.
"""

import re
import unicodedata
from typing import List


_NON_ALPHANUMERIC = re.compile(r"[\W_]+")


def fold_text(text: str) -> str:
    """Lowercase and strip diacritics (e.g. 'Café' -> 'cafe')."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower()


def normalize_words(text: str) -> List[str]:
    """
    Split text into normalized word tokens.

    Any run of characters that is not a letter or digit acts as a separator,
    so punctuation never survives into a token and "don't" becomes
    ["don", "t"] on both the script side and the transcript side.
    """
    if not text:
        return []
    return [token for token in _NON_ALPHANUMERIC.split(fold_text(text)) if token]

