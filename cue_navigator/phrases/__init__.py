"""
Phrase extraction, normalization and matching.
"""

from .normalizer import normalize_words, fold_text
from .extractor import (
    extract_phrases,
    build_cards,
    with_phrase_overrides,
    overrides_from_cards,
)
from .matcher import PhraseMatcher

__all__ = [
    'normalize_words',
    'fold_text',
    'extract_phrases',
    'build_cards',
    'with_phrase_overrides',
    'overrides_from_cards',
    'PhraseMatcher'
]
