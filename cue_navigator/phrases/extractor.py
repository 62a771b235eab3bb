"""
Derivation of anchor and exit phrases from segment text.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import Config
from ..models import PhraseOverride, ScriptSegment, SegmentCard
from .normalizer import normalize_words


logger = logging.getLogger(__name__)


def extract_phrases(full_text: str,
                    word_count: int = Config.PHRASE_WORD_COUNT) -> Tuple[List[str], List[str]]:
    """
    Return (anchor_phrase, exit_phrase) for a segment.

    The anchor is the first ``word_count`` normalized tokens and the exit is
    the last ``word_count``. Short segments yield overlapping phrases.
    """
    tokens = normalize_words(full_text)
    count = min(word_count, len(tokens))
    if count == 0:
        return [], []
    return tokens[:count], tokens[-count:]


def _normalize_override(text: Optional[str]) -> Optional[List[str]]:
    # An override that normalizes to nothing is treated as cleared
    if text is None:
        return None
    tokens = normalize_words(text)
    return tokens or None


def clean_segment_text(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def build_cards(segments: Sequence[ScriptSegment],
                overrides: Optional[Mapping[str, PhraseOverride]] = None) -> List[SegmentCard]:
    """
    Build the session's card list from the ordered segments.

    Segments whose text is empty after trimming are skipped, so ``index`` is
    the position in the returned list rather than in ``segments``.
    """
    overrides = overrides or {}
    cards: List[SegmentCard] = []
    skipped = 0

    for segment in segments:
        text = clean_segment_text(segment.text)
        if not text:
            skipped += 1
            continue

        anchor, exit_phrase = extract_phrases(text)
        override = overrides.get(segment.segment_id)
        cards.append(SegmentCard(
            id=segment.segment_id,
            index=len(cards),
            full_text=text,
            anchor_phrase=anchor,
            exit_phrase=exit_phrase,
            custom_anchor_phrase=_normalize_override(override.anchor_phrase) if override else None,
            custom_exit_phrase=_normalize_override(override.exit_phrase) if override else None,
        ))

    if skipped:
        logger.info(f"Skipped {skipped} empty segment(s)")
    logger.debug(f"Built {len(cards)} cards")
    return cards


def with_phrase_overrides(card: SegmentCard, override: Optional[PhraseOverride]) -> SegmentCard:
    """
    Return a copy of ``card`` with its custom phrases replaced.

    Passing ``None`` (or an override with both fields unset) clears the
    custom phrases; the derived phrases are recomputed from the text so the
    default is always the same.
    """
    anchor, exit_phrase = extract_phrases(card.full_text)
    if override is None:
        override = PhraseOverride()
    return replace(
        card,
        anchor_phrase=anchor,
        exit_phrase=exit_phrase,
        custom_anchor_phrase=_normalize_override(override.anchor_phrase),
        custom_exit_phrase=_normalize_override(override.exit_phrase),
    )


def overrides_from_cards(cards: Sequence[SegmentCard]) -> Dict[str, PhraseOverride]:
    """Collect the custom phrases of ``cards`` for persisting in the setlist."""
    result = {}
    for card in cards:
        if not card.has_custom_phrases:
            continue
        result[card.id] = PhraseOverride(
            anchor_phrase=" ".join(card.custom_anchor_phrase) if card.custom_anchor_phrase else None,
            exit_phrase=" ".join(card.custom_exit_phrase) if card.custom_exit_phrase else None,
        )
    return result
