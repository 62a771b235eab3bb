"""
Tests for phrase normalization, extraction and matching.
"""

import pytest
from hypothesis import given, strategies as st

from cue_navigator.models import PhraseOverride, ScriptSegment
from cue_navigator.phrases import (
    PhraseMatcher,
    build_cards,
    extract_phrases,
    normalize_words,
    overrides_from_cards,
    with_phrase_overrides,
)

from conftest import make_cards


words = st.sampled_from(["that", "is", "the", "end", "a", "show", "train", "night"])
token_lists = st.lists(words, max_size=30)


class TestNormalizer:
    """Test shared word normalization."""

    def test_lowercases_and_strips_punctuation(self):
        assert normalize_words("Hello, World!") == ["hello", "world"]

    def test_folds_diacritics(self):
        assert normalize_words("Café déjà-vu") == ["cafe", "deja", "vu"]

    def test_empty_and_punctuation_only(self):
        assert normalize_words("") == []
        assert normalize_words(" ... -- !") == []

    def test_keeps_non_latin_words(self):
        assert normalize_words("你好 世界") == ["你好", "世界"]

    def test_inner_punctuation_splits_words(self):
        assert normalize_words("Don't stop, it's “the end.”") == ["don", "t", "stop", "it", "s", "the", "end"]

    def test_contractions_match_across_script_and_transcript(self):
        exit_phrase = normalize_words("and that's the end")
        assert PhraseMatcher().match(normalize_words("and that's the end"), exit_phrase) == 1.0
        assert len(exit_phrase) == 5

    @given(st.text(max_size=80, alphabet=st.characters(
        whitelist_categories=("Lu", "Ll", "Nd", "Zs", "Po"), max_codepoint=0x24F)))
    def test_normalization_is_idempotent(self, text):
        """Property: normalizing normalized text changes nothing."""
        tokens = normalize_words(text)
        assert normalize_words(" ".join(tokens)) == tokens


class TestExtraction:
    """Test anchor and exit phrase derivation."""

    def test_long_text_uses_first_and_last_fifteen_words(self):
        text = " ".join(f"w{i}" for i in range(20))
        anchor, exit_phrase = extract_phrases(text)
        assert anchor == [f"w{i}" for i in range(15)]
        assert exit_phrase == [f"w{i}" for i in range(5, 20)]

    def test_short_text_phrases_overlap(self):
        anchor, exit_phrase = extract_phrases("That is the end.")
        assert anchor == exit_phrase == ["that", "is", "the", "end"]

    def test_empty_text(self):
        assert extract_phrases("   ") == ([], [])

    @given(st.text(max_size=200))
    def test_extraction_is_deterministic(self, text):
        """Property: extraction is a pure function of the text."""
        assert extract_phrases(text) == extract_phrases(text)

    @given(st.text(max_size=200))
    def test_phrases_are_bounded(self, text):
        anchor, exit_phrase = extract_phrases(text)
        assert len(anchor) <= 15
        assert len(exit_phrase) == len(anchor)


class TestBuildCards:
    """Test card list construction."""

    def test_skips_empty_segments_and_reindexes(self):
        cards = make_cards(["First one.", "  \r\n ", "Second one."])
        assert [card.index for card in cards] == [0, 1]
        assert [card.id for card in cards] == ["segment-1", "segment-3"]

    def test_normalizes_line_endings(self):
        cards = make_cards(["Line one\r\nline two"])
        assert cards[0].full_text == "Line one\nline two"

    def test_overrides_are_normalized(self):
        cards = make_cards(["Some text here."],
                           overrides={"segment-1": PhraseOverride(exit_phrase="The END!")})
        assert cards[0].custom_exit_phrase == ["the", "end"]
        assert cards[0].custom_anchor_phrase is None

    def test_blank_override_counts_as_cleared(self):
        cards = make_cards(["Some text here."],
                           overrides={"segment-1": PhraseOverride(exit_phrase=" ?! ")})
        assert cards[0].custom_exit_phrase is None

    def test_override_for_unknown_segment_is_ignored(self):
        cards = build_cards([ScriptSegment("a", "Hello.")],
                            {"missing": PhraseOverride(exit_phrase="x")})
        assert not cards[0].has_custom_phrases


class TestPhraseOverrides:
    """Test editing custom phrases between sessions."""

    def test_clearing_override_restores_default(self, override_cards):
        card = override_cards[0]
        assert card.effective_exit_phrase == ["talk", "about", "trains"]

        cleared = with_phrase_overrides(card, None)
        assert cleared.custom_exit_phrase is None
        assert cleared.effective_exit_phrase == extract_phrases(card.full_text)[1]

    def test_setting_override(self, override_cards):
        edited = with_phrase_overrides(override_cards[1], PhraseOverride(anchor_phrase="Trains were"))
        assert edited.effective_anchor_phrase == ["trains", "were"]
        assert edited.id == override_cards[1].id

    def test_overrides_from_cards(self, override_cards):
        overrides = overrides_from_cards(override_cards)
        assert overrides == {"segment-1": PhraseOverride(exit_phrase="talk about trains")}


class TestPhraseMatcher:
    """Test the sliding-window matcher."""

    def setup_method(self):
        self.matcher = PhraseMatcher()

    def test_exact_window_inside_longer_transcript(self):
        """A transcript containing the exit phrase matches fully."""
        target = ["that", "is", "the", "end"]
        assert self.matcher.match_text("and that is the end", target) == 1.0

    def test_partial_match_stays_at_or_below_half(self):
        target = ["that", "is", "the", "end"]
        assert self.matcher.match_text("that was the beginning", target) == 0.5

    def test_one_wrong_word_scores_three_quarters(self):
        target = ["that", "is", "the", "end"]
        assert self.matcher.match_text("that is the beginning", target) == 0.75

    def test_word_order_matters(self):
        target = ["that", "is", "the", "end"]
        assert self.matcher.match(["end", "the", "is", "that"], target) == 0.0

    def test_short_transcript_uses_single_window(self):
        target = ["that", "is", "the", "end"]
        assert self.matcher.match(["that", "is"], target) == 0.5

    def test_empty_inputs_score_zero(self):
        assert self.matcher.match([], ["end"]) == 0.0
        assert self.matcher.match(["end"], []) == 0.0

    @given(token_lists, token_lists)
    def test_confidence_in_unit_interval(self, transcript, target):
        """Property: confidence is always within [0, 1]."""
        assert 0.0 <= self.matcher.match(transcript, target) <= 1.0

    @given(token_lists)
    def test_empty_target_never_matches(self, transcript):
        assert self.matcher.match(transcript, []) == 0.0

    @given(token_lists.filter(bool))
    def test_empty_transcript_never_matches(self, target):
        assert self.matcher.match([], target) == 0.0

    @given(token_lists.filter(bool))
    def test_phrase_matches_itself(self, target):
        """Property: an exact recital of the phrase scores 1.0."""
        assert self.matcher.match(target, target) == 1.0

    @given(token_lists, token_lists.filter(bool), token_lists)
    def test_phrase_embedded_in_transcript(self, prefix, target, suffix):
        assert self.matcher.match(prefix + target + suffix, target) == 1.0

    @pytest.mark.parametrize("text", ["", "   ", "!!!"])
    def test_unusable_text_scores_zero(self, text):
        assert self.matcher.match_text(text, ["end"]) == 0.0
