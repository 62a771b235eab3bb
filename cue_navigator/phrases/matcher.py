"""
Position-sensitive fuzzy matching of live transcripts against card phrases.
"""

from typing import Sequence

from .normalizer import normalize_words


class PhraseMatcher:
    """
    Sliding-window phrase matcher.

    A window the length of the target slides over the transcript one token at
    a time; each window scores the fraction of target tokens that appear at
    the same offset. Word order matters, which keeps scattered keyword
    mentions mid-segment from scoring high.

    Matching never raises. Empty inputs score 0.0.
    """

    def match(self, transcript_tokens: Sequence[str], target_tokens: Sequence[str]) -> float:
        """Return the best window confidence in [0, 1]."""
        target_count = len(target_tokens)
        if target_count == 0 or not transcript_tokens:
            return 0.0

        window = min(target_count, len(transcript_tokens))
        best = 0
        for start in range(len(transcript_tokens) - window + 1):
            matches = sum(
                1 for offset in range(window)
                if transcript_tokens[start + offset] == target_tokens[offset]
            )
            if matches > best:
                best = matches
                if best == target_count:
                    break

        return best / target_count

    def match_text(self, transcript: str, target_tokens: Sequence[str]) -> float:
        """Normalize raw transcript text and match it against ``target_tokens``."""
        return self.match(normalize_words(transcript), target_tokens)
