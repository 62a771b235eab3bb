"""
Rule-based performance recommendations.
"""

import logging
from typing import List, Sequence

from ..config import Config
from .models import ProblemCard


class RecommendationGenerator:
    """
    Turns session aggregates into human-readable advice.

    Rules are evaluated in a fixed order and every rule that applies
    contributes, so the output is deterministic for the same aggregates.
    """

    def __init__(self,
                 low_audio: float = Config.LOW_AUDIO_RECOMMENDATION,
                 high_audio: float = Config.HIGH_AUDIO_RECOMMENDATION,
                 low_confidence: float = Config.LOW_CONFIDENCE_RECOMMENDATION,
                 low_automatic_percentage: float = Config.LOW_AUTOMATIC_PERCENTAGE,
                 high_automatic_percentage: float = Config.HIGH_AUTOMATIC_PERCENTAGE,
                 min_transitions: int = Config.MIN_TRANSITIONS_FOR_PHRASE_ADVICE):
        self.logger = logging.getLogger(__name__)
        self.low_audio = low_audio
        self.high_audio = high_audio
        self.low_confidence = low_confidence
        self.low_automatic_percentage = low_automatic_percentage
        self.high_automatic_percentage = high_automatic_percentage
        self.min_transitions = min_transitions

    def generate(self,
                 mean_audio_level: float,
                 audio_sample_count: int,
                 average_confidence: float,
                 detection_sample_count: int,
                 automatic_transition_percentage: float,
                 total_transitions: int,
                 problem_cards: Sequence[ProblemCard]) -> List[str]:
        """
        Generate recommendations.

        Args:
            mean_audio_level: Mean input level over the session (0-1)
            audio_sample_count: Number of audio samples the mean is based on
            average_confidence: Mean confidence over all detection samples
            detection_sample_count: Number of detection samples
            automatic_transition_percentage: Share of automatic transitions (0-100)
            total_transitions: Number of accepted transitions
            problem_cards: Cards whose exit phrase was not reliably recognized

        Returns:
            Ordered list of recommendation strings
        """
        recommendations = []

        # Audio rules need audio; a silent log is not a quiet performer
        if audio_sample_count > 0:
            if mean_audio_level < self.low_audio:
                recommendations.append(
                    "🔊 Your voice was often too quiet. Speak louder or move closer to the microphone."
                )
            if mean_audio_level > self.high_audio:
                recommendations.append(
                    "📏 Your audio levels were very high. Move back from the microphone to avoid distortion."
                )

        if detection_sample_count > 0 and average_confidence < self.low_confidence:
            recommendations.append(
                f"🗣️ Recognition confidence was low ({average_confidence:.0%}). "
                "Try articulating more clearly, especially at the end of each segment."
            )

        if (total_transitions >= self.min_transitions
                and automatic_transition_percentage < self.low_automatic_percentage):
            recommendations.append(
                f"✏️ Only {automatic_transition_percentage:.0f}% of transitions were automatic. "
                "Consider refining the exit phrases of your cards."
            )

        if total_transitions > 0 and automatic_transition_percentage > self.high_automatic_percentage:
            recommendations.append(
                f"🎉 Great job! {automatic_transition_percentage:.0f}% of transitions happened automatically."
            )

        for problem in problem_cards:
            recommendations.append(
                f"Card {problem.card_index + 1}: {problem.reason}. "
                "Try setting a custom exit phrase that matches how you actually say it."
            )

        self.logger.debug(f"Generated {len(recommendations)} recommendations")
        return recommendations
