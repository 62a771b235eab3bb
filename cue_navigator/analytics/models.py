"""
Data models for session analytics.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..models import TransitionEvent


@dataclass(frozen=True)
class CardStatistics:
    """Recognition statistics for one card."""
    card_index: int
    card_id: str
    sample_count: int
    best_anchor_confidence: float
    best_exit_confidence: float
    average_confidence: float
    had_successful_anchor: bool
    had_successful_exit: bool

    @property
    def had_any_success(self) -> bool:
        return self.had_successful_anchor or self.had_successful_exit

    def to_dict(self) -> Dict[str, Any]:
        return {
            'card_index': self.card_index,
            'card_id': self.card_id,
            'sample_count': self.sample_count,
            'best_anchor_confidence': self.best_anchor_confidence,
            'best_exit_confidence': self.best_exit_confidence,
            'average_confidence': self.average_confidence,
            'had_successful_anchor': self.had_successful_anchor,
            'had_successful_exit': self.had_successful_exit,
        }


@dataclass(frozen=True)
class ProblemCard:
    """A card whose exit phrase was not reliably recognized."""
    card_index: int
    card_id: str
    best_exit_confidence: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'card_index': self.card_index,
            'card_id': self.card_id,
            'best_exit_confidence': self.best_exit_confidence,
            'reason': self.reason,
        }


@dataclass(frozen=True)
class SessionReport:
    """
    Finalized, immutable analytics for one performance session.

    Every value is derived from the recorded event log at finalization.
    """
    started_at: float
    ended_at: float
    card_count: int
    total_transitions: int
    automatic_transitions: int
    manual_transitions: int
    automatic_transition_percentage: float
    average_confidence: float
    mean_audio_level: float
    peak_audio_level: float
    audio_sample_count: int
    detection_sample_count: int
    transcriptions_received: int
    recognition_errors: int
    suppressed_transitions: int
    cards_with_successful_recognition: int
    finished: bool
    card_statistics: Tuple[CardStatistics, ...] = field(default_factory=tuple)
    problem_cards: Tuple[ProblemCard, ...] = field(default_factory=tuple)
    recommendations: Tuple[str, ...] = field(default_factory=tuple)
    transitions: Tuple[TransitionEvent, ...] = field(default_factory=tuple)

    @property
    def duration(self) -> float:
        return max(0.0, self.ended_at - self.started_at)

    @property
    def problem_card_indices(self) -> Tuple[int, ...]:
        return tuple(problem.card_index for problem in self.problem_cards)

    def statistics_for(self, card_index: int) -> Optional[CardStatistics]:
        for stats in self.card_statistics:
            if stats.card_index == card_index:
                return stats
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'started_at': self.started_at,
            'ended_at': self.ended_at,
            'duration': self.duration,
            'card_count': self.card_count,
            'finished': self.finished,
            'transitions': {
                'total': self.total_transitions,
                'automatic': self.automatic_transitions,
                'manual': self.manual_transitions,
                'automatic_percentage': self.automatic_transition_percentage,
                'suppressed': self.suppressed_transitions,
                'events': [
                    {
                        'from_index': event.from_index,
                        'to_index': event.to_index,
                        'timestamp': event.timestamp,
                        'was_automatic': event.was_automatic,
                        'exit_confidence': event.exit_confidence,
                    }
                    for event in self.transitions
                ],
            },
            'recognition': {
                'average_confidence': self.average_confidence,
                'detection_samples': self.detection_sample_count,
                'transcriptions_received': self.transcriptions_received,
                'errors': self.recognition_errors,
                'cards_with_successful_recognition': self.cards_with_successful_recognition,
            },
            'audio': {
                'mean_level': self.mean_audio_level,
                'peak_level': self.peak_audio_level,
                'samples': self.audio_sample_count,
            },
            'cards': [stats.to_dict() for stats in self.card_statistics],
            'problem_cards': [problem.to_dict() for problem in self.problem_cards],
            'recommendations': list(self.recommendations),
        }
