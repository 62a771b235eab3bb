"""
Session analytics: recording of navigation events and their aggregation.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from ..audio.quality import AudioQualityMonitor
from ..config import Config, SessionSettings
from ..errors import AnalyticsFinalizedError
from ..models import (
    AudioLevelSample,
    DetectionKind,
    DetectionSample,
    SegmentCard,
    SuppressedTransition,
    TranscriptFragment,
    TransitionEvent,
)
from .models import CardStatistics, ProblemCard, SessionReport
from .recommendations import RecommendationGenerator


class SessionAnalytics:
    """
    Collects one session's events and derives its report.

    The recorded log is the only state; every aggregate is computed from it,
    so the same log always yields the same report. After ``finalize`` the
    analytics are frozen and further recording raises
    AnalyticsFinalizedError.
    """

    def __init__(self,
                 cards: Sequence[SegmentCard],
                 settings: Optional[SessionSettings] = None,
                 started_at: float = 0.0,
                 recommendation_generator: Optional[RecommendationGenerator] = None):
        self.logger = logging.getLogger(__name__)
        self.cards = list(cards)
        self.settings = settings.copy() if settings else SessionSettings()
        self.started_at = started_at
        self.recommendation_generator = recommendation_generator or RecommendationGenerator()

        self.transitions: List[TransitionEvent] = []
        self.detections: List[DetectionSample] = []
        self.audio_samples: List[AudioLevelSample] = []
        self.transcriptions_received = 0
        self.recognition_errors = 0
        self.suppressed_transitions = 0
        self.finished_at: Optional[float] = None

        self._report: Optional[SessionReport] = None

    # Recording

    def record_transition(self, event: TransitionEvent) -> None:
        self._ensure_open()
        self.transitions.append(event)

    def record_detection(self, sample: DetectionSample) -> None:
        self._ensure_open()
        self.detections.append(sample)

    def record_audio(self, sample: AudioLevelSample) -> None:
        self._ensure_open()
        self.audio_samples.append(sample)

    def record_transcription(self, fragment: Optional[TranscriptFragment] = None) -> None:
        self._ensure_open()
        self.transcriptions_received += 1

    def record_recognition_error(self) -> None:
        self._ensure_open()
        self.recognition_errors += 1

    def record_suppressed(self, suppressed: SuppressedTransition) -> None:
        self._ensure_open()
        self.suppressed_transitions += 1

    def record_finish(self, timestamp: float) -> None:
        self._ensure_open()
        self.finished_at = timestamp

    def attach(self, engine) -> None:
        """Subscribe to a NavigationEngine's event listeners."""
        engine.add_transition_listener(self.record_transition)
        engine.add_detection_listener(self.record_detection)
        engine.add_fragment_listener(self.record_transcription)
        engine.add_suppressed_listener(self.record_suppressed)
        engine.add_finish_listener(self.record_finish)

    def attach_monitor(self, monitor: AudioQualityMonitor) -> None:
        monitor.add_sample_listener(self.record_audio)

    # Aggregates

    @property
    def is_finalized(self) -> bool:
        return self._report is not None

    @property
    def automatic_transition_count(self) -> int:
        return sum(1 for event in self.transitions if event.was_automatic)

    @property
    def automatic_transition_percentage(self) -> float:
        """Share of automatic transitions in percent; 0 without transitions."""
        if not self.transitions:
            return 0.0
        return self.automatic_transition_count / len(self.transitions) * 100.0

    @property
    def average_confidence(self) -> float:
        if not self.detections:
            return 0.0
        return float(np.mean([sample.confidence for sample in self.detections]))

    @property
    def mean_audio_level(self) -> float:
        if not self.audio_samples:
            return 0.0
        return float(np.mean([sample.level for sample in self.audio_samples]))

    @property
    def peak_audio_level(self) -> float:
        if not self.audio_samples:
            return 0.0
        return float(np.max([sample.level for sample in self.audio_samples]))

    def card_statistics(self) -> List[CardStatistics]:
        """Per-card statistics for every card, in card order."""
        by_card: Dict[int, List[DetectionSample]] = defaultdict(list)
        for sample in self.detections:
            by_card[sample.card_index].append(sample)

        statistics = []
        for card in self.cards:
            samples = by_card.get(card.index, [])
            anchors = [s.confidence for s in samples if s.kind == DetectionKind.ANCHOR]
            exits = [s.confidence for s in samples if s.kind == DetectionKind.EXIT]
            best_anchor = max(anchors, default=0.0)
            best_exit = max(exits, default=0.0)

            statistics.append(CardStatistics(
                card_index=card.index,
                card_id=card.id,
                sample_count=len(samples),
                best_anchor_confidence=best_anchor,
                best_exit_confidence=best_exit,
                average_confidence=float(np.mean([s.confidence for s in samples])) if samples else 0.0,
                had_successful_anchor=bool(anchors) and best_anchor >= self.settings.anchor_threshold,
                had_successful_exit=bool(exits) and best_exit >= self.settings.exit_threshold,
            ))
        return statistics

    def problem_cards(self, statistics: Optional[Iterable[CardStatistics]] = None) -> List[ProblemCard]:
        """Cards whose exit phrase never crossed the threshold, or only weakly."""
        if statistics is None:
            statistics = self.card_statistics()

        problems = []
        for stats in statistics:
            if stats.sample_count == 0:
                reason = "No speech was recognized while this card was shown"
            elif not stats.had_successful_exit:
                reason = (
                    f"Exit phrase never reached the {self.settings.exit_threshold:.0%} threshold "
                    f"(best match {stats.best_exit_confidence:.0%})"
                )
            elif stats.best_exit_confidence < Config.PROBLEM_EXIT_CONFIDENCE:
                reason = f"Exit phrase was only recognized with low confidence ({stats.best_exit_confidence:.0%})"
            else:
                continue

            problems.append(ProblemCard(
                card_index=stats.card_index,
                card_id=stats.card_id,
                best_exit_confidence=stats.best_exit_confidence,
                reason=reason,
            ))
        return problems

    # Finalization

    def finalize(self, ended_at: float) -> SessionReport:
        """
        Freeze the analytics and return the session report.

        Calling finalize again returns the same report.
        """
        if self._report is not None:
            return self._report

        statistics = self.card_statistics()
        problems = self.problem_cards(statistics)
        percentage = self.automatic_transition_percentage
        automatic = self.automatic_transition_count

        recommendations = self.recommendation_generator.generate(
            mean_audio_level=self.mean_audio_level,
            audio_sample_count=len(self.audio_samples),
            average_confidence=self.average_confidence,
            detection_sample_count=len(self.detections),
            automatic_transition_percentage=percentage,
            total_transitions=len(self.transitions),
            problem_cards=problems,
        )

        self._report = SessionReport(
            started_at=self.started_at,
            ended_at=ended_at,
            card_count=len(self.cards),
            total_transitions=len(self.transitions),
            automatic_transitions=automatic,
            manual_transitions=len(self.transitions) - automatic,
            automatic_transition_percentage=percentage,
            average_confidence=self.average_confidence,
            mean_audio_level=self.mean_audio_level,
            peak_audio_level=self.peak_audio_level,
            audio_sample_count=len(self.audio_samples),
            detection_sample_count=len(self.detections),
            transcriptions_received=self.transcriptions_received,
            recognition_errors=self.recognition_errors,
            suppressed_transitions=self.suppressed_transitions,
            cards_with_successful_recognition=sum(1 for s in statistics if s.had_any_success),
            finished=self.finished_at is not None,
            card_statistics=tuple(statistics),
            problem_cards=tuple(problems),
            recommendations=tuple(recommendations),
            transitions=tuple(self.transitions),
        )

        self.logger.info(
            f"Session finalized: {len(self.transitions)} transitions "
            f"({percentage:.1f}% automatic), {len(problems)} problem cards"
        )
        return self._report

    @classmethod
    def from_log(cls,
                 cards: Sequence[SegmentCard],
                 settings: Optional[SessionSettings],
                 started_at: float,
                 ended_at: float,
                 transitions: Iterable[TransitionEvent] = (),
                 detections: Iterable[DetectionSample] = (),
                 audio_samples: Iterable[AudioLevelSample] = ()) -> SessionReport:
        """Build a report from a recorded event log."""
        analytics = cls(cards, settings, started_at)
        for event in transitions:
            analytics.record_transition(event)
        for sample in detections:
            analytics.record_detection(sample)
        for audio_sample in audio_samples:
            analytics.record_audio(audio_sample)
        return analytics.finalize(ended_at)

    def _ensure_open(self) -> None:
        if self._report is not None:
            raise AnalyticsFinalizedError("Session analytics are finalized and can no longer change")
