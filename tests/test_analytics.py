"""
Tests for session analytics, recommendations and reporting.
"""

import json

import pytest
from hypothesis import given, strategies as st

from cue_navigator.analytics import (
    RecommendationGenerator,
    SessionAnalytics,
    format_detailed_report,
    format_json_report,
)
from cue_navigator.config import SessionSettings
from cue_navigator.errors import AnalyticsFinalizedError
from cue_navigator.models import (
    AudioLevelClass,
    AudioLevelSample,
    DetectionKind,
    DetectionSample,
    TranscriptFragment,
    TransitionEvent,
)
from cue_navigator.navigation.engine import NavigationEngine

from conftest import FakeClock, make_cards


def detection(card_index, kind, confidence, timestamp=0.0):
    return DetectionSample(card_index, kind, confidence, "transcript", timestamp)


def audio(level, timestamp=0.0):
    return AudioLevelSample(level, timestamp, AudioLevelClass.NOMINAL)


def scenario_log():
    """Ten cards: 7 automatic and 2 manual transitions, last card never completed."""
    transitions = []
    detections = []
    for index in range(9):
        automatic = index not in (3, 6)
        timestamp = 10.0 * (index + 1)
        detections.append(detection(index, DetectionKind.ANCHOR, 0.8, timestamp - 5))
        detections.append(detection(index, DetectionKind.EXIT, 0.9, timestamp))
        transitions.append(TransitionEvent(index, index + 1, timestamp, automatic,
                                           0.9 if automatic else None))
    return transitions, detections


class TestAggregates:
    """Test derived session values."""

    def test_reference_session(self):
        cards = make_cards([f"Card number {i}." for i in range(10)])
        transitions, detections = scenario_log()

        report = SessionAnalytics.from_log(cards, SessionSettings(), 0.0, 100.0,
                                           transitions, detections)

        assert report.total_transitions == 9
        assert report.automatic_transitions == 7
        assert report.manual_transitions == 2
        assert report.automatic_transition_percentage == pytest.approx(77.78, abs=0.01)
        assert report.problem_card_indices == (9,)
        assert report.cards_with_successful_recognition == 9
        assert report.duration == 100.0

    def test_no_transitions(self):
        cards = make_cards(["Only card."])
        report = SessionAnalytics(cards).finalize(5.0)
        assert report.automatic_transition_percentage == 0.0
        assert report.average_confidence == 0.0
        assert report.problem_cards[0].reason.startswith("No speech")

    def test_average_over_all_samples(self):
        cards = make_cards(["One.", "Two."])
        report = SessionAnalytics.from_log(cards, None, 0.0, 1.0, detections=[
            detection(0, DetectionKind.ANCHOR, 0.2),
            detection(0, DetectionKind.EXIT, 0.4),
            detection(1, DetectionKind.EXIT, 0.9),
        ])
        assert report.average_confidence == pytest.approx(0.5)

    def test_card_statistics(self):
        cards = make_cards(["One.", "Two."])
        report = SessionAnalytics.from_log(cards, SessionSettings(), 0.0, 1.0, detections=[
            detection(0, DetectionKind.ANCHOR, 0.5),
            detection(0, DetectionKind.EXIT, 0.3),
            detection(0, DetectionKind.EXIT, 0.55),
        ])
        stats = report.statistics_for(0)
        assert stats.best_anchor_confidence == 0.5
        assert stats.best_exit_confidence == 0.55
        assert stats.had_successful_anchor
        assert not stats.had_successful_exit
        assert stats.sample_count == 3

        problem = report.problem_cards[0]
        assert problem.card_index == 0
        assert "never reached the 60% threshold" in problem.reason

    def test_weak_but_successful_exit_is_a_problem(self):
        cards = make_cards(["One."])
        settings = SessionSettings(exit_threshold=0.4)
        report = SessionAnalytics.from_log(cards, settings, 0.0, 1.0, detections=[
            detection(0, DetectionKind.EXIT, 0.45),
        ])
        assert report.card_statistics[0].had_successful_exit
        assert "low confidence" in report.problem_cards[0].reason

    def test_audio_aggregates(self):
        cards = make_cards(["One."])
        report = SessionAnalytics.from_log(cards, None, 0.0, 1.0,
                                           audio_samples=[audio(0.2), audio(0.6)])
        assert report.mean_audio_level == pytest.approx(0.4)
        assert report.peak_audio_level == pytest.approx(0.6)
        assert report.audio_sample_count == 2

    @given(st.lists(st.tuples(st.integers(min_value=0, max_value=2),
                              st.sampled_from(list(DetectionKind)),
                              st.floats(min_value=0.0, max_value=1.0)),
                    max_size=30),
           st.lists(st.booleans(), max_size=10))
    def test_replaying_a_log_is_deterministic(self, samples, automatic_flags):
        """Property: the same log always yields the same report."""
        cards = make_cards(["One.", "Two.", "Three."])
        detections = [detection(i, kind, c, float(n)) for n, (i, kind, c) in enumerate(samples)]
        transitions = [TransitionEvent(0, 1, float(n), flag, 0.9 if flag else None)
                       for n, flag in enumerate(automatic_flags)]

        first = SessionAnalytics.from_log(cards, None, 0.0, 50.0, transitions, detections)
        second = SessionAnalytics.from_log(cards, None, 0.0, 50.0, transitions, detections)
        assert first == second


class TestFinalization:
    """Test that finalized analytics are immutable."""

    def test_recording_after_finalize_fails(self):
        analytics = SessionAnalytics(make_cards(["One."]))
        report = analytics.finalize(1.0)

        assert analytics.is_finalized
        assert analytics.finalize(2.0) is report
        with pytest.raises(AnalyticsFinalizedError):
            analytics.record_detection(detection(0, DetectionKind.EXIT, 1.0))
        with pytest.raises(AnalyticsFinalizedError):
            analytics.record_transition(TransitionEvent(0, 1, 1.0, False))


class TestEngineIntegration:
    """Test analytics attached to a live engine."""

    def test_attach_records_engine_events(self, end_cards):
        engine = NavigationEngine(end_cards, clock=FakeClock())
        analytics = SessionAnalytics(end_cards, started_at=0.0)
        analytics.attach(engine)
        engine.start(timestamp=0.0)

        engine.process_fragment(TranscriptFragment("that is the end", 1.0))
        engine.process_fragment(TranscriptFragment("that is the end", 1.5))
        engine.process_fragment(TranscriptFragment("...", 1.6))
        engine.advance(timestamp=2.0)

        report = analytics.finalize(3.0)
        assert report.transcriptions_received == 3
        assert report.detection_sample_count == 4
        assert report.suppressed_transitions == 1
        assert report.total_transitions == 2
        assert report.automatic_transition_percentage == 50.0
        assert not report.finished


class TestRecommendations:
    """Test rule-based recommendations."""

    def _generate(self, **overrides):
        values = dict(
            mean_audio_level=0.4,
            audio_sample_count=10,
            average_confidence=0.8,
            detection_sample_count=10,
            automatic_transition_percentage=50.0,
            total_transitions=4,
            problem_cards=[],
        )
        values.update(overrides)
        return RecommendationGenerator().generate(**values)

    def test_nominal_session_has_no_advice(self):
        assert self._generate() == []

    def test_quiet_audio(self):
        recommendations = self._generate(mean_audio_level=0.05)
        assert len(recommendations) == 1
        assert "louder" in recommendations[0]

    def test_loud_audio(self):
        assert "Move back" in self._generate(mean_audio_level=0.85)[0]

    def test_no_audio_samples_gives_no_audio_advice(self):
        assert self._generate(mean_audio_level=0.0, audio_sample_count=0) == []

    def test_low_confidence(self):
        assert "articulating" in self._generate(average_confidence=0.3)[0]

    def test_low_automatic_share_needs_enough_transitions(self):
        assert "refining" in self._generate(automatic_transition_percentage=20.0)[0]
        assert self._generate(automatic_transition_percentage=20.0, total_transitions=2) == []

    def test_positive_reinforcement(self):
        assert "Great job" in self._generate(automatic_transition_percentage=90.0)[0]

    def test_all_matching_rules_in_order(self, end_cards):
        analytics = SessionAnalytics(end_cards)
        problems = analytics.problem_cards()
        recommendations = self._generate(
            mean_audio_level=0.05,
            average_confidence=0.3,
            automatic_transition_percentage=10.0,
            problem_cards=problems,
        )

        assert len(recommendations) == 3 + len(problems)
        assert "louder" in recommendations[0]
        assert "articulating" in recommendations[1]
        assert "refining" in recommendations[2]
        assert recommendations[3].startswith("Card 1:")


class TestReporter:
    """Test report formatting."""

    def test_detailed_report(self):
        cards = make_cards([f"Card number {i}." for i in range(10)])
        transitions, detections = scenario_log()
        report = SessionAnalytics.from_log(cards, None, 0.0, 100.0, transitions, detections)

        text = format_detailed_report(report)
        assert "PERFORMANCE SESSION REPORT" in text
        assert "Automatic: 7 (77.8%)" in text
        assert "✗ Card 10" in text
        assert "RECOMMENDATIONS" in text

    def test_json_report(self):
        report = SessionAnalytics(make_cards(["One."])).finalize(1.0)
        data = json.loads(format_json_report(report))
        assert data["card_count"] == 1
        assert data["transitions"]["automatic_percentage"] == 0.0
        assert len(data["problem_cards"]) == 1
