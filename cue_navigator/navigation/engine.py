"""
Card navigation state machine.

The engine owns the ordered card list and the current position. It scores
incoming transcript fragments against the current card's phrases and
decides when to move on. It is synchronous and single threaded: the
session's consumer loop is the only caller while a session is running.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..config import SessionSettings
from ..errors import NavigationError, SegmentSourceError
from ..models import (
    ConfidenceUpdate,
    DetectionKind,
    DetectionSample,
    EngineState,
    NavigationMode,
    NavigationState,
    SegmentCard,
    SuppressedTransition,
    TranscriptFragment,
    TransitionEvent,
)
from ..phrases.matcher import PhraseMatcher
from ..phrases.normalizer import normalize_words


@dataclass(frozen=True)
class FragmentEvaluation:
    """
    Result of scoring one fragment, pending a commit.

    ``generation`` is the engine's navigation generation at scoring time.
    A commit with a stale generation is discarded.
    """
    card_index: int
    anchor_confidence: float
    exit_confidence: float
    transcript: str
    timestamp: float
    generation: int


class NavigationEngine:
    """
    Moves through the session's cards automatically and on request.

    Automatic moves happen when the current card's exit phrase is matched at
    or above the exit threshold, at most once per debounce interval. Manual
    moves are always applied immediately, reset the debounce window and
    invalidate any automatic evaluation that has not been committed yet.

    Reaching the exit phrase of the last card finishes the session without
    recording a transition.
    """

    def __init__(self,
                 cards: Sequence[SegmentCard],
                 settings: Optional[SessionSettings] = None,
                 matcher: Optional[PhraseMatcher] = None,
                 clock: Optional[Callable[[], float]] = None):
        if not cards:
            raise SegmentSourceError.from_reason("The script has no non-empty segments")

        self.logger = logging.getLogger(__name__)
        self.cards: List[SegmentCard] = list(cards)
        self.settings = settings.copy() if settings else SessionSettings()
        self.matcher = matcher or PhraseMatcher()
        self.clock = clock or time.monotonic

        self.navigation = NavigationState(mode=self._configured_mode())
        self.state = EngineState.IDLE
        self.started_at: Optional[float] = None
        self.stopped_at: Optional[float] = None

        self.anchor_confidence = 0.0
        self.exit_confidence = 0.0
        self.partial_transcript = ""
        self.last_detection_kind: Optional[DetectionKind] = None

        self._generation = 0
        self._recognition_paused = False

        self._transition_listeners: List[Callable[[TransitionEvent], None]] = []
        self._confidence_listeners: List[Callable[[ConfidenceUpdate], None]] = []
        self._detection_listeners: List[Callable[[DetectionSample], None]] = []
        self._fragment_listeners: List[Callable[[TranscriptFragment], None]] = []
        self._suppressed_listeners: List[Callable[[SuppressedTransition], None]] = []
        self._state_listeners: List[Callable[[EngineState, EngineState], None]] = []
        self._finish_listeners: List[Callable[[float], None]] = []

    # Listener registration

    def add_transition_listener(self, callback: Callable[[TransitionEvent], None]) -> None:
        self._transition_listeners.append(callback)

    def add_confidence_listener(self, callback: Callable[[ConfidenceUpdate], None]) -> None:
        self._confidence_listeners.append(callback)

    def add_detection_listener(self, callback: Callable[[DetectionSample], None]) -> None:
        """Called for every scored sample, whether or not it crossed a threshold."""
        self._detection_listeners.append(callback)

    def add_fragment_listener(self, callback: Callable[[TranscriptFragment], None]) -> None:
        self._fragment_listeners.append(callback)

    def add_suppressed_listener(self, callback: Callable[[SuppressedTransition], None]) -> None:
        self._suppressed_listeners.append(callback)

    def add_state_listener(self, callback: Callable[[EngineState, EngineState], None]) -> None:
        self._state_listeners.append(callback)

    def add_finish_listener(self, callback: Callable[[float], None]) -> None:
        self._finish_listeners.append(callback)

    # Lifecycle

    def start(self, recognition_available: bool = True, timestamp: Optional[float] = None) -> None:
        """
        Begin the session on the current card.

        Without recognition the engine starts paused in manual-only mode and
        never enters LISTENING until recognition is resumed.
        """
        if self.state != EngineState.IDLE:
            raise RuntimeError(f"Engine already started (state: {self.state.value})")

        self.started_at = self._now(timestamp)
        if recognition_available:
            self._set_state(EngineState.LISTENING)
        else:
            self._recognition_paused = True
            self.navigation.mode = NavigationMode.MANUAL_ONLY
            self._set_state(EngineState.RECOGNITION_PAUSED)
            self.logger.warning("Recognition unavailable, starting in manual-only mode")

        self.logger.info(f"Session started with {len(self.cards)} cards")

    def stop(self, timestamp: Optional[float] = None) -> None:
        """Stop the engine. Safe to call in any state and more than once."""
        if self.state == EngineState.STOPPED:
            return
        self.stopped_at = self._now(timestamp)
        self._generation += 1
        self._set_state(EngineState.STOPPED)
        self.logger.info(f"Session stopped on card {self.current_index + 1} of {len(self.cards)}")

    def pause_recognition(self, reason: str = "") -> None:
        """Enter the degraded manual-only sub-state. Manual navigation keeps working."""
        if self.state == EngineState.STOPPED or self._recognition_paused:
            return

        self._recognition_paused = True
        self.navigation.mode = NavigationMode.MANUAL_ONLY
        self._generation += 1
        self._reset_live_values()
        if self.state in (EngineState.LISTENING, EngineState.TRANSITIONING):
            self._set_state(EngineState.RECOGNITION_PAUSED)

        message = "Recognition paused, continuing in manual-only mode"
        if reason:
            message += f": {reason}"
        self.logger.warning(message)

    def resume_recognition(self) -> bool:
        """Leave the paused sub-state. Returns False once stopped."""
        if self.state == EngineState.STOPPED:
            return False
        if not self._recognition_paused:
            return True

        self._recognition_paused = False
        self.navigation.mode = self._configured_mode()
        if self.state in (EngineState.RECOGNITION_PAUSED, EngineState.IDLE):
            self._set_state(EngineState.LISTENING)
        self.logger.info("Recognition resumed")
        return True

    # Recognition

    def process_fragment(self, fragment: TranscriptFragment) -> Optional[TransitionEvent]:
        """Score and immediately commit one fragment."""
        evaluation = self.evaluate_fragment(fragment)
        if evaluation is None:
            return None
        return self.commit(evaluation)

    def evaluate_fragment(self, fragment: TranscriptFragment) -> Optional[FragmentEvaluation]:
        """
        Score a fragment against the current card and publish the samples.

        Returns None when the engine is not listening or the fragment has no
        usable words. Nothing here moves the position; see ``commit``.
        """
        if self.state != EngineState.LISTENING:
            return None

        for listener in self._fragment_listeners:
            listener(fragment)

        tokens = normalize_words(fragment.text)
        if not tokens:
            return None

        card = self.current_card
        anchor_confidence = self.matcher.match(tokens, card.effective_anchor_phrase)
        exit_confidence = self.matcher.match(tokens, card.effective_exit_phrase)

        self.anchor_confidence = anchor_confidence
        self.exit_confidence = exit_confidence
        self.partial_transcript = fragment.text
        if exit_confidence >= self.settings.exit_threshold:
            self.last_detection_kind = DetectionKind.EXIT
        elif anchor_confidence >= self.settings.anchor_threshold:
            self.last_detection_kind = DetectionKind.ANCHOR

        for kind, confidence in ((DetectionKind.ANCHOR, anchor_confidence),
                                 (DetectionKind.EXIT, exit_confidence)):
            sample = DetectionSample(
                card_index=card.index,
                kind=kind,
                confidence=confidence,
                matched_transcript=fragment.text,
                timestamp=fragment.timestamp,
            )
            for listener in self._detection_listeners:
                listener(sample)

        self._publish_confidence(fragment.timestamp)

        return FragmentEvaluation(
            card_index=card.index,
            anchor_confidence=anchor_confidence,
            exit_confidence=exit_confidence,
            transcript=fragment.text,
            timestamp=fragment.timestamp,
            generation=self._generation,
        )

    def commit(self, evaluation: FragmentEvaluation) -> Optional[TransitionEvent]:
        """
        Apply the automatic transition an evaluation asks for, if still valid.

        Below-threshold evaluations and manual-only mode are no-ops. An
        evaluation made before a later navigation, or inside the debounce
        window, is suppressed and reported to the suppressed listeners.
        """
        if self.navigation.mode != NavigationMode.AUTO_ADVANCE:
            return None
        if evaluation.exit_confidence < self.settings.exit_threshold:
            return None

        if (evaluation.generation != self._generation
                or self.state != EngineState.LISTENING
                or evaluation.card_index != self.current_index):
            self._suppress(evaluation, "superseded")
            return None

        last = self.navigation.last_automatic_transition_at
        if last is not None and evaluation.timestamp - last < self.settings.debounce_interval:
            self._suppress(evaluation, "debounced")
            return None

        if not self.has_next_card:
            self._finish(evaluation.timestamp)
            return None

        return self._move_to(
            self.current_index + 1,
            evaluation.timestamp,
            was_automatic=True,
            exit_confidence=evaluation.exit_confidence,
        )

    # Manual navigation

    def advance(self, timestamp: Optional[float] = None) -> Optional[TransitionEvent]:
        """Move to the next card. No-op on the last card."""
        if not self._manual_allowed() or not self.has_next_card:
            return None
        return self._move_to(self.current_index + 1, self._now(timestamp), was_automatic=False)

    def retreat(self, timestamp: Optional[float] = None) -> Optional[TransitionEvent]:
        """Move to the previous card. No-op on the first card."""
        if not self._manual_allowed() or not self.has_previous_card:
            return None
        return self._move_to(self.current_index - 1, self._now(timestamp), was_automatic=False)

    def jump_to(self, index: int, timestamp: Optional[float] = None) -> Optional[TransitionEvent]:
        """Move to ``index``. Raises NavigationError when it is out of range."""
        if not 0 <= index < len(self.cards):
            raise NavigationError.invalid_index(index, len(self.cards))
        if not self._manual_allowed():
            return None

        now = self._now(timestamp)
        if index == self.current_index:
            if self.state == EngineState.FINISHED:
                self.navigation.last_automatic_transition_at = now
                self._generation += 1
                self._set_state(self._active_state())
            return None
        return self._move_to(index, now, was_automatic=False)

    # Properties

    @property
    def current_index(self) -> int:
        return self.navigation.current_index

    @property
    def current_card(self) -> SegmentCard:
        return self.cards[self.navigation.current_index]

    @property
    def card_count(self) -> int:
        return len(self.cards)

    @property
    def mode(self) -> NavigationMode:
        return self.navigation.mode

    @property
    def has_next_card(self) -> bool:
        return self.current_index < len(self.cards) - 1

    @property
    def has_previous_card(self) -> bool:
        return self.current_index > 0

    @property
    def is_recognition_paused(self) -> bool:
        return self._recognition_paused

    @property
    def progress_fraction(self) -> float:
        return (self.current_index + 1) / len(self.cards)

    @property
    def formatted_progress(self) -> str:
        return f"{self.current_index + 1} / {len(self.cards)}"

    @property
    def elapsed_time(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.stopped_at if self.stopped_at is not None else self.clock()
        return max(0.0, end - self.started_at)

    @property
    def formatted_time(self) -> str:
        total_seconds = int(self.elapsed_time)
        minutes, seconds = divmod(total_seconds, 60)
        return f"{minutes}:{seconds:02d}"

    @property
    def contextual_phrases(self) -> List[str]:
        """Hints for the recognition service: the current card's phrases as text."""
        card = self.current_card
        return [" ".join(phrase)
                for phrase in (card.effective_anchor_phrase, card.effective_exit_phrase)
                if phrase]

    # Internals

    def _configured_mode(self) -> NavigationMode:
        if self.settings.auto_advance_enabled:
            return NavigationMode.AUTO_ADVANCE
        return NavigationMode.MANUAL_ONLY

    def _active_state(self) -> EngineState:
        return EngineState.RECOGNITION_PAUSED if self._recognition_paused else EngineState.LISTENING

    def _now(self, timestamp: Optional[float]) -> float:
        return self.clock() if timestamp is None else timestamp

    def _manual_allowed(self) -> bool:
        if self.state == EngineState.STOPPED:
            self.logger.debug("Ignoring manual navigation after stop")
            return False
        return True

    def _move_to(self, to_index: int, timestamp: float, was_automatic: bool,
                 exit_confidence: Optional[float] = None) -> TransitionEvent:
        from_index = self.current_index
        event = TransitionEvent(
            from_index=from_index,
            to_index=to_index,
            timestamp=timestamp,
            was_automatic=was_automatic,
            exit_confidence=exit_confidence if was_automatic else None,
        )

        started = self.state != EngineState.IDLE
        if started:
            self._set_state(EngineState.TRANSITIONING)

        self.navigation.current_index = to_index
        self.navigation.last_automatic_transition_at = timestamp
        self._generation += 1
        self._reset_live_values()

        if was_automatic:
            self.logger.info(
                f"Auto-advanced from card {from_index + 1} to {to_index + 1} "
                f"(exit confidence {exit_confidence:.2f})"
            )
        else:
            self.logger.info(f"Moved from card {from_index + 1} to {to_index + 1} manually")

        for listener in self._transition_listeners:
            listener(event)

        if started:
            self._set_state(self._active_state())
        self._publish_confidence(timestamp)
        return event

    def _finish(self, timestamp: float) -> None:
        self.navigation.last_automatic_transition_at = timestamp
        self._generation += 1
        self._set_state(EngineState.FINISHED)
        self.logger.info("Exit phrase of the last card recognized, performance finished")
        for listener in self._finish_listeners:
            listener(timestamp)

    def _suppress(self, evaluation: FragmentEvaluation, reason: str) -> None:
        suppressed = SuppressedTransition(
            card_index=evaluation.card_index,
            exit_confidence=evaluation.exit_confidence,
            timestamp=evaluation.timestamp,
            reason=reason,
        )
        self.logger.debug(
            f"Automatic transition on card {evaluation.card_index + 1} {reason} "
            f"at {evaluation.timestamp:.2f}s"
        )
        for listener in self._suppressed_listeners:
            listener(suppressed)

    def _reset_live_values(self) -> None:
        self.anchor_confidence = 0.0
        self.exit_confidence = 0.0
        self.partial_transcript = ""
        self.last_detection_kind = None

    def _publish_confidence(self, timestamp: float) -> None:
        update = ConfidenceUpdate(
            card_index=self.current_index,
            anchor_confidence=self.anchor_confidence,
            exit_confidence=self.exit_confidence,
            timestamp=timestamp,
        )
        for listener in self._confidence_listeners:
            listener(update)

    def _set_state(self, new_state: EngineState) -> None:
        old_state = self.state
        if old_state == new_state:
            return
        self.state = new_state
        self.logger.debug(f"Engine state {old_state.value} -> {new_state.value}")
        for listener in self._state_listeners:
            listener(old_state, new_state)
