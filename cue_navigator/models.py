"""
Core data models for the cue card navigator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class NavigationMode(Enum):
    """Whether recognised exit phrases may move the performer forward."""
    AUTO_ADVANCE = "auto_advance"
    MANUAL_ONLY = "manual_only"


class EngineState(Enum):
    """Lifecycle states of the navigation engine."""
    IDLE = "idle"
    LISTENING = "listening"
    TRANSITIONING = "transitioning"
    RECOGNITION_PAUSED = "recognition_paused"
    FINISHED = "finished"
    STOPPED = "stopped"


class DetectionKind(Enum):
    """Which phrase of a card a detection sample was scored against."""
    ANCHOR = "anchor"
    EXIT = "exit"


class AudioLevelClass(Enum):
    """Classification of a single audio level sample."""
    TOO_LOW = "too_low"
    TOO_HIGH = "too_high"
    NOMINAL = "nominal"


class PresentationStyle(Enum):
    """How the presentation layer shows the script. Never read by the engine."""
    CUE_CARDS = "cue_cards"
    SCRIPT = "script"
    TELEPROMPTER = "teleprompter"

    @property
    def display_name(self) -> str:
        return {
            PresentationStyle.CUE_CARDS: "Cue Cards",
            PresentationStyle.SCRIPT: "Script",
            PresentationStyle.TELEPROMPTER: "Teleprompter",
        }[self]


@dataclass(frozen=True)
class ScriptSegment:
    """One entry of the ordered performance script as supplied by the setlist."""
    segment_id: str
    text: str


@dataclass(frozen=True)
class PhraseOverride:
    """User supplied replacement phrases for one segment (raw text)."""
    anchor_phrase: Optional[str] = None
    exit_phrase: Optional[str] = None


@dataclass(frozen=True)
class SegmentCard:
    """
    A single performable script segment with its recognition phrases.

    Phrases are stored as normalized token lists. A custom phrase, when
    present, replaces the derived one entirely.
    """
    id: str
    index: int
    full_text: str
    anchor_phrase: List[str]
    exit_phrase: List[str]
    custom_anchor_phrase: Optional[List[str]] = None
    custom_exit_phrase: Optional[List[str]] = None

    @property
    def effective_anchor_phrase(self) -> List[str]:
        if self.custom_anchor_phrase is not None:
            return self.custom_anchor_phrase
        return self.anchor_phrase

    @property
    def effective_exit_phrase(self) -> List[str]:
        if self.custom_exit_phrase is not None:
            return self.custom_exit_phrase
        return self.exit_phrase

    @property
    def has_custom_phrases(self) -> bool:
        return self.custom_anchor_phrase is not None or self.custom_exit_phrase is not None

    @property
    def is_empty(self) -> bool:
        return not self.full_text.strip()


@dataclass
class NavigationState:
    """Mutable navigation state, owned by the engine's consumer loop."""
    current_index: int = 0
    mode: NavigationMode = NavigationMode.AUTO_ADVANCE
    last_automatic_transition_at: Optional[float] = None


@dataclass(frozen=True)
class TransitionEvent:
    """An accepted move from one card to another."""
    from_index: int
    to_index: int
    timestamp: float
    was_automatic: bool
    exit_confidence: Optional[float] = None


@dataclass(frozen=True)
class DetectionSample:
    """One scored recognition attempt, recorded whether or not it crossed a threshold."""
    card_index: int
    kind: DetectionKind
    confidence: float
    matched_transcript: str
    timestamp: float


@dataclass(frozen=True)
class ConfidenceUpdate:
    """Live anchor/exit confidence for the current card, for feedback displays."""
    card_index: int
    anchor_confidence: float
    exit_confidence: float
    timestamp: float


@dataclass(frozen=True)
class TranscriptFragment:
    """An incremental piece of recognised speech."""
    text: str
    timestamp: float
    is_final: bool = False


@dataclass(frozen=True)
class AudioLevelSample:
    """A classified audio level reading."""
    level: float
    timestamp: float
    classification: AudioLevelClass


@dataclass(frozen=True)
class SuppressedTransition:
    """An automatic transition that crossed the exit threshold but was not applied."""
    card_index: int
    exit_confidence: float
    timestamp: float
    reason: str  # "debounced" or "superseded"
