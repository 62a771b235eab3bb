"""
Cue Card Navigator

Speech-driven navigation through a performance script split into cue cards.
"""

__version__ = "0.1.0"

from .config import Config, SessionSettings, load_settings, save_settings
from .errors import (
    CueNavigatorError,
    RecognitionUnavailableError,
    AudioCaptureFailureError,
    NavigationError,
    SettingsError,
    SegmentSourceError,
    AnalyticsFinalizedError,
)
from .models import (
    SegmentCard,
    ScriptSegment,
    PhraseOverride,
    TransitionEvent,
    DetectionSample,
    TranscriptFragment,
    NavigationMode,
    EngineState,
    PresentationStyle,
)
from .phrases import PhraseMatcher, build_cards, extract_phrases, normalize_words
from .navigation import NavigationEngine, PerformanceSession, SessionStartResult
from .audio import AudioQualityMonitor, compute_level
from .analytics import SessionAnalytics, SessionReport
from .replay import replay_session

__all__ = [
    'Config',
    'SessionSettings',
    'load_settings',
    'save_settings',
    'CueNavigatorError',
    'RecognitionUnavailableError',
    'AudioCaptureFailureError',
    'NavigationError',
    'SettingsError',
    'SegmentSourceError',
    'AnalyticsFinalizedError',
    'SegmentCard',
    'ScriptSegment',
    'PhraseOverride',
    'TransitionEvent',
    'DetectionSample',
    'TranscriptFragment',
    'NavigationMode',
    'EngineState',
    'PresentationStyle',
    'PhraseMatcher',
    'build_cards',
    'extract_phrases',
    'normalize_words',
    'NavigationEngine',
    'PerformanceSession',
    'SessionStartResult',
    'AudioQualityMonitor',
    'compute_level',
    'SessionAnalytics',
    'SessionReport',
    'replay_session'
]
