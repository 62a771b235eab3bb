"""
Error handling for the cue card navigator.

Defines the error taxonomy for performance sessions and produces
actionable messages for the failures a performer can actually fix.
Below-threshold matches and debounced transitions are not errors.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors that can occur during a session."""
    RECOGNITION = "recognition"
    AUDIO_CAPTURE = "audio_capture"
    NAVIGATION = "navigation"
    CONFIGURATION = "configuration"
    SEGMENT_SOURCE = "segment_source"


@dataclass
class ProcessingError:
    """Represents a session error with context and guidance."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    details: str
    suggested_actions: List[str]
    error_code: str
    context: Dict[str, Any] = None

    def __post_init__(self):
        if self.context is None:
            self.context = {}


class CueNavigatorError(Exception):
    """Base exception for cue card navigator errors."""

    def __init__(self, processing_error: ProcessingError):
        self.processing_error = processing_error
        super().__init__(processing_error.message)


class RecognitionUnavailableError(CueNavigatorError):
    """Raised when the speech recognition service cannot be started."""

    @classmethod
    def from_reason(cls, reason: str) -> "RecognitionUnavailableError":
        return cls(ProcessingError(
            category=ErrorCategory.RECOGNITION,
            severity=ErrorSeverity.ERROR,
            message="Speech recognition is not available",
            details=reason,
            suggested_actions=["Check speech recognition permission"],
            error_code="RECOG_001",
        ))


class AudioCaptureFailureError(CueNavigatorError):
    """Raised when audio hardware cannot be acquired or fails."""

    @classmethod
    def from_reason(cls, reason: str) -> "AudioCaptureFailureError":
        return cls(ProcessingError(
            category=ErrorCategory.AUDIO_CAPTURE,
            severity=ErrorSeverity.WARNING,
            message="Audio capture failed",
            details=reason,
            suggested_actions=["Check microphone permission and connection"],
            error_code="AUDIO_001",
        ))


class NavigationError(CueNavigatorError):
    """Raised when a manual navigation request names a card that does not exist."""

    @classmethod
    def invalid_index(cls, index: int, card_count: int) -> "NavigationError":
        return cls(ProcessingError(
            category=ErrorCategory.NAVIGATION,
            severity=ErrorSeverity.ERROR,
            message=f"Card index {index} is out of range",
            details=f"Valid indices are 0 to {card_count - 1}",
            suggested_actions=["Jump to an existing card"],
            error_code="NAV_001",
            context={"index": index, "card_count": card_count},
        ))


class SettingsError(CueNavigatorError, ValueError):
    """Raised when session settings are out of range."""

    @classmethod
    def for_value(cls, name: str, value: Any, problem: str) -> "SettingsError":
        return cls(ProcessingError(
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.ERROR,
            message=f"Invalid setting '{name}'",
            details=f"{name}={value!r} {problem}",
            suggested_actions=["Reset settings to defaults", f"Adjust '{name}'"],
            error_code="CONFIG_001",
            context={"name": name, "value": value},
        ))


class SegmentSourceError(CueNavigatorError):
    """Raised when the script segments cannot be loaded."""

    @classmethod
    def from_reason(cls, reason: str, context: Dict[str, Any] = None) -> "SegmentSourceError":
        return cls(ProcessingError(
            category=ErrorCategory.SEGMENT_SOURCE,
            severity=ErrorSeverity.ERROR,
            message="Could not load script segments",
            details=reason,
            suggested_actions=[
                "Check that the setlist contains at least one non-empty segment",
            ],
            error_code="SEGMENT_001",
            context=context,
        ))


class AnalyticsFinalizedError(RuntimeError):
    """Raised when recording into analytics that have already been finalized."""
    pass


class ErrorHandler:
    """
    Collects and reports errors for one performance session.

    Each session owns its handler so that sessions stay independent.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.errors: List[ProcessingError] = []
        self.warnings: List[ProcessingError] = []

    def add_error(self, error: ProcessingError) -> None:
        """Add an error to the collection."""
        if error.severity in [ErrorSeverity.ERROR, ErrorSeverity.CRITICAL]:
            self.errors.append(error)
        elif error.severity == ErrorSeverity.WARNING:
            self.warnings.append(error)

        log_level = {
            ErrorSeverity.INFO: logging.INFO,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL
        }[error.severity]

        self.logger.log(log_level, f"[{error.error_code}] {error.message}")
        if error.details:
            self.logger.log(log_level, f"Details: {error.details}")

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def get_error_summary(self) -> Dict[str, Any]:
        """Get a summary of all errors and warnings."""
        return {
            'error_count': len(self.errors),
            'warning_count': len(self.warnings),
            'errors': [self._format_error_for_summary(e) for e in self.errors],
            'warnings': [self._format_error_for_summary(e) for e in self.warnings]
        }

    def _format_error_for_summary(self, error: ProcessingError) -> Dict[str, Any]:
        return {
            'code': error.error_code,
            'category': error.category.value,
            'severity': error.severity.value,
            'message': error.message,
            'suggested_actions': error.suggested_actions
        }

    def clear_errors(self) -> None:
        self.errors.clear()
        self.warnings.clear()

    def handle_recognition_error(self, error: Exception) -> ProcessingError:
        """Describe a recognition start failure. The session falls back to manual navigation."""
        if isinstance(error, CueNavigatorError):
            details = error.processing_error.details or str(error)
        else:
            details = str(error)
        error_str = details.lower()

        if 'permission' in error_str or 'denied' in error_str or 'authoriz' in error_str:
            return ProcessingError(
                category=ErrorCategory.RECOGNITION,
                severity=ErrorSeverity.ERROR,
                message="Speech recognition permission not granted",
                details=details,
                suggested_actions=[
                    "Grant speech recognition and microphone access in system settings",
                    "Swipe or tap to move between cards until recognition is available"
                ],
                error_code="RECOG_002"
            )

        return ProcessingError(
            category=ErrorCategory.RECOGNITION,
            severity=ErrorSeverity.ERROR,
            message="Speech recognition is not available",
            details=details,
            suggested_actions=[
                "Check your network connection if recognition runs on a server",
                "Retry starting recognition",
                "Swipe or tap to move between cards in the meantime"
            ],
            error_code="RECOG_001"
        )

    def handle_audio_capture_error(self, error: Exception, mid_session: bool = False) -> ProcessingError:
        """Describe an audio capture failure; mid-session failures are warnings."""
        if mid_session:
            return ProcessingError(
                category=ErrorCategory.AUDIO_CAPTURE,
                severity=ErrorSeverity.WARNING,
                message="Audio capture stopped during the session",
                details=f"Audio capture error: {error}",
                suggested_actions=[
                    "Check that the microphone is still connected",
                    "Continue with manual navigation or retry recognition"
                ],
                error_code="AUDIO_002"
            )

        return ProcessingError(
            category=ErrorCategory.AUDIO_CAPTURE,
            severity=ErrorSeverity.ERROR,
            message="Microphone could not be acquired",
            details=f"Audio capture error: {error}",
            suggested_actions=[
                "Grant microphone access in system settings",
                "Close other apps that may be using the microphone",
                "Swipe or tap to move between cards in the meantime"
            ],
            error_code="AUDIO_001"
        )

    def handle_stream_dropped(self, error: Optional[Exception] = None) -> ProcessingError:
        """Describe a recognition stream that ended while the session was running."""
        details = f"Recognition stream error: {error}" if error else "Recognition stream ended unexpectedly"
        return ProcessingError(
            category=ErrorCategory.RECOGNITION,
            severity=ErrorSeverity.WARNING,
            message="Speech recognition stopped during the session",
            details=details,
            suggested_actions=[
                "Continue with manual navigation",
                "Retry recognition when ready"
            ],
            error_code="RECOG_003"
        )
