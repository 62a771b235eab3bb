"""
Live performance session.

A session wires the recognition and audio collaborators to one
NavigationEngine. Both producers push onto a single queue and one consumer
task applies every event in arrival order, so engine state is only ever
mutated from that task. Manual navigation requests go through a priority
lane that the consumer drains before it commits any automatic transition.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, AsyncIterator, Callable, Deque, List, Optional, Tuple

from ..analytics.models import SessionReport
from ..analytics.session_analytics import SessionAnalytics
from ..audio.quality import AudioQualityMonitor
from ..config import SessionSettings, SettingsProvider, StaticSettingsProvider
from ..errors import (
    AudioCaptureFailureError,
    ErrorHandler,
    NavigationError,
    ProcessingError,
    RecognitionUnavailableError,
    SegmentSourceError,
)
from ..interfaces import AudioLevelSource, RecognitionService, SegmentSource
from ..models import (
    ConfidenceUpdate,
    EngineState,
    NavigationMode,
    PresentationStyle,
    TransitionEvent,
)
from ..phrases.extractor import build_cards
from ..phrases.matcher import PhraseMatcher
from .engine import NavigationEngine
from .events import EventStream


class _EventKind(Enum):
    FRAGMENT = "fragment"
    LEVEL = "level"
    RECOGNITION_LOST = "recognition_lost"
    AUDIO_LOST = "audio_lost"
    WAKE = "wake"
    STOP = "stop"


@dataclass(frozen=True)
class _QueuedEvent:
    kind: _EventKind
    payload: Any = None
    timestamp: float = 0.0
    epoch: int = 0


@dataclass
class SessionStartResult:
    """Outcome of starting (or resuming) recognition for a session."""
    success: bool
    mode: NavigationMode
    state: EngineState
    errors: List[ProcessingError] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when the session runs in manual-only mode."""
        return not self.success


class PerformanceSession:
    """
    One live performance from start to stop.

    Usage:
        session = PerformanceSession(setlist, recognizer, microphone, settings_provider)
        result = await session.start()
        ...
        report = await session.stop()
    """

    def __init__(self,
                 segment_source: SegmentSource,
                 recognition: RecognitionService,
                 audio: AudioLevelSource,
                 settings_provider: Optional[SettingsProvider] = None,
                 matcher: Optional[PhraseMatcher] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.logger = logging.getLogger(__name__)
        self.segment_source = segment_source
        self.recognition = recognition
        self.audio = audio
        self.settings_provider = settings_provider or StaticSettingsProvider()
        self.matcher = matcher or PhraseMatcher()
        self.clock = clock or time.monotonic
        self.error_handler = ErrorHandler()

        self.settings: Optional[SessionSettings] = None
        self.engine: Optional[NavigationEngine] = None
        self.monitor: Optional[AudioQualityMonitor] = None
        self.analytics: Optional[SessionAnalytics] = None

        self._queue: Optional[asyncio.Queue] = None
        self._manual_commands: Deque[Tuple[str, tuple, asyncio.Future]] = deque()
        self._consumer_task: Optional[asyncio.Task] = None
        self._recognition_task: Optional[asyncio.Task] = None
        self._audio_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._recognition_running = False
        self._audio_running = False
        self._recognition_epoch = 0
        self._audio_epoch = 0
        self._context_dirty = False
        self._stopping = False

        self._transition_stream: EventStream[TransitionEvent] = EventStream()
        self._confidence_stream: EventStream[ConfidenceUpdate] = EventStream()

    # Lifecycle

    async def start(self) -> SessionStartResult:
        """
        Snapshot settings, build the cards and start capture.

        Recognition or audio failures do not raise: the result reports them
        and the session continues in manual-only mode.

        Raises:
            SegmentSourceError: the setlist has no performable segments
            SettingsError: the settings snapshot is invalid
        """
        if self.engine is not None:
            raise RuntimeError("Session already started")

        self.settings = self.settings_provider.snapshot()
        self.settings.validate()

        cards = build_cards(self.segment_source.load_segments(),
                            self.segment_source.load_overrides())
        if not cards:
            error = SegmentSourceError.from_reason("The script has no non-empty segments")
            self.error_handler.add_error(error.processing_error)
            raise error

        started_at = self.clock()
        self.engine = NavigationEngine(cards, self.settings, self.matcher, self.clock)
        self.monitor = AudioQualityMonitor(self.settings.audio_low_threshold,
                                           self.settings.audio_high_threshold)
        self.analytics = SessionAnalytics(cards, self.settings, started_at)
        self.analytics.attach(self.engine)
        self.analytics.attach_monitor(self.monitor)
        self.engine.add_transition_listener(self._on_transition)
        self.engine.add_confidence_listener(self._confidence_stream.publish)

        self._queue = asyncio.Queue()
        errors = await self._start_capture()
        success = not errors

        self.engine.start(recognition_available=success, timestamp=started_at)
        self._consumer_task = asyncio.create_task(self._consume())
        if success:
            self._launch_producers()
            self.logger.info(f"Session listening on card 1 of {len(cards)}")
        else:
            self.logger.warning("Session started in manual-only mode")

        return SessionStartResult(success, self.engine.mode, self.engine.state, errors)

    async def stop(self) -> SessionReport:
        """
        Stop the session and return its finalized report.

        Pending events are applied in order before the report is built.
        Safe to call at any time after start, and more than once.
        """
        if self.engine is None:
            raise RuntimeError("Session was never started")
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self._shutdown())
        return await self._stop_task

    async def resume_recognition(self) -> SessionStartResult:
        """Retry recognition after a start failure or a mid-session drop."""
        if self.engine is None:
            raise RuntimeError("Session not started")
        if self._stopping or self.engine.state == EngineState.STOPPED:
            return SessionStartResult(False, self.engine.mode, self.engine.state, [])
        if not self.engine.is_recognition_paused:
            return SessionStartResult(True, self.engine.mode, self.engine.state, [])

        errors = await self._start_capture()
        if errors:
            return SessionStartResult(False, self.engine.mode, self.engine.state, errors)

        self._launch_producers()
        await self._submit("resume_recognition")
        self.logger.info("Recognition resumed")
        return SessionStartResult(True, self.engine.mode, self.engine.state, [])

    # Manual navigation

    async def advance(self) -> Optional[TransitionEvent]:
        return await self._submit("advance")

    async def retreat(self) -> Optional[TransitionEvent]:
        return await self._submit("retreat")

    async def jump_to(self, index: int) -> Optional[TransitionEvent]:
        return await self._submit("jump_to", index)

    # Streams and state

    def transitions(self) -> AsyncIterator[TransitionEvent]:
        """Transitions accepted from now on; ends when the session stops."""
        return self._transition_stream.subscribe()

    def confidences(self) -> AsyncIterator[ConfidenceUpdate]:
        """Live anchor/exit confidence updates; ends when the session stops."""
        return self._confidence_stream.subscribe()

    @property
    def presentation_style(self) -> PresentationStyle:
        settings = self.settings or self.settings_provider.snapshot()
        return settings.presentation_style

    @property
    def state(self) -> EngineState:
        return self.engine.state if self.engine else EngineState.IDLE

    @property
    def is_running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    # Capture

    async def _start_capture(self) -> List[ProcessingError]:
        if not self._audio_running:
            try:
                await self.audio.start()
            except AudioCaptureFailureError as e:
                error = self.error_handler.handle_audio_capture_error(e)
                self.error_handler.add_error(error)
                return [error]
            self._audio_running = True

        if not self._recognition_running:
            try:
                await self.recognition.start(self.engine.contextual_phrases)
            except RecognitionUnavailableError as e:
                error = self.error_handler.handle_recognition_error(e)
                self.error_handler.add_error(error)
                self.analytics.record_recognition_error()
                await self._stop_audio()
                return [error]
            self._recognition_running = True

        return []

    def _launch_producers(self) -> None:
        if self._recognition_task is None or self._recognition_task.done():
            self._recognition_epoch += 1
            self._recognition_task = asyncio.create_task(
                self._pump_fragments(self._recognition_epoch)
            )
        if self._audio_task is None or self._audio_task.done():
            self._audio_epoch += 1
            self._audio_task = asyncio.create_task(self._pump_levels(self._audio_epoch))

    async def _pump_fragments(self, epoch: int) -> None:
        try:
            async for fragment in self.recognition.fragments():
                # Restamped with the session clock, the time base of manual commands
                arrived = replace(fragment, timestamp=self.clock())
                self._queue.put_nowait(
                    _QueuedEvent(_EventKind.FRAGMENT, arrived, timestamp=arrived.timestamp)
                )
        except Exception as e:
            self._queue.put_nowait(_QueuedEvent(_EventKind.RECOGNITION_LOST, e, epoch=epoch))
            return
        self._queue.put_nowait(_QueuedEvent(_EventKind.RECOGNITION_LOST, None, epoch=epoch))

    async def _pump_levels(self, epoch: int) -> None:
        try:
            async for level in self.audio.levels():
                self._queue.put_nowait(_QueuedEvent(_EventKind.LEVEL, level, timestamp=self.clock()))
        except Exception as e:
            self._queue.put_nowait(_QueuedEvent(_EventKind.AUDIO_LOST, e, epoch=epoch))
            return
        ended = AudioCaptureFailureError.from_reason("Audio stream ended")
        self._queue.put_nowait(_QueuedEvent(_EventKind.AUDIO_LOST, ended, epoch=epoch))

    # Consumer

    async def _consume(self) -> None:
        try:
            while True:
                event = await self._queue.get()
                self._apply_manual_commands()

                if event.kind is _EventKind.STOP:
                    break
                if event.kind is _EventKind.FRAGMENT:
                    evaluation = self.engine.evaluate_fragment(event.payload)
                    if evaluation is not None:
                        # Yield so a manual request racing this evaluation is applied first
                        await asyncio.sleep(0)
                        self._apply_manual_commands()
                        self.engine.commit(evaluation)
                elif event.kind is _EventKind.LEVEL:
                    self.monitor.record(event.payload, event.timestamp)
                elif event.kind is _EventKind.RECOGNITION_LOST:
                    await self._handle_recognition_lost(event)
                elif event.kind is _EventKind.AUDIO_LOST:
                    await self._handle_audio_lost(event)

                await self._refresh_context()

            self._apply_manual_commands()
        finally:
            self._drop_manual_commands()

    def _apply_manual_commands(self) -> None:
        while self._manual_commands:
            command, args, future = self._manual_commands.popleft()
            if future.done():
                continue
            try:
                result = getattr(self.engine, command)(*args)
            except NavigationError as e:
                future.set_exception(e)
            except Exception as e:
                future.set_exception(e)
                raise
            else:
                future.set_result(result)

    def _drop_manual_commands(self) -> None:
        """Answer commands the consumer will never apply, as on a stopped session."""
        while self._manual_commands:
            _, _, future = self._manual_commands.popleft()
            if not future.done():
                future.set_result(None)

    async def _submit(self, command: str, *args):
        if self.engine is None:
            raise RuntimeError("Session not started")
        if self._stopping or not self.is_running:
            self.logger.debug(f"Ignoring '{command}' on a stopped session")
            return None

        future = asyncio.get_running_loop().create_future()
        self._manual_commands.append((command, args, future))
        self._queue.put_nowait(_QueuedEvent(_EventKind.WAKE))
        return await future

    async def _handle_recognition_lost(self, event: _QueuedEvent) -> None:
        if event.epoch != self._recognition_epoch or not self._recognition_running:
            return

        self._recognition_running = False
        await self._release(self.recognition.stop, "recognition")

        warning = self.error_handler.handle_stream_dropped(event.payload)
        self.error_handler.add_error(warning)
        self.analytics.record_recognition_error()
        self.engine.pause_recognition(warning.message)

    async def _handle_audio_lost(self, event: _QueuedEvent) -> None:
        if event.epoch != self._audio_epoch or not self._audio_running:
            return

        warning = self.error_handler.handle_audio_capture_error(event.payload, mid_session=True)
        self.error_handler.add_error(warning)

        # Recognition depends on the microphone, so it pauses too
        await self._cancel_task(self._recognition_task)
        self._recognition_task = None
        if self._recognition_running:
            self._recognition_running = False
            await self._release(self.recognition.stop, "recognition")
        await self._stop_audio()

        self.engine.pause_recognition(warning.message)

    async def _refresh_context(self) -> None:
        if not self._context_dirty or not self._recognition_running:
            return
        self._context_dirty = False
        try:
            await self.recognition.update_context(self.engine.contextual_phrases)
        except Exception as e:
            self.logger.warning(f"Could not update recognition hints: {e}")

    def _on_transition(self, event: TransitionEvent) -> None:
        self._context_dirty = True
        self._transition_stream.publish(event)

    # Shutdown

    async def _shutdown(self) -> SessionReport:
        self._stopping = True
        await self._cancel_task(self._recognition_task)
        await self._cancel_task(self._audio_task)

        try:
            if self._consumer_task is not None:
                self._queue.put_nowait(_QueuedEvent(_EventKind.STOP))
                await self._consumer_task
        finally:
            if self._recognition_running:
                self._recognition_running = False
                await self._release(self.recognition.stop, "recognition")
            await self._stop_audio()

            ended_at = self.clock()
            self.engine.stop(ended_at)
            self._transition_stream.close()
            self._confidence_stream.close()

        report = self.analytics.finalize(ended_at)

        summary = self.error_handler.get_error_summary()
        self.logger.info(
            f"Session stopped after {report.duration:.1f}s with "
            f"{summary['error_count']} errors and {summary['warning_count']} warnings"
        )
        return report

    async def _stop_audio(self) -> None:
        if not self._audio_running:
            return
        self._audio_running = False
        await self._cancel_task(self._audio_task)
        self._audio_task = None
        await self._release(self.audio.stop, "audio capture")

    async def _release(self, stop: Callable, name: str) -> None:
        try:
            await stop()
        except Exception as e:
            self.logger.warning(f"Failed to stop {name}: {e}")

    @staticmethod
    async def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
