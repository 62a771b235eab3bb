"""
Tests for the asynchronous performance session.
"""

import asyncio

import pytest

from cue_navigator.config import SessionSettings, StaticSettingsProvider
from cue_navigator.errors import NavigationError, SegmentSourceError
from cue_navigator.models import (
    EngineState,
    NavigationMode,
    PresentationStyle,
    ScriptSegment,
    TranscriptFragment,
)
from cue_navigator.navigation.session import PerformanceSession
from cue_navigator.sources import (
    InMemorySegmentSource,
    ScriptedAudioSource,
    ScriptedRecognitionService,
)

from conftest import FakeClock, wait_for


END_TEXTS = ["That is the end."] * 3


def make_session(fragments=(), levels=(), texts=END_TEXTS, settings=None, clock=None, **kwargs):
    recognition = ScriptedRecognitionService(
        fragments,
        unavailable_reason=kwargs.pop("unavailable_reason", None),
        stream_error=kwargs.pop("stream_error", None),
        hold_open=kwargs.pop("hold_open", True),
    )
    audio = ScriptedAudioSource(
        levels,
        acquire_error=kwargs.pop("acquire_error", None),
        fail_after=kwargs.pop("fail_after", None),
    )
    session = PerformanceSession(
        InMemorySegmentSource.from_texts(texts),
        recognition,
        audio,
        StaticSettingsProvider(settings),
        clock=clock or FakeClock(),
    )
    return session, recognition, audio


class TestSessionStart:
    """Test starting a session."""

    def test_successful_start(self):
        async def scenario():
            session, recognition, audio = make_session()
            result = await session.start()
            assert result.success and not result.degraded
            assert result.state == EngineState.LISTENING
            assert result.mode == NavigationMode.AUTO_ADVANCE
            assert recognition.contextual_phrases[0] == ["that is the end", "that is the end"]
            await session.stop()
            assert recognition.stop_count == 1
            assert audio.stop_count == 1

        asyncio.run(scenario())

    def test_recognition_unavailable_degrades_to_manual(self):
        async def scenario():
            session, recognition, audio = make_session(
                unavailable_reason="Speech recognition permission denied"
            )
            result = await session.start()

            assert not result.success
            assert result.mode == NavigationMode.MANUAL_ONLY
            assert result.state == EngineState.RECOGNITION_PAUSED
            assert result.errors[0].error_code == "RECOG_002"
            assert audio.stop_count == 1

            event = await session.advance()
            assert event is not None and not event.was_automatic

            report = await session.stop()
            assert report.recognition_errors == 1
            assert report.manual_transitions == 1

        asyncio.run(scenario())

    def test_audio_unavailable(self):
        async def scenario():
            session, recognition, _ = make_session(acquire_error="Microphone busy")
            result = await session.start()

            assert result.degraded
            assert result.errors[0].error_code == "AUDIO_001"
            assert recognition.start_count == 0
            await session.stop()

        asyncio.run(scenario())

    def test_empty_setlist(self):
        async def scenario():
            session, _, _ = make_session(texts=["   ", ""])
            with pytest.raises(SegmentSourceError):
                await session.start()

        asyncio.run(scenario())

    def test_settings_are_snapshotted(self):
        async def scenario():
            provider_settings = SessionSettings(presentation_style=PresentationStyle.TELEPROMPTER)
            session, _, _ = make_session(settings=provider_settings)
            await session.start()

            provider_settings.exit_threshold = 0.99
            assert session.settings.exit_threshold == 0.6
            assert session.engine.settings.exit_threshold == 0.6
            assert session.presentation_style == PresentationStyle.TELEPROMPTER
            await session.stop()

        asyncio.run(scenario())


class TestSessionNavigation:
    """Test recognition-driven and manual navigation through a session."""

    def test_fragments_drive_transitions(self):
        async def scenario():
            clock = FakeClock(10.0)
            session, recognition, _ = make_session(levels=[0.3, 0.4], clock=clock)
            stream = session.transitions()
            await session.start()

            recognition.push(TranscriptFragment("so that is the end", 0.0))
            await wait_for(lambda: session.engine.current_index == 1)
            clock.now = 10.5
            recognition.push(TranscriptFragment("that is the end", 0.0))
            await wait_for(lambda: session.analytics.suppressed_transitions == 1)
            clock.now = 12.0
            recognition.push(TranscriptFragment("that is the end", 0.0))
            await wait_for(lambda: session.engine.current_index == 2)

            await wait_for(lambda: len(session.monitor.samples) == 2)
            report = await session.stop()

            events = [event async for event in stream]
            assert [(e.from_index, e.to_index) for e in events] == [(0, 1), (1, 2)]
            assert [e.timestamp for e in events] == [10.0, 12.0]
            assert all(e.was_automatic for e in events)
            assert report.suppressed_transitions == 1
            assert report.automatic_transition_percentage == 100.0
            assert report.mean_audio_level == pytest.approx(0.35)
            assert recognition.contextual_phrases[-1] == ["that is the end", "that is the end"]
            assert len(recognition.contextual_phrases) == 3

        asyncio.run(scenario())

    def test_manual_and_automatic_moves_share_one_clock(self):
        """Fragment timestamps from the recognizer do not affect the debounce window."""
        async def scenario():
            clock = FakeClock(1000.0)
            session, recognition, _ = make_session(texts=["That is the end."] * 4, clock=clock)
            await session.start()

            await session.advance()
            clock.now = 1000.5
            recognition.push(TranscriptFragment("that is the end", 20.0))
            await wait_for(lambda: session.analytics.suppressed_transitions == 1)
            assert session.engine.current_index == 1

            clock.now = 1002.0
            recognition.push(TranscriptFragment("that is the end", 20.0))
            await wait_for(lambda: session.engine.current_index == 2)

            clock.now = 1003.0
            await session.advance()
            report = await session.stop()

            assert [(e.from_index, e.to_index, e.was_automatic, e.timestamp)
                    for e in report.transitions] == [
                (0, 1, False, 1000.0),
                (1, 2, True, 1002.0),
                (2, 3, False, 1003.0),
            ]

        asyncio.run(scenario())

    def test_manual_advance_during_evaluation_wins(self):
        async def scenario():
            session, recognition, _ = make_session()
            await session.start()

            pending = []
            session.engine.add_fragment_listener(
                lambda fragment: pending.append(asyncio.ensure_future(session.advance()))
            )
            recognition.push(TranscriptFragment("that is the end", 0.0))
            await wait_for(lambda: bool(pending) and pending[0].done())
            report = await session.stop()

            assert not pending[0].result().was_automatic
            assert [(e.from_index, e.to_index, e.was_automatic)
                    for e in report.transitions] == [(0, 1, False)]
            assert session.engine.current_index == 1
            assert report.suppressed_transitions == 1

        asyncio.run(scenario())

    def test_manual_commands(self):
        async def scenario():
            session, _, _ = make_session()
            await session.start()

            assert (await session.jump_to(2)).to_index == 2
            assert (await session.retreat()).to_index == 1
            with pytest.raises(NavigationError):
                await session.jump_to(7)

            report = await session.stop()
            assert report.manual_transitions == 2
            assert report.automatic_transitions == 0

        asyncio.run(scenario())

    def test_confidence_stream(self):
        async def scenario():
            session, _, _ = make_session([TranscriptFragment("that was the beginning", 1.0)])
            stream = session.confidences()
            await session.start()
            await wait_for(lambda: session.engine.exit_confidence > 0)
            await session.stop()

            updates = [update async for update in stream]
            assert updates[0].exit_confidence == 0.5
            assert updates[0].card_index == 0

        asyncio.run(scenario())


class TestSessionFailures:
    """Test degraded modes after mid-session failures."""

    def test_audio_failure_mid_session(self):
        async def scenario():
            session, recognition, audio = make_session(levels=[0.3] * 5, fail_after=3)
            await session.start()
            await wait_for(lambda: session.state == EngineState.RECOGNITION_PAUSED)

            warning = session.error_handler.warnings[0]
            assert warning.error_code == "AUDIO_002"
            assert recognition.stop_count == 1
            assert audio.stop_count == 1
            assert session.engine.mode == NavigationMode.MANUAL_ONLY

            assert (await session.advance()) is not None

            result = await session.resume_recognition()
            assert result.success
            assert session.state == EngineState.LISTENING
            assert audio.start_count == 2
            assert recognition.start_count == 2

            report = await session.stop()
            assert report.audio_sample_count == 3

        asyncio.run(scenario())

    def test_dropped_recognition_stream(self):
        async def scenario():
            session, _, _ = make_session([TranscriptFragment("hello", 1.0)], hold_open=False)
            await session.start()
            await wait_for(lambda: session.state == EngineState.RECOGNITION_PAUSED)

            assert session.error_handler.warnings[0].error_code == "RECOG_003"
            report = await session.stop()
            assert report.recognition_errors == 1
            assert report.transcriptions_received == 1

        asyncio.run(scenario())

    def test_recognition_stream_error(self):
        async def scenario():
            session, _, _ = make_session(stream_error=RuntimeError("network lost"))
            await session.start()
            await wait_for(lambda: session.state == EngineState.RECOGNITION_PAUSED)

            warning = session.error_handler.warnings[0]
            assert "network lost" in warning.details
            await session.stop()

        asyncio.run(scenario())


class TestSessionStop:
    """Test stopping a session."""

    def test_stop_is_idempotent(self):
        async def scenario():
            session, _, _ = make_session()
            await session.start()

            first = await session.stop()
            second = await session.stop()
            assert first is second
            assert session.state == EngineState.STOPPED
            assert await session.advance() is None

        asyncio.run(scenario())

    def test_stop_during_evaluation(self):
        async def scenario():
            session, recognition, _ = make_session()
            stream = session.transitions()
            await session.start()

            stopping = []
            session.engine.add_fragment_listener(
                lambda fragment: stopping.append(asyncio.ensure_future(session.stop()))
            )
            recognition.push(TranscriptFragment("that is the end", 0.0))
            await wait_for(lambda: bool(stopping) and stopping[0].done())

            report = stopping[0].result()
            events = [event async for event in stream]
            assert report.transitions == tuple(events)
            assert len(events) <= 1
            assert session.engine.current_index == len(events)
            assert session.state == EngineState.STOPPED
            assert (await session.stop()) is report

        asyncio.run(scenario())

    def test_stop_releases_capture_after_consumer_failure(self):
        async def scenario():
            session, recognition, audio = make_session()
            stream = session.transitions()
            await session.start()

            def broken_display(event):
                raise RuntimeError("display crashed")

            session.engine.add_transition_listener(broken_display)
            results = await asyncio.gather(session.advance(), session.advance(),
                                           return_exceptions=True)
            assert isinstance(results[0], RuntimeError)
            assert results[1] is None
            assert not session.is_running

            with pytest.raises(RuntimeError, match="display crashed"):
                await session.stop()

            assert recognition.stop_count == 1
            assert audio.stop_count == 1
            assert session.state == EngineState.STOPPED
            assert len([event async for event in stream]) == 1
            assert await session.advance() is None

        asyncio.run(scenario())

    def test_stop_before_start(self):
        async def scenario():
            session, _, _ = make_session()
            with pytest.raises(RuntimeError):
                await session.stop()

        asyncio.run(scenario())

    def test_stop_uses_session_clock(self):
        async def scenario():
            clock = FakeClock(100.0)
            session, _, _ = make_session(clock=clock)
            await session.start()
            clock.now = 160.0
            report = await session.stop()
            assert report.started_at == 100.0
            assert report.duration == 60.0

        asyncio.run(scenario())

    def test_stop_closes_streams(self):
        async def scenario():
            session, _, _ = make_session()
            stream = session.transitions()
            await session.start()
            await session.stop()
            assert [event async for event in stream] == []

        asyncio.run(scenario())

    def test_segments_without_text_are_skipped(self):
        async def scenario():
            source = InMemorySegmentSource([
                ScriptSegment("a", "That is the end."),
                ScriptSegment("b", "   "),
                ScriptSegment("c", "Final words."),
            ])
            session = PerformanceSession(source, ScriptedRecognitionService(),
                                         ScriptedAudioSource(), clock=FakeClock())
            await session.start()
            assert [card.id for card in session.engine.cards] == ["a", "c"]
            await session.stop()

        asyncio.run(scenario())
