import asyncio
import random

import pytest

from reading_core import events as ev
from reading_core.config import SessionOptions
from reading_core.controller import SessionController
from reading_core.errors import DeviceUnavailable, InvalidTransition
from reading_core.models import BreakTrigger, CompletionReason, Emotion, SessionState
from reading_core.sampler import EmotionSampler

from conftest import BlockingFactory, FakeDevice, GatedDevice, ScriptedClassifier, wait_for

STRUGGLE_WINDOW = ["sad"] * 9 + ["happy"] * 6


def _session(content, labels=STRUGGLE_WINDOW + ["happy"], factory=None, **opts):
    device = FakeDevice()
    sampler = EmotionSampler(interval=0.005, device_factory=factory or (lambda idx: device))
    session = SessionController(
        content,
        options=SessionOptions(**opts),
        classifier=ScriptedClassifier(labels),
        sampler=sampler,
        rng=random.Random(1),
        countdown_tick=0.002,
    )
    names = []
    for name in ev.EVENT_NAMES:
        session.subscribe(name, lambda e: names.append(e.name))
    return session, device, names


def test_struggle_offers_break_then_resumes_with_fresh_window(long_text):
    async def scenario():
        session, device, names = _session(long_text)
        await session.enable_monitoring()
        assert session.state == SessionState.MONITORING
        await wait_for(lambda: session.state == SessionState.BREAK_OFFERED)

        assert names.count(ev.STRUGGLE_DETECTED) == 1
        assert names.count(ev.EMOTION_UPDATED) == 15
        assert session.offer.trigger == BreakTrigger.AUTOMATIC_STRUGGLE
        assert session.offer.emotion == Emotion.SAD
        assert len(session.offer.choices) == 4
        assert not session.sampler.ticking and session.sampler.active

        session.select_activity("quiz")
        assert session.state == SessionState.BREAK_ACTIVE
        for _ in range(5):
            outcome = session.submit_activity_input(0)
        assert not outcome.ongoing
        assert session.state == SessionState.BREAK_OFFERED
        assert session.offer.last_result.score == 50
        assert ev.ACTIVITY_COMPLETED in names

        assert session.resume_reading() == SessionState.MONITORING
        assert session.aggregator.window.total == 0
        assert session.sampler.ticking
        await session.close()
        assert device.released
    asyncio.run(scenario())


def test_short_content_never_auto_breaks(short_text):
    async def scenario():
        session, _, names = _session(short_text)
        await session.enable_monitoring()
        await wait_for(lambda: ev.STRUGGLE_DETECTED in names)
        await asyncio.sleep(0.02)
        assert session.state == SessionState.MONITORING
        assert ev.BREAK_OFFERED not in names
        offer = session.request_manual_break()
        assert offer.trigger == BreakTrigger.MANUAL_REQUEST
        assert offer.suggested == "quiz"
        assert session.state == SessionState.BREAK_OFFERED
        await session.close()
    asyncio.run(scenario())


def test_manual_break_from_reading_and_dismiss(short_text):
    async def scenario():
        session, _, _ = _session(short_text)
        session.request_manual_break()
        assert session.resume_reading() == SessionState.READING
        assert not session.sampler.active
    asyncio.run(scenario())


def test_invalid_transitions_leave_state_unchanged(short_text):
    async def scenario():
        session, _, _ = _session(short_text)
        with pytest.raises(InvalidTransition):
            session.submit_activity_input(1)
        with pytest.raises(InvalidTransition):
            session.disable_monitoring()
        with pytest.raises(InvalidTransition):
            session.select_activity("quiz")
        with pytest.raises(InvalidTransition):
            session.resume_reading()
        assert session.state == SessionState.READING

        session.request_manual_break()
        with pytest.raises(InvalidTransition):
            session.request_manual_break()
        with pytest.raises(ValueError):
            session.select_activity("chess")
        assert session.state == SessionState.BREAK_OFFERED
    asyncio.run(scenario())


def test_device_unavailable_then_retry(short_text):
    async def scenario():
        device = FakeDevice()
        attempts = {"n": 0}
        def flaky(idx):
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise DeviceUnavailable("camera busy")
            return device
        session, _, names = _session(short_text, factory=flaky)
        with pytest.raises(DeviceUnavailable):
            await session.enable_monitoring()
        assert session.state == SessionState.READING and not session.monitoring
        assert ev.DEVICE_UNAVAILABLE in names

        await session.enable_monitoring()
        assert session.state == SessionState.MONITORING
        session.disable_monitoring()
        assert session.state == SessionState.READING
        await wait_for(lambda: device.released)
    asyncio.run(scenario())


def test_close_mid_acquisition_releases_camera(short_text):
    async def scenario():
        factory = BlockingFactory()
        session, _, names = _session(short_text, factory=factory)
        enabling = asyncio.create_task(session.enable_monitoring())
        try:
            await wait_for(lambda: session.sampler.acquiring)
            closing = asyncio.create_task(session.close())
            await asyncio.sleep(0.01)
            assert session.state == SessionState.READING and not closing.done()
            with pytest.raises(InvalidTransition):
                session.request_manual_break()
        finally:
            factory.release_open()
        await closing
        assert session.state == SessionState.CLOSED
        assert factory.devices[0].released
        await enabling
        assert not session.sampler.active and not session.monitoring
        assert names.count(ev.SESSION_CLOSED) == 1
        await session.close()
        assert names.count(ev.SESSION_CLOSED) == 1
    asyncio.run(scenario())


def test_close_releases_camera_before_closed_with_read_in_flight(long_text):
    async def scenario():
        device = GatedDevice()
        session, _, names = _session(long_text, factory=lambda idx: device)
        states = []
        session.subscribe(ev.SESSION_CLOSED, lambda e: states.append(device.released))
        await session.enable_monitoring()
        try:
            await wait_for(lambda: device.reading == 1)
            closing = asyncio.create_task(session.close())
            await asyncio.sleep(0.02)
            assert session.state == SessionState.MONITORING and not device.released
        finally:
            device.gate.set()
        await closing
        assert session.state == SessionState.CLOSED
        assert device.released and device.reading == 0
        assert states == [True]
    asyncio.run(scenario())


def test_reaction_countdown_completes_activity(short_text):
    async def scenario():
        session, _, _ = _session(short_text, reaction_seconds=3)
        session.request_manual_break()
        session.select_activity("reaction")
        session.submit_activity_input("tap")
        session.submit_activity_input("tap")
        await wait_for(lambda: session.state == SessionState.BREAK_OFFERED)
        result = session.last_result
        assert result.activity_id == "reaction" and result.score == 2
        assert result.reason == CompletionReason.COMPLETED
        with pytest.raises(InvalidTransition):
            session.submit_activity_input("tap")
    asyncio.run(scenario())


def test_resume_from_active_aborts_and_close_stops_everything(long_text):
    async def scenario():
        session, device, names = _session(long_text, labels=["happy"])
        await session.enable_monitoring()
        session.request_manual_break()
        session.select_activity("riddle")
        assert session.resume_reading() == SessionState.MONITORING
        assert session.last_result.reason == CompletionReason.ABORTED

        session.request_manual_break()
        session.select_activity("reaction")
        countdown = session._countdown
        await session.close()
        await asyncio.sleep(0)
        assert countdown.cancelled() or countdown.done()
        assert session.activity is None and device.released
        assert session.state == SessionState.CLOSED
        with pytest.raises(InvalidTransition):
            session.request_manual_break()
    asyncio.run(scenario())


def test_pages_and_status(long_text):
    async def scenario():
        session, _, _ = _session(long_text)
        assert session.page_count == 7
        assert session.previous_page() == 1
        for _ in range(10):
            session.next_page()
        assert session.current_page == 7
        status = session.status()
        assert status.state == SessionState.READING and status.page_count == 7
    asyncio.run(scenario())


def test_analyze_summarizes_monitoring_window(long_text):
    async def scenario():
        session, _, _ = _session(long_text, labels=["neutral"], window_size=100)
        await session.enable_monitoring()
        summary = await session.analyze(0.05)
        await session.close()
        assert summary.total_samples > 0
        assert summary.top[0]["emotion"] == "neutral"
    asyncio.run(scenario())


def test_abort_activity_returns_to_break_menu(short_text):
    async def scenario():
        session, _, names = _session(short_text)
        session.request_manual_break()
        session.select_activity("sequence_memory")
        result = session.abort_activity()
        assert result.reason == CompletionReason.ABORTED
        assert result.activity_id == "sequence_memory"
        assert session.state == SessionState.BREAK_OFFERED
        assert session.offer.last_result == result
        assert ev.ACTIVITY_COMPLETED in names
        with pytest.raises(InvalidTransition):
            session.abort_activity()
    asyncio.run(scenario())


def test_second_analysis_is_rejected_with_current_state(long_text):
    async def scenario():
        session, _, _ = _session(long_text, labels=["neutral"], window_size=100)
        await session.enable_monitoring()
        first = asyncio.create_task(session.analyze(0.03))
        await asyncio.sleep(0)
        with pytest.raises(InvalidTransition) as exc:
            await session.analyze(0.01)
        assert exc.value.state == "monitoring"
        await first
        await session.close()
    asyncio.run(scenario())
