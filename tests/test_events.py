import pytest

from reading_core import events as ev
from reading_core.events import EventBus


def test_emit_reaches_subscribers_and_history():
    bus = EventBus(history=2)
    seen = []
    bus.subscribe(ev.STRUGGLE_DETECTED, seen.append)
    bus.emit(ev.STRUGGLE_DETECTED, category="sad", ratio=0.6)
    bus.emit(ev.STATE_CHANGED, old="monitoring", new="break_offered")
    bus.emit(ev.BREAK_OFFERED, trigger="automatic_struggle")
    assert [e.payload["category"] for e in seen] == ["sad"]
    assert [e.name for e in bus.recent] == [ev.STATE_CHANGED, ev.BREAK_OFFERED]


def test_failing_subscriber_does_not_stop_others():
    bus = EventBus()
    seen = []
    def boom(event):
        raise RuntimeError("boom")
    bus.subscribe(ev.SESSION_CLOSED, boom)
    bus.subscribe(ev.SESSION_CLOSED, seen.append)
    bus.emit(ev.SESSION_CLOSED, session_id="abc")
    assert len(seen) == 1

    bus.unsubscribe(ev.SESSION_CLOSED, seen.append)
    bus.emit(ev.SESSION_CLOSED, session_id="abc")
    assert len(seen) == 1


def test_unknown_event_name():
    with pytest.raises(ValueError):
        EventBus().subscribe("page_turned", print)
