"""
Session event fan-out for hosts.
"""
from __future__ import annotations
from collections import deque
from typing import Any, Callable, Deque, Dict, List
import logging

from reading_core.models import SessionEvent

logger = logging.getLogger(__name__)

EMOTION_UPDATED = "emotion_updated"
STRUGGLE_DETECTED = "struggle_detected"
BREAK_OFFERED = "break_offered"
ACTIVITY_COMPLETED = "activity_completed"
SESSION_CLOSED = "session_closed"
STATE_CHANGED = "state_changed"
CLASSIFICATION_FAILED = "classification_failed"
DEVICE_UNAVAILABLE = "device_unavailable"

EVENT_NAMES = (
    EMOTION_UPDATED, STRUGGLE_DETECTED, BREAK_OFFERED, ACTIVITY_COMPLETED,
    SESSION_CLOSED, STATE_CHANGED, CLASSIFICATION_FAILED, DEVICE_UNAVAILABLE,
)


class EventBus:
    """Named callbacks plus a short history of recent events."""
    def __init__(self, history: int = 200):
        self._subs: Dict[str, List[Callable[[SessionEvent], None]]] = {}
        self.recent: Deque[SessionEvent] = deque(maxlen=history)

    def subscribe(self, name: str, callback: Callable[[SessionEvent], None]) -> None:
        if name not in EVENT_NAMES:
            raise ValueError(f"unknown event '{name}'")
        self._subs.setdefault(name, []).append(callback)

    def unsubscribe(self, name: str, callback: Callable[[SessionEvent], None]) -> None:
        subs = self._subs.get(name) or []
        if callback in subs:
            subs.remove(callback)

    def emit(self, name: str, **payload: Any) -> SessionEvent:
        event = SessionEvent(name=name, payload=payload)
        self.recent.append(event)
        for cb in list(self._subs.get(name, [])):
            try:
                cb(event)
            except Exception:
                logger.exception(f"[events] subscriber for '{name}' failed")
        return event
