"""
Host-facing session operations.

Sessions live in an in-process registry keyed by session id; hosts hold a
SessionHandle and call these functions from the event loop that owns the
session.
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional, Union

from pydantic import BaseModel

from reading_core.activities import ActivityOutcome
from reading_core.config import SessionOptions, Settings
from reading_core.controller import SessionController
from reading_core.emotion import EmotionClassifier
from reading_core.errors import SessionNotFound
from reading_core.models import BreakActivityResult, BreakOffer, SessionEvent, SessionState, SessionStatus
from reading_core.sampler import EmotionSampler

logger = logging.getLogger(__name__)


class SessionHandle(BaseModel):
    session_id: str


HandleLike = Union[SessionHandle, str]

_sessions: Dict[str, SessionController] = {}


def _id(handle: HandleLike) -> str:
    return handle.session_id if isinstance(handle, SessionHandle) else str(handle)


def get_session(handle: HandleLike) -> SessionController:
    sid = _id(handle)
    try:
        return _sessions[sid]
    except KeyError:
        raise SessionNotFound(f"no open session '{sid}'") from None


def start_session(content: str,
                  options: Optional[SessionOptions] = None,
                  classifier: Optional[EmotionClassifier] = None,
                  sampler: Optional[EmotionSampler] = None,
                  settings: Optional[Settings] = None) -> SessionHandle:
    session = SessionController(content, options=options, classifier=classifier,
                                sampler=sampler, settings=settings)
    _sessions[session.session_id] = session
    logger.info(f"[host] session {session.session_id[:8]} started pages={session.page_count}")
    return SessionHandle(session_id=session.session_id)


async def enable_monitoring(handle: HandleLike) -> None:
    await get_session(handle).enable_monitoring()


def disable_monitoring(handle: HandleLike) -> None:
    get_session(handle).disable_monitoring()


def request_manual_break(handle: HandleLike) -> BreakOffer:
    return get_session(handle).request_manual_break()


def select_activity(handle: HandleLike, activity_id: str) -> None:
    get_session(handle).select_activity(activity_id)


def submit_activity_input(handle: HandleLike, value: Any) -> ActivityOutcome:
    return get_session(handle).submit_activity_input(value)


def abort_activity(handle: HandleLike) -> BreakActivityResult:
    return get_session(handle).abort_activity()


def resume_reading(handle: HandleLike) -> SessionState:
    return get_session(handle).resume_reading()


def session_status(handle: HandleLike) -> SessionStatus:
    return get_session(handle).status()


def subscribe(handle: HandleLike, name: str, callback: Callable[[SessionEvent], None]) -> None:
    get_session(handle).subscribe(name, callback)


async def close_session(handle: HandleLike) -> None:
    """Close and forget the session; unknown or already closed handles are a no-op.

    Returns once the camera has been released.
    """
    session = _sessions.pop(_id(handle), None)
    if session is None:
        return
    await session.close()
