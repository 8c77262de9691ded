"""
REST endpoints for reading sessions.
"""
from typing import Any, List, Optional
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from reading_core import host
from reading_core.config import Settings
from reading_core.errors import DeviceUnavailable, InvalidTransition, SessionNotFound

router = APIRouter()
settings = Settings()
logger = logging.getLogger(__name__)


class StartSessionRequest(BaseModel):
    content: str
    sample_interval_ms: Optional[int] = None
    window_size: Optional[int] = None
    struggle_threshold: Optional[float] = None
    min_pages_for_auto_break: Optional[int] = None
    reaction_seconds: Optional[int] = None


class ActivityRequest(BaseModel):
    activity_id: str


class ActivityInput(BaseModel):
    value: Any = None


def _session(session_id: str):
    try:
        return host.get_session(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


def _conflict(e: InvalidTransition) -> HTTPException:
    logger.warning(f"[api] {e}")
    return HTTPException(status_code=409, detail=str(e))


@router.post("/sessions")
async def start_session(req: StartSessionRequest):
    """
    Open a reading session over the given content.

    Returns:
        dict: session id and initial status.
    """
    try:
        options = settings.session_options(
            sample_interval_ms=req.sample_interval_ms,
            window_size=req.window_size,
            struggle_threshold=req.struggle_threshold,
            min_pages_for_auto_break=req.min_pages_for_auto_break,
            reaction_seconds=req.reaction_seconds,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    handle = host.start_session(req.content, options=options, settings=settings)
    logger.debug(f"[api] /sessions created {handle.session_id}")
    return {"session_id": handle.session_id, "status": host.session_status(handle).model_dump(mode="json")}


@router.get("/sessions/{session_id}")
async def session_status(session_id: str):
    return _session(session_id).status().model_dump(mode="json")


@router.get("/sessions/{session_id}/events")
async def session_events(session_id: str, limit: int = 50):
    events: List = list(_session(session_id).events.recent)[-max(1, limit):]
    return [e.model_dump(mode="json") for e in events]


@router.post("/sessions/{session_id}/monitoring/enable")
async def enable_monitoring(session_id: str):
    """
    Open the camera and start emotion sampling.

    Returns 503 when the camera cannot be opened; the session stays in reading.
    """
    session = _session(session_id)
    try:
        await session.enable_monitoring()
    except InvalidTransition as e:
        raise _conflict(e)
    except DeviceUnavailable as e:
        logger.warning(f"[api] camera unavailable for {session_id}: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    return session.status().model_dump(mode="json")


@router.post("/sessions/{session_id}/monitoring/disable")
async def disable_monitoring(session_id: str):
    session = _session(session_id)
    try:
        session.disable_monitoring()
    except InvalidTransition as e:
        raise _conflict(e)
    return session.status().model_dump(mode="json")


@router.post("/sessions/{session_id}/break")
async def request_break(session_id: str):
    session = _session(session_id)
    try:
        offer = session.request_manual_break()
    except InvalidTransition as e:
        raise _conflict(e)
    return offer.model_dump(mode="json")


@router.post("/sessions/{session_id}/activity")
async def select_activity(session_id: str, req: ActivityRequest):
    session = _session(session_id)
    try:
        session.select_activity(req.activity_id)
    except InvalidTransition as e:
        raise _conflict(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return session.status().model_dump(mode="json")


@router.post("/sessions/{session_id}/activity/input")
async def submit_activity_input(session_id: str, body: ActivityInput):
    session = _session(session_id)
    try:
        outcome = session.submit_activity_input(body.value)
    except InvalidTransition as e:
        raise _conflict(e)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return outcome.model_dump(mode="json")


@router.post("/sessions/{session_id}/activity/abort")
async def abort_activity(session_id: str):
    """
    End the running activity early; the session returns to the break menu.

    Returns:
        dict: the aborted activity result.
    """
    session = _session(session_id)
    try:
        result = session.abort_activity()
    except InvalidTransition as e:
        raise _conflict(e)
    return result.model_dump(mode="json")


@router.post("/sessions/{session_id}/resume")
async def resume_reading(session_id: str):
    session = _session(session_id)
    try:
        session.resume_reading()
    except InvalidTransition as e:
        raise _conflict(e)
    return session.status().model_dump(mode="json")


@router.post("/sessions/{session_id}/pages/next")
async def next_page(session_id: str):
    session = _session(session_id)
    try:
        page = session.next_page()
    except InvalidTransition as e:
        raise _conflict(e)
    return {"current_page": page, "page_count": session.page_count}


@router.post("/sessions/{session_id}/pages/previous")
async def previous_page(session_id: str):
    session = _session(session_id)
    try:
        page = session.previous_page()
    except InvalidTransition as e:
        raise _conflict(e)
    return {"current_page": page, "page_count": session.page_count}


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    _session(session_id)
    await host.close_session(session_id)
    return {"status": "closed"}
