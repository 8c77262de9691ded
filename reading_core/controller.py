# reading_core/controller.py
"""
Reading session state machine.

    READING --enable_monitoring--> MONITORING --disable_monitoring--> READING
    READING/MONITORING --manual break | struggle + policy--> BREAK_OFFERED
    BREAK_OFFERED --select_activity--> BREAK_ACTIVE --activity complete--> BREAK_OFFERED
    BREAK_OFFERED/BREAK_ACTIVE --resume_reading--> MONITORING (if monitoring) | READING
    any --close--> CLOSED

While a break is on screen the sampler is paused (camera kept open); resuming
starts a fresh aggregation window. Closing stops the sampler and releases the
camera before the state changes.

All methods must be called on the event loop that owns the session.
"""
from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Any, List, Optional

from reading_core import events as ev
from reading_core.activities import ActivityOutcome, ReactionActivity, ReliefActivity, create_activity
from reading_core.aggregator import StruggleAggregator
from reading_core.config import SessionOptions, Settings
from reading_core.emotion import EmotionClassifier, build_classifier, summarize_emotions
from reading_core.errors import ClassificationFailure, DeviceUnavailable, InvalidTransition
from reading_core.events import EventBus
from reading_core.models import (
    BreakActivityResult, BreakOffer, BreakTrigger, ContentContext, Emotion, EmotionSample,
    EmotionSummary, SessionState, SessionStatus,
)
from reading_core.policy import BreakDecisionPolicy
from reading_core.relief_content import ACTIVITY_CHOICES, DEFAULT_ACTIVITY, greeting_for
from reading_core.sampler import EmotionSampler, SamplerHandle

logger = logging.getLogger(__name__)

READING = SessionState.READING
MONITORING = SessionState.MONITORING
BREAK_OFFERED = SessionState.BREAK_OFFERED
BREAK_ACTIVE = SessionState.BREAK_ACTIVE
CLOSED = SessionState.CLOSED


class SessionController:
    def __init__(self, content: str,
                 options: Optional[SessionOptions] = None,
                 classifier: Optional[EmotionClassifier] = None,
                 sampler: Optional[EmotionSampler] = None,
                 settings: Optional[Settings] = None,
                 rng: Optional[random.Random] = None,
                 countdown_tick: float = 1.0,
                 session_id: Optional[str] = None):
        self.settings = settings or Settings()
        self.options = options or self.settings.session_options()
        self.session_id = session_id or uuid.uuid4().hex
        self.context = ContentContext(content_length=len(content or ""))
        self.page_count = self.context.estimated_page_count
        self.current_page = 1

        self.classifier = classifier
        self.sampler = sampler or EmotionSampler(
            interval=self.options.sample_interval,
            camera_index=self.settings.CAMERA_INDEX,
        )
        self.sampler.subscribe(self._on_sample, self._on_classification_failure)
        self.aggregator = StruggleAggregator(
            window_size=self.options.window_size,
            struggle_threshold=self.options.struggle_threshold,
        )
        self.policy = BreakDecisionPolicy(min_pages=self.options.min_pages_for_auto_break)
        self.events = EventBus()

        self.state = READING
        self.monitoring = False
        self.activity: Optional[ReliefActivity] = None
        self.offer: Optional[BreakOffer] = None
        self.last_sample: Optional[EmotionSample] = None
        self.last_result: Optional[BreakActivityResult] = None
        self._rng = rng
        self._countdown_tick = float(countdown_tick)
        self._countdown: Optional[asyncio.Task] = None
        self._handle: Optional[SamplerHandle] = None
        self._analysis: Optional[List[EmotionSample]] = None
        self._closing = False

    # ---- helpers ----
    def _set_state(self, new: SessionState) -> None:
        old, self.state = self.state, new
        logger.info(f"[session] {self.session_id[:8]} {old.value} -> {new.value}")
        self.events.emit(ev.STATE_CHANGED, old=old.value, new=new.value)

    def _require(self, action: str, *allowed: SessionState) -> None:
        if self.state not in allowed or self._closing:
            logger.warning(f"[session] {self.session_id[:8]} rejected '{action}' in state {self.state.value}")
            raise InvalidTransition(action, self.state.value)

    def subscribe(self, name: str, callback) -> None:
        self.events.subscribe(name, callback)

    # ---- monitoring ----
    async def enable_monitoring(self) -> None:
        self._require("enable_monitoring", READING)
        if self.sampler.acquiring:
            raise InvalidTransition("enable_monitoring", "acquiring")
        if self.classifier is None:
            self.classifier = build_classifier(self.settings)
        self.aggregator.reset()
        try:
            handle = await self.sampler.start(self.classifier)
        except DeviceUnavailable as e:
            self.events.emit(ev.DEVICE_UNAVAILABLE, message=str(e))
            raise

        if self.state == CLOSED or not handle.active:
            # closed while the camera was still opening
            self.sampler.stop(handle)
            return
        self._handle = handle
        self.monitoring = True
        if self.state == READING:
            self._set_state(MONITORING)
        else:
            # a break was requested while the camera was opening
            self.sampler.pause()

    def disable_monitoring(self) -> None:
        self._require("disable_monitoring", MONITORING)
        self._stop_sampler()
        self._set_state(READING)

    def _stop_sampler(self) -> None:
        self.sampler.stop(self._handle)
        self._handle = None
        self.monitoring = False
        self.aggregator.reset()

    def _on_sample(self, sample: EmotionSample) -> None:
        if self.state != MONITORING:
            return
        self.last_sample = sample
        if self._analysis is not None:
            self._analysis.append(sample)
        dominant = sample.dominant()
        self.events.emit(ev.EMOTION_UPDATED, dominant=dominant.value,
                         weights={e.value: w for e, w in sample.weights.items()}, time=sample.time)

        detected = self.aggregator.observe(sample)
        if detected is None:
            return
        self.events.emit(ev.STRUGGLE_DETECTED, category=detected.category.value, ratio=detected.ratio)
        if self.policy.should_offer(BreakTrigger.AUTOMATIC_STRUGGLE, self.context):
            self._offer_break(BreakTrigger.AUTOMATIC_STRUGGLE, detected.category)
        else:
            logger.info(f"[session] {self.session_id[:8]} struggle ignored; "
                        f"{self.page_count} pages <= {self.policy.min_pages}")

    def _on_classification_failure(self, failure: ClassificationFailure) -> None:
        self.events.emit(ev.CLASSIFICATION_FAILED, message=str(failure), flag=failure.flag)

    async def analyze(self, seconds: float = 10.0) -> EmotionSummary:
        """Collect samples for `seconds` and summarize the dominant emotions."""
        self._require("analyze", MONITORING)
        if self._analysis is not None:
            logger.warning(f"[session] {self.session_id[:8]} analysis already running")
            raise InvalidTransition("analyze", self.state.value)
        self._analysis = []
        try:
            await asyncio.sleep(seconds)
            return summarize_emotions(self._analysis)
        finally:
            self._analysis = None

    # ---- breaks ----
    def request_manual_break(self) -> BreakOffer:
        self._require("request_manual_break", READING, MONITORING)
        emotion = self.last_sample.dominant() if self.last_sample is not None else None
        return self._offer_break(BreakTrigger.MANUAL_REQUEST, emotion)

    def _offer_break(self, trigger: BreakTrigger, emotion: Optional[Emotion]) -> BreakOffer:
        if self.monitoring:
            self.sampler.pause()
        self.offer = BreakOffer(
            trigger=trigger,
            emotion=emotion,
            greeting=greeting_for(emotion),
            choices=list(ACTIVITY_CHOICES),
            suggested=DEFAULT_ACTIVITY if trigger == BreakTrigger.MANUAL_REQUEST else None,
        )
        self._set_state(BREAK_OFFERED)
        self.events.emit(ev.BREAK_OFFERED, **self.offer.model_dump(mode="json"))
        return self.offer

    def select_activity(self, activity_id: str) -> ReliefActivity:
        self._require("select_activity", BREAK_OFFERED)
        activity = create_activity(activity_id, reaction_seconds=self.options.reaction_seconds, rng=self._rng)
        self.activity = activity
        self._set_state(BREAK_ACTIVE)
        if isinstance(activity, ReactionActivity):
            self._countdown = asyncio.get_running_loop().create_task(self._run_countdown(activity))
        return activity

    async def _run_countdown(self, activity: ReactionActivity) -> None:
        while not activity.is_complete:
            await asyncio.sleep(self._countdown_tick)
            if self.activity is not activity:
                return
            result = activity.tick()
            if result is not None:
                self._complete_activity(result)

    def _cancel_countdown(self) -> None:
        task, self._countdown = self._countdown, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def submit_activity_input(self, value: Any) -> ActivityOutcome:
        self._require("submit_activity_input", BREAK_ACTIVE)
        outcome = self.activity.submit(value)
        if not outcome.ongoing:
            self._complete_activity(outcome.result)
        return outcome

    def abort_activity(self) -> BreakActivityResult:
        self._require("abort_activity", BREAK_ACTIVE)
        result = self.activity.abort()
        self._complete_activity(result)
        return result

    def _complete_activity(self, result: BreakActivityResult) -> None:
        self._cancel_countdown()
        self.activity = None
        self.last_result = result
        if self.offer is not None:
            self.offer = self.offer.model_copy(update={"last_result": result})
        self._set_state(BREAK_OFFERED)
        self.events.emit(ev.ACTIVITY_COMPLETED, **result.model_dump(mode="json"))

    def resume_reading(self) -> SessionState:
        self._require("resume_reading", BREAK_OFFERED, BREAK_ACTIVE)
        if self.state == BREAK_ACTIVE:
            self._complete_activity(self.activity.abort())
        self.offer = None
        if self.monitoring and self.sampler.active:
            self.aggregator.reset()
            self.sampler.resume()
            self._set_state(MONITORING)
        else:
            self.monitoring = False
            self._set_state(READING)
        return self.state

    # ---- reading progress ----
    def next_page(self) -> int:
        self._require("next_page", READING, MONITORING)
        self.current_page = min(self.page_count, self.current_page + 1)
        return self.current_page

    def previous_page(self) -> int:
        self._require("previous_page", READING, MONITORING)
        self.current_page = max(1, self.current_page - 1)
        return self.current_page

    # ---- teardown ----
    async def close(self) -> None:
        """
        Stop everything and release the camera, then move to closed.

        The camera is released before the state changes, waiting out a frame
        read or camera open still in progress. Closing twice is a no-op.
        """
        if self.state == CLOSED or self._closing:
            return
        self._closing = True
        self._cancel_countdown()
        if self.activity is not None:
            self.activity.abort()
            self.activity = None
        handle, self._handle = self._handle, None
        self.monitoring = False
        self.aggregator.reset()
        try:
            await self.sampler.close(handle)
        finally:
            self._closing = False
        self.offer = None
        self._set_state(CLOSED)
        self.events.emit(ev.SESSION_CLOSED, session_id=self.session_id)

    def status(self) -> SessionStatus:
        return SessionStatus(
            session_id=self.session_id,
            state=self.state,
            monitoring=self.monitoring,
            current_page=self.current_page,
            page_count=self.page_count,
            last_emotion=self.last_sample.dominant() if self.last_sample is not None else None,
            activity=self.activity.activity_id if self.activity is not None else None,
            activity_score=self.activity.score if self.activity is not None else None,
            offer=self.offer,
        )
