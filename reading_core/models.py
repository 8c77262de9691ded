"""
Pydantic data models for the reading session.
"""
from __future__ import annotations
from enum import Enum
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Emotion(str, Enum):
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    NEUTRAL = "neutral"
    SURPRISED = "surprised"
    FEARFUL = "fearful"
    DISGUSTED = "disgusted"
    DULL = "dull"


STRUGGLE_SET = frozenset({Emotion.SAD, Emotion.ANGRY, Emotion.DULL, Emotion.FEARFUL, Emotion.DISGUSTED})

EMOJI = {
    Emotion.HAPPY: "😊",
    Emotion.SAD: "😢",
    Emotion.ANGRY: "😠",
    Emotion.NEUTRAL: "😐",
    Emotion.SURPRISED: "😲",
    Emotion.FEARFUL: "😨",
    Emotion.DISGUSTED: "🤢",
    Emotion.DULL: "😑",
}


class EmotionSample(BaseModel):
    """One classifier reading: a weight in [0, 1] per emotion category."""
    model_config = ConfigDict(frozen=True)

    weights: Dict[Emotion, float] = Field(default_factory=dict)
    time: float = Field(default_factory=time.time)

    def __init__(self, **data):
        super().__init__(**data)
        for emo, w in self.weights.items():
            if not (0.0 <= w <= 1.0):
                raise ValueError(f"weight for {emo.value} must be within [0, 1], got {w}")

    def weight(self, emotion: Emotion) -> float:
        return float(self.weights.get(emotion, 0.0))

    def dominant(self) -> Emotion:
        """Highest-weighted category; ties go to the first in enumeration order."""
        best = Emotion.HAPPY
        best_w = self.weight(best)
        for emo in Emotion:
            w = self.weight(emo)
            if w > best_w:
                best, best_w = emo, w
        return best

    @classmethod
    def of(cls, emotion: Emotion | str, weight: float = 1.0, **kw) -> "EmotionSample":
        """Sample with all weight on a single category."""
        return cls(weights={Emotion(emotion): weight}, **kw)


class StruggleDetected(BaseModel):
    category: Emotion
    ratio: float
    window_size: int


class SessionState(str, Enum):
    READING = "reading"
    MONITORING = "monitoring"
    BREAK_OFFERED = "break_offered"
    BREAK_ACTIVE = "break_active"
    CLOSED = "closed"


class BreakTrigger(str, Enum):
    AUTOMATIC_STRUGGLE = "automatic_struggle"
    MANUAL_REQUEST = "manual_request"


class CompletionReason(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


class BreakActivityResult(BaseModel):
    activity_id: str
    score: int
    reason: CompletionReason
    success: bool = True
    details: Dict[str, Any] = Field(default_factory=dict)


class ContentContext(BaseModel):
    """Read-only view of the host's content: its length and the manual break flag."""
    model_config = ConfigDict(frozen=True)

    content_length: int = 0
    manual_request: bool = False

    @property
    def estimated_page_count(self) -> int:
        from reading_core.policy import estimate_page_count
        return estimate_page_count(self.content_length)


class ActivityChoice(BaseModel):
    activity_id: str
    title: str
    description: str


class BreakOffer(BaseModel):
    trigger: BreakTrigger
    emotion: Optional[Emotion] = None
    greeting: str
    choices: List[ActivityChoice] = Field(default_factory=list)
    suggested: Optional[str] = None
    last_result: Optional[BreakActivityResult] = None


class EmotionSummary(BaseModel):
    total_samples: int
    top: List[Dict[str, Any]] = Field(default_factory=list)
    message: str


class SessionEvent(BaseModel):
    name: str
    ts: float = Field(default_factory=time.time)
    payload: Dict[str, Any] = Field(default_factory=dict)


class SessionStatus(BaseModel):
    session_id: str
    state: SessionState
    monitoring: bool
    current_page: int
    page_count: int
    last_emotion: Optional[Emotion] = None
    activity: Optional[str] = None
    activity_score: Optional[int] = None
    offer: Optional[BreakOffer] = None
