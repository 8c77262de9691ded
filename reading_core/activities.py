"""
Relief activity engines.

Every engine is a two-state machine (active -> complete) behind one contract:
submit(input) returns an ActivityOutcome that is either ongoing or carries
the final BreakActivityResult. Engines never restart themselves.
"""
from __future__ import annotations
import logging
import random
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel

from reading_core.errors import InvalidTransition
from reading_core.models import BreakActivityResult, CompletionReason
from reading_core import relief_content

logger = logging.getLogger(__name__)

ACTIVE = "active"
COMPLETE = "complete"


class ActivityOutcome(BaseModel):
    ongoing: bool
    score: int
    correct: Optional[bool] = None
    result: Optional[BreakActivityResult] = None


class ReliefActivity:
    activity_id: str = "base"

    def __init__(self):
        self.state = ACTIVE
        self.score = 0
        self.success = True
        self.result: Optional[BreakActivityResult] = None

    @property
    def is_complete(self) -> bool:
        return self.state == COMPLETE

    def submit(self, value: Any) -> ActivityOutcome:
        if self.is_complete:
            raise InvalidTransition("submit", f"{self.activity_id}:{COMPLETE}")
        correct = self._handle(value)
        return ActivityOutcome(ongoing=not self.is_complete, score=self.score,
                               correct=correct, result=self.result)

    def abort(self) -> BreakActivityResult:
        """End the activity on the user's request; a finished one keeps its result."""
        if not self.is_complete:
            self._finish(CompletionReason.ABORTED)
        return self.result

    def _handle(self, value: Any) -> Optional[bool]:
        raise NotImplementedError

    def details(self) -> Dict[str, Any]:
        return {}

    def _finish(self, reason: CompletionReason = CompletionReason.COMPLETED) -> None:
        self.state = COMPLETE
        self.result = BreakActivityResult(
            activity_id=self.activity_id,
            score=self.score,
            reason=reason,
            success=self.success,
            details=self.details(),
        )
        logger.debug(f"[activity] {self.activity_id} complete score={self.score} reason={reason.value}")


class QuizActivity(ReliefActivity):
    """Multiple choice: +10 for a right answer, -5 for a wrong one, never below 0."""
    activity_id = "quiz"

    def __init__(self, items: Optional[Sequence[dict]] = None):
        super().__init__()
        self.items: List[dict] = list(items if items is not None else relief_content.QUIZ_ITEMS)
        if not self.items:
            raise ValueError("quiz needs at least one item")
        self.index = 0
        self.correct_count = 0
        self.answered = 0

    @property
    def current(self) -> dict:
        return self.items[self.index]

    def _handle(self, value: Any) -> Optional[bool]:
        choice = int(value)
        if not (0 <= choice < len(self.current["options"])):
            raise ValueError(f"option {choice} out of range for question {self.index + 1}")
        correct = choice == self.current["answer"]
        self.answered += 1
        if correct:
            self.score += 10
            self.correct_count += 1
        else:
            self.score = max(0, self.score - 5)
        if self.index < len(self.items) - 1:
            self.index += 1
        else:
            self._finish()
        return correct

    def details(self) -> Dict[str, Any]:
        return {"answered": self.answered, "correct": self.correct_count, "total": len(self.items)}


def normalize_answer(text: str) -> str:
    return (text or "").strip().lower()


class RiddleActivity(ReliefActivity):
    """Free-text riddles: +15 for a match after trimming and lower-casing, no penalty."""
    activity_id = "riddle"

    def __init__(self, riddles: Optional[Sequence[dict]] = None):
        super().__init__()
        self.riddles: List[dict] = list(riddles if riddles is not None else relief_content.RIDDLES)
        if not self.riddles:
            raise ValueError("riddle activity needs at least one riddle")
        self.index = 0
        self.solved = 0

    @property
    def current(self) -> dict:
        return self.riddles[self.index]

    def _handle(self, value: Any) -> Optional[bool]:
        correct = normalize_answer(str(value)) == normalize_answer(self.current["answer"])
        if correct:
            self.score += 15
            self.solved += 1
        if self.index < len(self.riddles) - 1:
            self.index += 1
        else:
            self._finish()
        return correct

    def details(self) -> Dict[str, Any]:
        return {"solved": self.solved, "total": len(self.riddles)}


class SequenceMemoryActivity(ReliefActivity):
    """
    Repeat the target sequence symbol by symbol. A full match grows the target
    by one random symbol (+5); any mismatch ends the game.
    """
    activity_id = "sequence_memory"

    def __init__(self, symbols: Sequence[str] = relief_content.MEMORY_SYMBOLS,
                 rng: Optional[random.Random] = None):
        super().__init__()
        if not symbols:
            raise ValueError("symbol set must not be empty")
        self.symbols = tuple(symbols)
        self.rng = rng or random.Random()
        self.target: List[str] = [self.rng.choice(self.symbols)]
        self.entered: List[str] = []

    @property
    def level(self) -> int:
        return len(self.target)

    def _handle(self, value: Any) -> Optional[bool]:
        symbol = str(value)
        pos = len(self.entered)
        if symbol != self.target[pos]:
            self.success = False
            self._finish()
            return False
        self.entered.append(symbol)
        if len(self.entered) == len(self.target):
            self.score += 5
            self.target.append(self.rng.choice(self.symbols))
            self.entered = []
        return True

    def details(self) -> Dict[str, Any]:
        return {"level": self.level}


class ReactionActivity(ReliefActivity):
    """Score one point per action until the countdown, driven by tick(), hits zero."""
    activity_id = "reaction"

    def __init__(self, seconds: int = 30):
        super().__init__()
        if seconds < 1:
            raise ValueError("countdown must be at least one second")
        self.seconds = int(seconds)
        self.remaining = int(seconds)

    def _handle(self, value: Any) -> Optional[bool]:
        self.score += 1
        return True

    def tick(self) -> Optional[BreakActivityResult]:
        """One second elapsed. Returns the result on the tick that ends the game."""
        if self.is_complete:
            return None
        self.remaining -= 1
        if self.remaining <= 0:
            self.remaining = 0
            self._finish()
            return self.result
        return None

    def details(self) -> Dict[str, Any]:
        return {"seconds": self.seconds, "remaining": self.remaining}


ACTIVITIES = {
    QuizActivity.activity_id: QuizActivity,
    RiddleActivity.activity_id: RiddleActivity,
    SequenceMemoryActivity.activity_id: SequenceMemoryActivity,
    ReactionActivity.activity_id: ReactionActivity,
}


def create_activity(activity_id: str, reaction_seconds: int = 30,
                    rng: Optional[random.Random] = None) -> ReliefActivity:
    if activity_id not in ACTIVITIES:
        raise ValueError(f"unknown activity '{activity_id}'; expected one of {sorted(ACTIVITIES)}")
    if activity_id == ReactionActivity.activity_id:
        return ReactionActivity(seconds=reaction_seconds)
    if activity_id == SequenceMemoryActivity.activity_id:
        return SequenceMemoryActivity(rng=rng)
    return ACTIVITIES[activity_id]()
