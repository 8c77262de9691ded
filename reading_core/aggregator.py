"""
Windowed struggle detection over dominant emotions.
"""
from __future__ import annotations
import logging
from typing import Callable, Dict, Optional

from reading_core.models import Emotion, EmotionSample, STRUGGLE_SET, StruggleDetected

logger = logging.getLogger(__name__)


class AggregationWindow:
    """Per-category occurrence counts plus a running total."""
    def __init__(self):
        self.counts: Dict[Emotion, int] = {e: 0 for e in Emotion}
        self.total = 0

    def add(self, emotion: Emotion) -> None:
        self.counts[emotion] += 1
        self.total += 1

    def struggle_count(self) -> int:
        return sum(self.counts[e] for e in Emotion if e in STRUGGLE_SET)

    def struggle_ratio(self) -> float:
        if self.total == 0:
            return 0.0
        return self.struggle_count() / float(self.total)

    def dominant_struggle(self) -> Optional[Emotion]:
        """Most frequent struggle-set category; ties go to enumeration order."""
        best: Optional[Emotion] = None
        for e in Emotion:
            if e not in STRUGGLE_SET or self.counts[e] == 0:
                continue
            if best is None or self.counts[e] > self.counts[best]:
                best = e
        return best

    def snapshot(self) -> Dict[str, int]:
        return {e.value: c for e, c in self.counts.items() if c}


class StruggleAggregator:
    """
    Count dominant emotions until window_size samples arrive, then judge the
    window and start over. Windows are judged independently.
    """
    def __init__(self, window_size: int = 15, struggle_threshold: float = 0.6,
                 on_struggle: Optional[Callable[[StruggleDetected], None]] = None):
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        self.window_size = int(window_size)
        self.struggle_threshold = float(struggle_threshold)
        self.on_struggle = on_struggle
        self.window = AggregationWindow()
        self.last_ratio: Optional[float] = None

    def observe(self, sample: EmotionSample) -> Optional[StruggleDetected]:
        self.window.add(sample.dominant())
        if self.window.total < self.window_size:
            return None

        ratio = self.window.struggle_ratio()
        self.last_ratio = ratio
        event = None
        category = self.window.dominant_struggle()
        # a window with no struggle samples never fires, even at threshold 0
        if category is not None and ratio >= self.struggle_threshold:
            event = StruggleDetected(category=category, ratio=ratio, window_size=self.window_size)
            logger.info(f"[aggregator] struggle detected category={category.value} ratio={ratio:.2f} "
                        f"counts={self.window.snapshot()}")
        else:
            logger.debug(f"[aggregator] window ok ratio={ratio:.2f} counts={self.window.snapshot()}")
        self.reset()
        if event is not None and self.on_struggle is not None:
            self.on_struggle(event)
        return event

    def reset(self) -> None:
        self.window = AggregationWindow()
