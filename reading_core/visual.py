"""Preview overlay helpers.

- draw_overlays: draw the dominant emotion, its weight bars and the session
  state (or a NO_FACE / MULTIPLE_FACES flag) on a camera frame
"""
from __future__ import annotations
import cv2
import numpy as np
from typing import Optional, Tuple

from reading_core.models import Emotion, EmotionSample, STRUGGLE_SET


def draw_overlays(frame: np.ndarray,
                  sample: Optional[EmotionSample] = None,
                  state: Optional[str] = None,
                  flag: Optional[str] = None,
                  color: Tuple[int, int, int] = (0, 255, 0)) -> np.ndarray:
    """Draw emotion and session labels on a copy of the frame.

    Args:
        frame: BGR image
        sample: latest emotion sample, if any
        state: session state label shown in the bottom-left corner
        flag: optional flag string (e.g., "NO_FACE", "MULTIPLE_FACES")
        color: BGR color for non-struggle labels

    Returns:
        Annotated copy of the frame
    """
    out = frame.copy()
    h, w = out.shape[:2]
    alert = (0, 0, 255)

    if state:
        cv2.putText(out, state.upper(), (10, max(20, h - 10)), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1, cv2.LINE_AA)

    if flag in ("NO_FACE", "MULTIPLE_FACES"):
        cv2.putText(out, flag, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 1.0, alert, 2, cv2.LINE_AA)
        return out
    if sample is None:
        return out

    dominant = sample.dominant()
    label_color = alert if dominant in STRUGGLE_SET else color
    cv2.putText(out, dominant.value, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, label_color, 2, cv2.LINE_AA)

    # one weight bar per category
    bar_w = max(20, w // 4)
    for i, emo in enumerate(Emotion):
        y = 45 + i * 14
        if y + 10 >= h:
            break
        filled = int(round(sample.weight(emo) * bar_w))
        c = alert if emo in STRUGGLE_SET else color
        cv2.rectangle(out, (10, y), (10 + bar_w, y + 8), (80, 80, 80), 1)
        if filled > 0:
            cv2.rectangle(out, (10, y), (10 + filled, y + 8), c, -1)
        cv2.putText(out, emo.value, (15 + bar_w, y + 8), cv2.FONT_HERSHEY_SIMPLEX, 0.35, c, 1, cv2.LINE_AA)
    return out
