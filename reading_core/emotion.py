"""
Frame classifiers producing EmotionSample readings.

DeepFaceClassifier is the production path. BrightnessClassifier is a degraded,
deterministic estimator for machines without the deepface/tensorflow stack;
it is only used when explicitly configured.
"""
# reading_core/emotion.py
from __future__ import annotations
from collections import Counter
from typing import Dict, Iterable, Protocol
import logging
import time

import cv2
import numpy as np

from reading_core.config import Settings
from reading_core.errors import ClassificationFailure
from reading_core.models import Emotion, EmotionSample, EmotionSummary

logger = logging.getLogger(__name__)

# DeepFace label -> our category
DEEPFACE_LABELS: Dict[str, Emotion] = {
    "angry": Emotion.ANGRY,
    "disgust": Emotion.DISGUSTED,
    "fear": Emotion.FEARFUL,
    "happy": Emotion.HAPPY,
    "sad": Emotion.SAD,
    "surprise": Emotion.SURPRISED,
    "neutral": Emotion.NEUTRAL,
}

# Tunables to improve detection robustness
MIN_BOX = 40          # px; increase to avoid tiny faces
MIN_DET_CONF = 0.5    # if backend supplies a score


class EmotionClassifier(Protocol):
    """Anything that turns one BGR frame into an EmotionSample."""

    def classify(self, frame: np.ndarray) -> EmotionSample:
        ...


def _valid_region(r) -> bool:
    reg = (r or {}).get("region") or {}
    w = int(reg.get("w", 0)); h = int(reg.get("h", 0))
    ok_size = (w >= MIN_BOX and h >= MIN_BOX)
    conf = (r.get("face_confidence") or r.get("detector_score") or 1.0)
    try:
        conf = float(conf)
    except (TypeError, ValueError):
        conf = 1.0
    return ok_size and conf >= MIN_DET_CONF


def weights_from_deepface(probs: Dict[str, float]) -> Dict[Emotion, float]:
    """Map DeepFace's 0..100 percentages (or 0..1 scores) onto our categories."""
    vals = {k: float(v) for k, v in (probs or {}).items() if k in DEEPFACE_LABELS}
    scale = 100.0 if any(v > 1.0 for v in vals.values()) else 1.0
    return {DEEPFACE_LABELS[k]: max(0.0, min(1.0, v / scale)) for k, v in vals.items()}


class DeepFaceClassifier:
    """
    Detect faces with DeepFace (OpenCV backend), then score emotions on the
    single face crop. Zero or several faces fail the tick.
    """

    def __init__(self, detector_backend: str = "opencv"):
        self.detector_backend = detector_backend

    def _detect(self, DeepFace, frame: np.ndarray) -> list[dict]:
        faces = []
        try:
            dets = DeepFace.extract_faces(
                img_path=frame,
                detector_backend=self.detector_backend,
                enforce_detection=False,
                align=True,
            )
            for d in dets or []:
                fa = d.get("facial_area") or {}
                blob = {"region": {"x": fa.get("x", 0), "y": fa.get("y", 0), "w": fa.get("w", 0), "h": fa.get("h", 0)},
                        "face_confidence": d.get("confidence", 1.0)}
                if _valid_region(blob):
                    faces.append(blob)
        except (AttributeError, ValueError):
            # Fallback to analyze to get regions if extract not available
            res = DeepFace.analyze(
                frame,
                actions=["emotion"],
                enforce_detection=False,
                detector_backend=self.detector_backend,
            )
            res = res if isinstance(res, list) else [res]
            faces = [r for r in res if _valid_region(r)]
        return faces

    def classify(self, frame: np.ndarray) -> EmotionSample:
        # Lazy import for easier testing and to avoid loading heavy stacks too early
        from deepface import DeepFace

        if frame is None:
            raise ClassificationFailure("empty frame", flag="NO_FACE")
        faces = self._detect(DeepFace, frame)
        logger.debug(f"[emotion] faces_detected={len(faces)}")
        if len(faces) == 0:
            raise ClassificationFailure("no face in frame", flag="NO_FACE")
        if len(faces) > 1:
            raise ClassificationFailure(f"{len(faces)} faces in frame", flag="MULTIPLE_FACES")

        reg = faces[0].get("region") or {}
        x, y, w, h = int(reg.get("x", 0)), int(reg.get("y", 0)), int(reg.get("w", 0)), int(reg.get("h", 0))
        chip = frame[y:y+h, x:x+w]
        try:
            emo = DeepFace.analyze(
                chip if chip.size else frame,
                actions=["emotion"],
                enforce_detection=False,
                detector_backend=self.detector_backend,
                align=True,
            )
        except Exception as e:
            raise ClassificationFailure(f"emotion inference failed: {e}") from e
        emo = emo if isinstance(emo, list) else [emo]
        r0 = emo[0] if emo else {}
        weights = weights_from_deepface(r0.get("emotion") if isinstance(r0.get("emotion"), dict) else {})
        if not weights:
            label = DEEPFACE_LABELS.get(str(r0.get("dominant_emotion") or ""))
            if label is None:
                raise ClassificationFailure("classifier returned no emotion scores")
            weights = {label: 1.0}
        return EmotionSample(weights=weights, time=time.time())


class BrightnessClassifier:
    """
    Placeholder estimator from mean frame brightness: dim frames read as dull,
    very bright ones as surprised, everything else as neutral.
    """

    def __init__(self, dim: float = 60.0, bright: float = 200.0):
        self.dim = dim
        self.bright = bright

    def classify(self, frame: np.ndarray) -> EmotionSample:
        if frame is None or not getattr(frame, "size", 0):
            raise ClassificationFailure("empty frame", flag="NO_FACE")
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        mean = float(np.mean(gray))
        if mean < self.dim:
            dull = 1.0 - mean / self.dim
            weights = {Emotion.DULL: max(0.5, dull), Emotion.NEUTRAL: 0.5 * (1.0 - dull)}
        elif mean > self.bright:
            weights = {Emotion.SURPRISED: 0.6, Emotion.NEUTRAL: 0.4}
        else:
            weights = {Emotion.NEUTRAL: 0.8, Emotion.HAPPY: 0.2}
        return EmotionSample(weights=weights, time=time.time())


def build_classifier(settings: Settings) -> EmotionClassifier:
    """Classifier named by settings.CLASSIFIER."""
    if settings.CLASSIFIER == "brightness":
        logger.info("[emotion] using brightness heuristic classifier")
        return BrightnessClassifier()
    return DeepFaceClassifier(detector_backend=settings.DEEPFACE_DETECTOR)


def summarize_emotions(samples: Iterable[EmotionSample], top: int = 3) -> EmotionSummary:
    """
    Share of each dominant emotion across the samples, most frequent first.
    """
    counts = Counter(s.dominant() for s in samples)
    total = sum(counts.values())
    if total == 0:
        return EmotionSummary(total_samples=0, message="No faces detected during analysis. Please try again.")
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], list(Emotion).index(kv[0])))[:top]
    items = [{"emotion": e.value, "count": c, "percent": round(100.0 * c / total)} for e, c in ranked]
    text = ", ".join(f"{i['emotion']} ({i['percent']}%)" for i in items)
    return EmotionSummary(
        total_samples=total,
        top=items,
        message=f"Detected emotions: {text}. Total samples: {total}.",
    )
