import sys, types
import numpy as np
import pytest

import reading_core.emotion as emotion_mod
from reading_core.config import Settings
from reading_core.errors import ClassificationFailure
from reading_core.models import Emotion, EmotionSample


def _deepface(faces, probs=None, dominant=None, calls=None):
    class DF:
        @staticmethod
        def extract_faces(img_path=None, detector_backend=None, enforce_detection=None, align=None):
            return faces
        @staticmethod
        def analyze(*args, **kwargs):
            if calls is not None:
                calls["n"] += 1
            r = {}
            if probs is not None:
                r["emotion"] = probs
            if dominant is not None:
                r["dominant_emotion"] = dominant
            return [r]
    return types.SimpleNamespace(DeepFace=DF)


FACE = {"facial_area": {"x": 10, "y": 10, "w": 50, "h": 50}, "confidence": 0.9}


def test_deepface_single_face_maps_percentages(monkeypatch):
    probs = {"angry": 5.0, "disgust": 0.0, "fear": 10.0, "happy": 5.0, "sad": 70.0, "surprise": 0.0, "neutral": 10.0}
    monkeypatch.setitem(sys.modules, "deepface", _deepface([FACE], probs=probs))
    sample = emotion_mod.DeepFaceClassifier().classify(np.zeros((100, 100, 3), dtype=np.uint8))
    assert sample.dominant() == Emotion.SAD
    assert sample.weight(Emotion.SAD) == pytest.approx(0.7)
    assert sample.weight(Emotion.FEARFUL) == pytest.approx(0.1)
    assert sample.weight(Emotion.DULL) == 0.0


def test_deepface_falls_back_to_dominant_label(monkeypatch):
    monkeypatch.setitem(sys.modules, "deepface", _deepface([FACE], dominant="happy"))
    sample = emotion_mod.DeepFaceClassifier().classify(np.zeros((100, 100, 3), dtype=np.uint8))
    assert sample.dominant() == Emotion.HAPPY


def test_deepface_multiple_faces_fail_without_emotion_call(monkeypatch):
    calls = {"n": 0}
    faces = [FACE, {"facial_area": {"x": 60, "y": 10, "w": 45, "h": 45}}]
    monkeypatch.setitem(sys.modules, "deepface", _deepface(faces, probs={"happy": 90.0}, calls=calls))
    with pytest.raises(ClassificationFailure) as exc:
        emotion_mod.DeepFaceClassifier().classify(np.zeros((120, 120, 3), dtype=np.uint8))
    assert exc.value.flag == "MULTIPLE_FACES"
    assert calls["n"] == 0


def test_deepface_tiny_face_counts_as_no_face(monkeypatch):
    tiny = {"facial_area": {"x": 1, "y": 1, "w": 10, "h": 10}}
    monkeypatch.setitem(sys.modules, "deepface", _deepface([tiny], probs={"happy": 90.0}))
    with pytest.raises(ClassificationFailure) as exc:
        emotion_mod.DeepFaceClassifier().classify(np.zeros((64, 64, 3), dtype=np.uint8))
    assert exc.value.flag == "NO_FACE"


def test_brightness_classifier():
    clf = emotion_mod.BrightnessClassifier()
    assert clf.classify(np.zeros((16, 16, 3), dtype=np.uint8)).dominant() == Emotion.DULL
    assert clf.classify(np.full((16, 16, 3), 128, dtype=np.uint8)).dominant() == Emotion.NEUTRAL
    assert clf.classify(np.full((16, 16, 3), 250, dtype=np.uint8)).dominant() == Emotion.SURPRISED


def test_build_classifier():
    assert isinstance(emotion_mod.build_classifier(Settings(CLASSIFIER="brightness")), emotion_mod.BrightnessClassifier)
    assert isinstance(emotion_mod.build_classifier(Settings(CLASSIFIER="deepface")), emotion_mod.DeepFaceClassifier)


def test_summarize_emotions():
    samples = [EmotionSample.of("sad")] * 3 + [EmotionSample.of("happy")] * 2 + [EmotionSample.of("dull")] * 4 \
        + [EmotionSample.of("angry")]
    summary = emotion_mod.summarize_emotions(samples)
    assert summary.total_samples == 10
    assert [t["emotion"] for t in summary.top] == ["dull", "sad", "happy"]
    assert summary.top[0]["percent"] == 40
    assert "Total samples: 10" in summary.message


def test_summarize_emotions_empty():
    summary = emotion_mod.summarize_emotions([])
    assert summary.total_samples == 0 and summary.top == []
    assert summary.message.startswith("No faces detected")
