"""
Configuration for the reading session controller.
"""
from pydantic import BaseModel
import os

CLASSIFIERS = ("deepface", "brightness")


class SessionOptions(BaseModel):
    """
    Per-session tunables passed to start_session.
    """
    sample_interval_ms: int = 400
    window_size: int = 15
    struggle_threshold: float = 0.6
    min_pages_for_auto_break: int = 5
    reaction_seconds: int = 30

    def __init__(self, **data):
        super().__init__(**data)
        if not (300 <= self.sample_interval_ms <= 500):
            raise ValueError(f"sample_interval_ms must be within 300..500, got {self.sample_interval_ms}")
        if self.window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {self.window_size}")
        if not (0.0 <= self.struggle_threshold <= 1.0):
            raise ValueError(f"struggle_threshold must be within [0, 1], got {self.struggle_threshold}")
        if self.reaction_seconds < 1:
            raise ValueError(f"reaction_seconds must be >= 1, got {self.reaction_seconds}")

    @property
    def sample_interval(self) -> float:
        return self.sample_interval_ms / 1000.0


class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.
    """
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    SAMPLE_INTERVAL_MS: int = int(os.getenv("SAMPLE_INTERVAL_MS", "400"))
    WINDOW_SIZE: int = int(os.getenv("WINDOW_SIZE", "15"))
    STRUGGLE_THRESHOLD: float = float(os.getenv("STRUGGLE_THRESHOLD", "0.6"))
    MIN_PAGES_FOR_AUTO_BREAK: int = int(os.getenv("MIN_PAGES_FOR_AUTO_BREAK", "5"))
    REACTION_SECONDS: int = int(os.getenv("REACTION_SECONDS", "30"))
    CLASSIFIER: str = os.getenv("CLASSIFIER", "deepface")
    DEEPFACE_DETECTOR: str = os.getenv("DEEPFACE_DETECTOR", "opencv")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def __init__(self, **data):
        super().__init__(**data)
        # Normalize CLASSIFIER: strip comments/extra words, lower-case, validate
        name = (self.CLASSIFIER or "deepface").strip().split()[0].lower()
        if name not in CLASSIFIERS:
            name = "deepface"
        object.__setattr__(self, "CLASSIFIER", name)
        object.__setattr__(self, "LOG_LEVEL", (self.LOG_LEVEL or "INFO").strip().upper())

    def session_options(self, **overrides) -> SessionOptions:
        """Build SessionOptions from these settings, applying explicit overrides."""
        base = {
            "sample_interval_ms": self.SAMPLE_INTERVAL_MS,
            "window_size": self.WINDOW_SIZE,
            "struggle_threshold": self.STRUGGLE_THRESHOLD,
            "min_pages_for_auto_break": self.MIN_PAGES_FOR_AUTO_BREAK,
            "reaction_seconds": self.REACTION_SECONDS,
        }
        base.update({k: v for k, v in overrides.items() if v is not None})
        return SessionOptions(**base)
