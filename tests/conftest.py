import asyncio
import threading

import numpy as np
import pytest

from reading_core.errors import ClassificationFailure
from reading_core.models import EmotionSample


class FakeDevice:
    """Camera stand-in: frame i is filled with the value i so classifiers can tell frames apart."""
    def __init__(self):
        self.reads = 0
        self.released = False
    def isOpened(self): return True
    def read(self):
        frame = np.full((8, 8, 3), self.reads % 256, dtype=np.uint8)
        self.reads += 1
        return True, frame
    def release(self):
        self.released = True


class GatedDevice(FakeDevice):
    """FakeDevice whose read() blocks while the gate is closed; tracks overlapping reads."""
    def __init__(self):
        super().__init__()
        self.gate = threading.Event()
        self.reading = 0
        self.max_concurrent = 0
        self._lock = threading.Lock()
    def read(self):
        with self._lock:
            self.reading += 1
            self.max_concurrent = max(self.max_concurrent, self.reading)
        try:
            self.gate.wait(2.0)
            return super().read()
        finally:
            with self._lock:
                self.reading -= 1


class ScriptedClassifier:
    """Label for frame i is labels[i] (the last label repeats); None fails the tick."""
    def __init__(self, labels, delays=None):
        self.labels = list(labels)
        self.delays = delays or {}
        self.calls = 0
    def classify(self, frame):
        self.calls += 1
        i = int(frame[0, 0, 0])
        if i in self.delays:
            self.delays[i].wait(2.0)
        label = self.labels[min(i, len(self.labels) - 1)]
        if label is None:
            raise ClassificationFailure("no face in frame", flag="NO_FACE")
        return EmotionSample.of(label, time=float(i))


class BlockingFactory:
    """device_factory whose open blocks until release_open() is called."""
    def __init__(self):
        self.gate = threading.Event()
        self.devices = []
    def __call__(self, index):
        self.gate.wait(2.0)
        dev = FakeDevice()
        self.devices.append(dev)
        return dev
    def release_open(self):
        self.gate.set()


async def wait_for(cond, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not cond():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_device():
    return FakeDevice()


@pytest.fixture
def long_text():
    # 20000 chars -> 7 estimated pages
    return "x" * 20000


@pytest.fixture
def short_text():
    return "short notes"
