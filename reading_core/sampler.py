# reading_core/sampler.py
"""
Periodic emotion sampling from a capture device.

Runs on the asyncio event loop: a tick task reads one frame every `interval`
seconds and hands it to the classifier. Blocking work (opening the camera,
reading a frame, classification) goes through asyncio.to_thread; everything
that touches sampler state runs back on the loop.

Guarantees:
- samples reach the observer in capture order, even when classifications overlap
- after stop()/pause(), late classification results are dropped
- at most one frame read runs on the device at a time, across pause/resume
- the device is released on stop, including when stop() lands while the
  device is still being opened or a frame read is still in flight; close()
  returns only after that release has happened
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Set

import cv2

from reading_core.emotion import EmotionClassifier
from reading_core.errors import ClassificationFailure, DeviceUnavailable
from reading_core.models import EmotionSample

logger = logging.getLogger(__name__)


def open_camera(index: int):
    """Open a webcam with OpenCV; raises DeviceUnavailable if it cannot be opened."""
    cap = cv2.VideoCapture(index)
    if not cap.isOpened():
        cap.release()
        raise DeviceUnavailable(f"Could not open camera index {index}")
    return cap


def _release(device) -> None:
    try:
        device.release()
    except Exception:
        logger.exception("[sampler] device release failed")


class SamplerHandle:
    """Returned by EmotionSampler.start; identifies one start/stop cycle."""
    def __init__(self, sampler: "EmotionSampler", epoch: int):
        self._sampler = sampler
        self.epoch = epoch

    @property
    def active(self) -> bool:
        return self._sampler._handle is self and self._sampler._device is not None


class EmotionSampler:
    """Owns the capture device and the sampling tick."""
    def __init__(self, interval: float = 0.4, camera_index: int = 0,
                 device_factory: Optional[Callable[[int], object]] = None):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = float(interval)
        self.camera_index = camera_index
        self._device_factory = device_factory or open_camera
        self._observer: Optional[Callable[[EmotionSample], None]] = None
        self._on_failure: Optional[Callable[[ClassificationFailure], None]] = None

        self._device = None
        self._classifier: Optional[EmotionClassifier] = None
        self._handle: Optional[SamplerHandle] = None
        self._epoch = 0            # bumps on start/stop
        self._tick_epoch = 0       # bumps whenever the ticker starts or stops
        self._acquiring = False
        self._ticker: Optional[asyncio.Task] = None
        self._read_future: Optional[asyncio.Future] = None   # at most one read per device
        self._acquire: Optional[asyncio.Future] = None
        self._acquire_owner: Optional[asyncio.Future] = None  # open claimed by close()
        self._inflight: Set[asyncio.Task] = set()
        self._last_delivery: Optional[asyncio.Task] = None

        self.last_frame = None
        self.samples_delivered = 0
        self.failures = 0

    # ---- observers ----
    def subscribe(self, observer: Callable[[EmotionSample], None],
                  on_failure: Optional[Callable[[ClassificationFailure], None]] = None) -> None:
        """Register the single sample observer (replaces any previous one)."""
        self._observer = observer
        self._on_failure = on_failure

    # ---- lifecycle ----
    @property
    def active(self) -> bool:
        return self._device is not None

    @property
    def acquiring(self) -> bool:
        return self._acquiring

    @property
    def ticking(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    async def start(self, classifier: EmotionClassifier) -> SamplerHandle:
        if self._handle is not None and self.active:
            return self._handle
        if self._acquiring:
            raise RuntimeError("camera acquisition already in progress")

        self._epoch += 1
        epoch = self._epoch
        handle = SamplerHandle(self, epoch)
        self._acquiring = True
        logger.debug(f"[sampler] opening camera index={self.camera_index}")
        acquire = asyncio.ensure_future(asyncio.to_thread(self._device_factory, self.camera_index))
        self._acquire = acquire
        try:
            device = await asyncio.shield(acquire)
        except asyncio.CancelledError:
            if self._acquire_owner is not acquire:
                acquire.add_done_callback(self._release_late)
            raise
        except DeviceUnavailable:
            logger.warning(f"[sampler] camera index={self.camera_index} unavailable")
            raise
        except Exception as e:
            logger.exception("[sampler] camera acquisition failed")
            raise DeviceUnavailable(f"Could not open camera index {self.camera_index}: {e}") from e
        finally:
            self._acquiring = False
            self._acquire = None

        if epoch != self._epoch:
            # stop() or close() arrived while the device was opening
            if self._acquire_owner is not acquire:
                logger.info("[sampler] stop requested during acquisition; releasing camera")
                _release(device)
            return handle

        self._device = device
        self._classifier = classifier
        self._handle = handle
        self._start_ticker()
        logger.info(f"[sampler] started interval={self.interval:.3f}s")
        return handle

    def _detach(self, handle: Optional[SamplerHandle]):
        """Stop ticking and forget the device; returns (device, pending read, pending open)."""
        if handle is not None and handle.epoch != self._epoch:
            return None, None, None
        if self._device is None and not self._acquiring:
            return None, None, None
        self._epoch += 1
        self._cancel_ticker()
        device, self._device = self._device, None
        read, self._read_future = self._read_future, None
        self._handle = None
        self._classifier = None
        self.last_frame = None
        if read is not None and read.done():
            read = None
        acquire = self._acquire if self._acquiring else None
        return device, read, acquire

    def stop(self, handle: Optional[SamplerHandle] = None) -> None:
        """Stop sampling and release the device. Safe to call repeatedly.

        A frame read still running in its thread keeps the device until it
        returns; use close() to wait for the release.
        """
        device, read, _ = self._detach(handle)
        if device is None:
            return
        if read is not None:
            read.add_done_callback(lambda _f: _release(device))
            logger.info("[sampler] stopped; camera released once the current read returns")
        else:
            _release(device)
            logger.info("[sampler] stopped; camera released")

    async def close(self, handle: Optional[SamplerHandle] = None) -> None:
        """Stop sampling and return only once the device has been released."""
        device, read, acquire = self._detach(handle)
        if acquire is not None:
            # take over the device that is still being opened
            self._acquire_owner = acquire
            try:
                await asyncio.wait([acquire])
            except asyncio.CancelledError:
                acquire.add_done_callback(self._release_late)
                raise
            if not acquire.cancelled() and acquire.exception() is None:
                device = acquire.result()
        if device is None:
            return
        if read is not None:
            try:
                await asyncio.wait([read])
            except asyncio.CancelledError:
                read.add_done_callback(lambda _f: _release(device))
                raise
        _release(device)
        logger.info("[sampler] closed; camera released")

    def pause(self) -> None:
        """Stop ticking but keep the device open."""
        if self.ticking:
            logger.debug("[sampler] paused")
        self._cancel_ticker()

    def resume(self) -> None:
        if self._device is None or self.ticking:
            return
        self._start_ticker()
        logger.debug("[sampler] resumed")

    # ---- ticking ----
    def _release_late(self, fut: asyncio.Future) -> None:
        if fut.cancelled() or fut.exception() is not None:
            return
        logger.info("[sampler] acquisition finished after cancellation; releasing camera")
        _release(fut.result())

    def _start_ticker(self) -> None:
        self._tick_epoch += 1
        self._ticker = asyncio.get_running_loop().create_task(self._tick_loop(self._tick_epoch))

    def _cancel_ticker(self) -> None:
        self._tick_epoch += 1
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
        self._ticker = None
        for task in list(self._inflight):
            task.cancel()
        self._inflight.clear()
        self._last_delivery = None

    async def _tick_loop(self, epoch: int) -> None:
        while epoch == self._tick_epoch:
            await self._tick(epoch)
            await asyncio.sleep(self.interval)

    async def _tick(self, epoch: int) -> None:
        device = self._device
        classifier = self._classifier
        if device is None or classifier is None:
            return
        if self._read_future is not None and not self._read_future.done():
            # a read from before pause() is still running on this device
            logger.debug("[sampler] previous frame read still running; skipping tick")
            return
        read = self._read_future = asyncio.ensure_future(asyncio.to_thread(device.read))
        try:
            ok, frame = await asyncio.shield(read)
        except Exception as e:
            self._report_failure(ClassificationFailure(f"frame read failed: {e}"))
            return
        if epoch != self._tick_epoch:
            return
        if not ok or frame is None:
            self._report_failure(ClassificationFailure("camera returned no frame", flag="NO_FRAME"))
            return

        self.last_frame = frame
        task = asyncio.get_running_loop().create_task(
            self._classify_and_deliver(classifier, frame, self._last_delivery, epoch)
        )
        self._last_delivery = task
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _classify_and_deliver(self, classifier: EmotionClassifier, frame,
                                    previous: Optional[asyncio.Task], epoch: int) -> None:
        sample: Optional[EmotionSample] = None
        failure: Optional[ClassificationFailure] = None
        try:
            sample = await asyncio.to_thread(classifier.classify, frame)
        except ClassificationFailure as e:
            failure = e
        except Exception as e:
            failure = ClassificationFailure(f"classifier error: {e}")

        # deliver strictly in capture order
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        if epoch != self._tick_epoch:
            logger.debug("[sampler] discarding result that arrived after stop/pause")
            return
        if failure is not None:
            self._report_failure(failure)
            return

        self.samples_delivered += 1
        if self._observer is not None:
            try:
                self._observer(sample)
            except Exception:
                logger.exception("[sampler] sample observer failed")

    def _report_failure(self, failure: ClassificationFailure) -> None:
        self.failures += 1
        logger.warning(f"[sampler] tick skipped: {failure}")
        if self._on_failure is not None:
            try:
                self._on_failure(failure)
            except Exception:
                logger.exception("[sampler] failure observer failed")
