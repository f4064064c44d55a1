"""Trigger pipeline: one camera run from trigger to cleanup.

A run walks a fixed sequence::

    capture -> publish image -> infer -> publish answer -> reset trigger
            -> clean up -> record success

Any failure before the reset jumps to the error path, which records the error
and still resets the trigger and removes every artifact taken so far. A run
never raises past `TriggerPipeline.run`; the caller gets a `RunOutcome`.

`PipelineDispatcher` puts one lock per camera in front of the pipeline so two
triggers for the same camera run back to back while other cameras proceed in
parallel.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import Future
from typing import Any, Awaitable, Callable, Mapping, Protocol

from camera.base import BaseCapture, CaptureError, mask_credentials
from core import status as st
from core.config.schema import CameraConfigBlock
from core.contracts import CameraStats, CaptureArtifact, RunOutcome, TriggerEvent
from core.lifecycle import LoopRunner
from core.status import StatusTracker
from inference.base import InferenceClient, InferenceError, extract_response_text

L = logging.getLogger("camera_ai_bridge.pipeline")


class BusPublisher(Protocol):
    def publish_image(self, camera: str, data: bytes) -> bool: ...
    def publish_ai(self, camera: str, text: str) -> bool: ...
    def reset_trigger(self, camera: str) -> bool: ...
    def publish_status(self, camera: str, status: str) -> bool: ...
    def publish_stats(self, camera: str, stats: CameraStats) -> bool: ...


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


class TriggerPipeline:
    def __init__(
        self,
        cameras: Mapping[str, CameraConfigBlock],
        capture: BaseCapture,
        inference: InferenceClient,
        publisher: BusPublisher,
        tracker: StatusTracker,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.cameras = cameras
        self.capture = capture
        self.inference = inference
        self.publisher = publisher
        self.tracker = tracker
        self._sleep = sleep
        self._clock = clock

    def knows(self, camera: str) -> bool:
        return camera in self.cameras

    async def run(self, event: TriggerEvent) -> RunOutcome | None:
        cam_name = event.camera
        cam = self.cameras.get(cam_name)
        if cam is None:
            L.warning("No configuration found for camera: %s", cam_name)
            return None

        L.info("[%5s] Processing trigger for camera %s", event.trigger_seq, cam_name)
        outcome = RunOutcome(camera=cam_name, trigger_seq=event.trigger_seq)
        t_start = self._clock()
        artifacts: list[CaptureArtifact] = []
        try:
            try:
                await self._capture(cam, artifacts)

                self._set_status(cam_name, st.PUBLISHING_IMAGE)
                primary = await asyncio.to_thread(_read_bytes, artifacts[0].path)
                L.debug("Primary image read, size: %d bytes", len(primary))
                self.publisher.publish_image(cam_name, primary)

                self._set_status(cam_name, st.PROCESSING_AI)
                images = [primary]
                for art in artifacts[1:]:
                    images.append(await asyncio.to_thread(_read_bytes, art.path))
                t_ai = self._clock()
                response = await self.inference.infer(
                    images, cam.prompt, cam.response_format
                )
                outcome.ai_process_s = max(self._clock() - t_ai, 0.0)

                self._set_status(cam_name, st.PUBLISHING_AI)
                self.publisher.publish_ai(cam_name, extract_response_text(response))
            except Exception as e:
                outcome.error = str(e) or type(e).__name__
                L.error(
                    "[%5s] Error processing trigger for camera %s: %s",
                    event.trigger_seq,
                    cam_name,
                    outcome.error,
                    exc_info=not _is_expected_failure(e),
                )
                self._publish_stats(cam_name, self.tracker.record_error(cam_name, e))
                self._publish_status(cam_name)

            self.publisher.reset_trigger(cam_name)

            if outcome.error is None:
                self._set_status(cam_name, st.CLEANING_UP)
            report = self.capture.cleanup(artifacts)
            outcome.cleanup_errors = list(report.errors)
            outcome.artifact_count = len(artifacts)
            L.debug("Cleaned up %d temporary image file(s)", len(report.removed))
        except asyncio.CancelledError:
            self.capture.cleanup(artifacts)
            raise

        if outcome.error is None:
            outcome.total_process_s = max(self._clock() - t_start, 0.0)
            stats = self.tracker.record_success(
                cam_name, outcome.ai_process_s or 0.0, outcome.total_process_s
            )
            self._publish_stats(cam_name, stats)
            self._publish_status(cam_name)
            outcome.ok = True
            L.info(
                "[%5s] Trigger processing completed for camera %s "
                "(AI: %.3fs, Total: %.3fs)",
                event.trigger_seq,
                cam_name,
                outcome.ai_process_s,
                outcome.total_process_s,
            )
        if outcome.cleanup_errors:
            L.warning(
                "[%5s] %d artifact(s) could not be removed for camera %s",
                event.trigger_seq,
                len(outcome.cleanup_errors),
                cam_name,
            )
        return outcome

    async def _capture(self, cam: CameraConfigBlock, artifacts: list[CaptureArtifact]):
        name = cam.name
        captures = max(int(cam.captures), 1)
        interval_ms = max(int(cam.interval), 0)
        self._set_status(name, st.STARTING_CAPTURE)
        L.debug(
            "Starting image capture for camera %s from %s (%d captures, %dms intervals)",
            name,
            mask_credentials(cam.endpoint),
            captures,
            interval_ms,
        )
        if captures == 1:
            self._set_status(name, st.TAKING_SNAPSHOT)
            artifacts.append(await self.capture.capture_once(cam.endpoint, camera=name))
            return
        for i in range(1, captures + 1):
            self._set_status(name, st.snapshot_progress(i, captures))
            artifacts.append(
                await self.capture.capture_once(cam.endpoint, camera=name, index=i)
            )
            if i < captures and interval_ms > 0:
                self._set_status(name, st.waiting_progress(i, captures))
                await self._sleep(interval_ms / 1000.0)
        L.debug("%d images captured for camera %s", len(artifacts), name)

    def _set_status(self, camera: str, status: str):
        self.tracker.update_status(camera, status)
        self.publisher.publish_status(camera, status)

    def _publish_status(self, camera: str):
        self.publisher.publish_status(camera, self.tracker.get_status(camera))

    def _publish_stats(self, camera: str, stats: CameraStats):
        self.publisher.publish_stats(camera, stats)


def _is_expected_failure(exc: BaseException) -> bool:
    return isinstance(exc, (CaptureError, InferenceError, OSError))


class PipelineDispatcher:
    """Schedules runs on the shared loop, one at a time per camera."""

    def __init__(self, pipeline: TriggerPipeline, loop_runner: LoopRunner):
        self.pipeline = pipeline
        self.loop_runner = loop_runner
        self._locks: dict[str, asyncio.Lock] = {}
        self._inflight: set[Future | asyncio.Task] = set()
        self._inflight_lock = threading.Lock()

    def dispatch(self, event: TriggerEvent) -> Future | asyncio.Task:
        """Queue a run for `event.camera`; callable from any thread."""
        fut = self.loop_runner.submit(self._run_serialized(event))
        with self._inflight_lock:
            self._inflight.add(fut)
        fut.add_done_callback(self._forget)
        return fut

    def _forget(self, fut):
        with self._inflight_lock:
            self._inflight.discard(fut)
        if not fut.cancelled() and fut.exception() is not None:
            L.error("Pipeline task failed: %r", fut.exception())

    def _pending(self) -> list:
        with self._inflight_lock:
            return [f for f in self._inflight if not f.done()]

    async def _run_serialized(self, event: TriggerEvent) -> RunOutcome | None:
        if not self.pipeline.knows(event.camera):
            return await self.pipeline.run(event)
        lock = self._locks.setdefault(event.camera, asyncio.Lock())
        if lock.locked():
            L.info(
                "[%5s] Camera %s busy; trigger queued behind the current run",
                event.trigger_seq,
                event.camera,
            )
        async with lock:
            return await self.pipeline.run(event)

    @property
    def inflight_count(self) -> int:
        return len(self._pending())

    def cancel_inflight(self) -> int:
        pending = self._pending()
        for f in pending:
            f.cancel()
        return len(pending)


__all__ = ["BusPublisher", "TriggerPipeline", "PipelineDispatcher"]
