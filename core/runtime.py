"""Core runtime: SystemRuntime lifecycle and ordered teardown."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import (
    Callable,
    Iterable,
    Optional,
    Protocol,
    TYPE_CHECKING,
)

from core.lifecycle import LoopRunner
from core.pipeline import PipelineDispatcher
from core.status import StatusTracker
from trigger import TriggerGateway

if TYPE_CHECKING:  # pragma: no cover
    from core.mqtt_io import MqttIO
    from inference.base import InferenceClient
    from output.mqtt import MqttOutput

L = logging.getLogger("camera_ai_bridge.runtime")


class TriggerHandle(Protocol):
    def start(self) -> None: ...
    def stop(self) -> None: ...
    def raise_if_failed(self) -> None: ...


class OutputHandle(Protocol):
    def start(self) -> None: ...
    def stop(self) -> None: ...
    def raise_if_failed(self) -> None: ...


@dataclass
class AppContext:
    trigger_gateway: TriggerGateway
    tracker: StatusTracker
    dispatcher: PipelineDispatcher
    mqtt_io: Optional["MqttIO"] = None


class SystemRuntime:
    """Coordinates the bus connection, outputs, triggers and shutdown."""

    def __init__(
        self,
        app_context: AppContext,
        bus_output: MqttOutput,
        loop_runner: LoopRunner,
        *,
        outputs: Iterable[OutputHandle] = (),
        inference: Optional["InferenceClient"] = None,
        shutdown_grace_s: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.app_context = app_context
        self.bus_output = bus_output
        self.outputs: list[OutputHandle] = list(outputs)
        self.loop_runner = loop_runner
        self.inference = inference
        self.shutdown_grace_s = max(float(shutdown_grace_s), 0.0)
        self.triggers: list[TriggerHandle] = []
        self._sleep = sleep

        self._stop_evt = threading.Event()
        self._started = False
        self._stopped = False

    def start(
        self,
        triggers: Optional[list[TriggerHandle]] = None,
    ):
        if self._started:
            raise RuntimeError(
                "SystemRuntime is single-use; start() may only be called once"
            )
        if self._stopped:
            raise RuntimeError("SystemRuntime is stopped and cannot be started again")
        self._started = True
        self.triggers = list(triggers or [])
        try:
            self.bus_output.start()

            for out in self.outputs:
                out.start()

            for t in list(self.triggers):
                t.start()
        except Exception:
            L.exception("Runtime start failed; rolling back partial startup")
            try:
                self.stop()
            except Exception:
                L.exception("Runtime rollback stop failed")
            raise

    def request_stop(self):
        self._stop_evt.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_evt.is_set()

    def run(self, runtime_limit_s: float | None = None):
        if not self._started:
            raise RuntimeError("SystemRuntime.run() requires start() first")
        start_ts = time.perf_counter()
        try:
            while not self._stop_evt.wait(0.1):
                now_ts = time.perf_counter()
                self._raise_if_trigger_stopped()
                self._raise_if_output_stopped()
                if (
                    runtime_limit_s is not None
                    and (now_ts - start_ts) >= runtime_limit_s
                ):
                    L.info(
                        "Runtime limit reached (%ss); shutting down service",
                        runtime_limit_s,
                    )
                    self.request_stop()
        finally:
            self.stop()

    def _raise_if_trigger_stopped(self):
        for trig in self.triggers:
            trig.raise_if_failed()

    def _raise_if_output_stopped(self):
        self.bus_output.raise_if_failed()
        for out in self.outputs:
            out.raise_if_failed()

    def stop(self):
        if self._stopped:
            return
        self._stopped = True
        L.info("Shutting down gracefully...")
        stop_t0 = time.perf_counter()
        stage_t0 = stop_t0

        def _log_stage(name: str):
            nonlocal stage_t0
            now = time.perf_counter()
            L.debug("Shutdown stage=%s elapsed=%.1fms", name, (now - stage_t0) * 1000)
            stage_t0 = now

        def _run_stage(name: str, fn: Callable[[], None]):
            try:
                fn()
            except Exception:
                L.exception("Shutdown stage failed: %s", name)
            finally:
                _log_stage(name)

        mqtt_io = self.app_context.mqtt_io

        def _publish_offline_marker():
            if mqtt_io is not None and mqtt_io.publish_offline():
                L.info("Published offline status")

        def _flush_grace():
            if self.shutdown_grace_s > 0:
                self._sleep(self.shutdown_grace_s)

        def _stop_triggers():
            for t in list(self.triggers):
                try:
                    t.stop()
                except Exception:
                    L.exception("Trigger stop failed: %r", t)

        def _cancel_inflight():
            # In-flight runs are abandoned, not drained; their cancel handlers
            # still delete the artifacts taken so far.
            n = self.app_context.dispatcher.cancel_inflight()
            if n:
                L.warning("Cancelled %d in-flight pipeline run(s)", n)

        def _stop_outputs():
            for out in reversed(self.outputs):
                try:
                    out.stop()
                except Exception:
                    L.exception("Output stop failed: %r", out)
            self.bus_output.stop()

        def _close_inference():
            if self.inference is not None:
                self.loop_runner.run_async(self.inference.close(), timeout=1.0)

        def _disconnect_mqtt():
            if mqtt_io is not None:
                mqtt_io.stop()

        # No run may publish a status after the retained Offline.
        _run_stage("triggers", _stop_triggers)
        _run_stage("inflight_runs", _cancel_inflight)
        _run_stage("offline_status", self.bus_output.mark_offline)
        _run_stage("online_marker", _publish_offline_marker)
        _run_stage("flush_grace", _flush_grace)
        _run_stage("outputs", _stop_outputs)
        _run_stage("inference_client", _close_inference)
        _run_stage("async_loop", self.loop_runner.shutdown_loop)
        _run_stage("mqtt", _disconnect_mqtt)
        L.debug(
            "Shutdown stage=total elapsed=%.1fms",
            (time.perf_counter() - stop_t0) * 1000,
        )
        L.info("Graceful shutdown completed")


__all__ = [
    "AppContext",
    "OutputHandle",
    "SystemRuntime",
    "TriggerHandle",
]
