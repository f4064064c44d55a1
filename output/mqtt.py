# -- coding: utf-8 --

import json
import logging
from typing import Iterable

from core import status as st
from core.contracts import CameraStats
from core.lifecycle import LoopRunner
from core.mqtt_io import MqttIO
from core.status import StatusTracker

L = logging.getLogger("camera_ai_bridge.output.mqtt")

TRIGGER_IDLE = "NO"


class MqttOutput:
    """Retained per-camera channels under `<base>/<camera>/...`."""

    def __init__(
        self,
        mqtt_io: MqttIO,
        cameras: Iterable[str],
        tracker: StatusTracker,
        *,
        loop_runner: LoopRunner,
    ):
        self.io = mqtt_io
        self.cameras = list(cameras)
        self.tracker = tracker
        self._loop_runner = loop_runner
        self._accept_connect = False
        self.io.add_connect_listener(self._on_connect)

    def start(self):
        self._accept_connect = True
        self.io.start()

    def stop(self):
        # The connection itself is closed last by the runtime.
        self._accept_connect = False

    def raise_if_failed(self):
        return None

    def publish_image(self, camera: str, data: bytes) -> bool:
        return self.io.publish(self.io.topic(camera, "image"), bytes(data), retain=True)

    def publish_ai(self, camera: str, text: str) -> bool:
        return self.io.publish(self.io.topic(camera, "ai"), text, retain=True)

    def reset_trigger(self, camera: str) -> bool:
        return self.io.publish(
            self.io.topic(camera, "trigger"), TRIGGER_IDLE, retain=True
        )

    def publish_status(self, camera: str, status: str) -> bool:
        return self.io.publish(self.io.topic(camera, "status"), status, retain=True)

    def publish_stats(self, camera: str, stats: CameraStats) -> bool:
        payload = json.dumps(stats.to_wire())
        return self.io.publish(self.io.topic(camera, "stats"), payload, retain=True)

    def initialize_channels(self):
        """Reset every camera's retained channels; stats/status mirror the tracker."""
        L.info("Initializing MQTT channels for %d camera(s)", len(self.cameras))
        for name in self.cameras:
            self.reset_trigger(name)
            self.publish_image(name, b"")
            self.publish_ai(name, "")
            self.publish_stats(name, self.tracker.get_stats(name))
            self.publish_status(name, self.tracker.get_status(name))
        L.info("Channel initialization complete")

    async def _initialize_channels_async(self):
        self.initialize_channels()

    def _on_connect(self):
        if not self._accept_connect:
            return
        # Tracker state belongs to the loop thread; paho calls us from its own.
        coro = self._initialize_channels_async()
        try:
            self._loop_runner.submit(coro)
        except RuntimeError as e:
            coro.close()
            L.warning("Skipping channel initialization: %s", e)

    async def mark_offline_async(self):
        for name in self.cameras:
            self.tracker.update_status(name, st.OFFLINE)
            self.publish_status(name, st.OFFLINE)

    def mark_offline(self, timeout: float = 1.0):
        """Set and publish `Offline` for every camera (shutdown path)."""
        self._loop_runner.run_async(self.mark_offline_async(), timeout=timeout)


__all__ = ["MqttOutput"]
