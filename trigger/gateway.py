import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Iterable

from core.contracts import TriggerEvent

L = logging.getLogger("camera_ai_bridge.gateway")


class TriggerGateway:
	"""Single entry point for every trigger source (MQTT, WEB).

	Checks the camera against configuration, stamps a sequence number and a
	UTC timestamp, then hands the event to `dispatch`.
	"""

	def __init__(
		self,
		cameras: Iterable[str],
		dispatch: Callable[[TriggerEvent], object],
	):
		self.cameras = frozenset(cameras)
		self.dispatch = dispatch
		self._lock = threading.Lock()
		self._seq = 0

	def report_raw_trigger(self, camera: str, source: str = "MQTT") -> bool:
		if camera not in self.cameras:
			L.warning("No configuration found for camera: %s", camera)
			return False
		with self._lock:
			self._seq += 1
			event = TriggerEvent(
				camera=camera,
				trigger_seq=self._seq,
				source=source,
				triggered_at=datetime.now(timezone.utc),
			)
		L.debug("[%5s] Trigger accepted for %s from %s", event.trigger_seq, camera, source)
		self.dispatch(event)
		return True

	def reset(self):
		with self._lock:
			self._seq = 0


__all__ = ["TriggerGateway"]
