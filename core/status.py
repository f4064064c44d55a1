"""Per-camera status label and statistics record.

The tracker only holds state. Callers that want a change to reach the broker
publish it themselves (see `core.pipeline`), so every publish is visible at
the call site.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone

from core.contracts import CameraStats

L = logging.getLogger("camera_ai_bridge.status")

IDLE = "Idle"
STARTING_CAPTURE = "Starting image capture"
TAKING_SNAPSHOT = "Taking snapshot"
PUBLISHING_IMAGE = "Publishing image"
PROCESSING_AI = "Processing with AI"
PUBLISHING_AI = "Publishing AI response"
CLEANING_UP = "Cleaning up"
COMPLETE = "Complete"
ERROR = "Error"
OFFLINE = "Offline"


def snapshot_progress(i: int, n: int) -> str:
    return f"{TAKING_SNAPSHOT} {i}/{n}"


def waiting_progress(i: int, n: int) -> str:
    return f"Waiting for next capture ({i}/{n})"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StatusTracker:
    def __init__(self, cameras=()):
        self._status: dict[str, str] = {}
        self._stats: dict[str, CameraStats] = {}
        for name in cameras:
            self.reset(name)

    def reset(self, camera: str):
        self._status[camera] = IDLE
        self._stats[camera] = CameraStats()

    def update_status(self, camera: str, status: str) -> str:
        self._status[camera] = status
        L.debug("Status updated for camera %s: %s", camera, status)
        return status

    def update_stats(self, camera: str, **fields) -> CameraStats:
        stats = self._stats.setdefault(camera, CameraStats())
        for key, value in fields.items():
            if key not in CameraStats.__dataclass_fields__:
                raise AttributeError(f"CameraStats has no field '{key}'")
            setattr(stats, key, value)
        L.debug("Stats updated for camera %s: %s", camera, fields)
        return dataclasses.replace(stats)

    def record_error(self, camera: str, error: BaseException | str) -> CameraStats:
        message = _describe_error(error)
        stats = self.update_stats(
            camera, last_error_date=utc_now_iso(), last_error_type=message
        )
        self.update_status(camera, ERROR)
        return stats

    def record_success(
        self, camera: str, ai_process_s: float, total_process_s: float
    ) -> CameraStats:
        stats = self.update_stats(
            camera,
            last_success_date=utc_now_iso(),
            last_ai_process_time=float(ai_process_s),
            last_total_process_time=float(total_process_s),
        )
        self.update_status(camera, COMPLETE)
        return stats

    def get_status(self, camera: str) -> str:
        return self._status.get(camera, IDLE)

    def get_stats(self, camera: str) -> CameraStats:
        stats = self._stats.get(camera)
        return dataclasses.replace(stats) if stats else CameraStats()

    def all_statuses(self) -> dict[str, str]:
        return dict(self._status)

    def all_stats(self) -> dict[str, CameraStats]:
        return {name: dataclasses.replace(s) for name, s in self._stats.items()}


def _describe_error(error: BaseException | str) -> str:
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return str(error)


__all__ = [
    "StatusTracker",
    "snapshot_progress",
    "waiting_progress",
    "utc_now_iso",
    "IDLE",
    "STARTING_CAPTURE",
    "TAKING_SNAPSHOT",
    "PUBLISHING_IMAGE",
    "PROCESSING_AI",
    "PUBLISHING_AI",
    "CLEANING_UP",
    "COMPLETE",
    "ERROR",
    "OFFLINE",
]
