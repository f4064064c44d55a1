"""Data contracts for trigger, capture, status, and pipeline outcome channels."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class TriggerEvent:
    camera: str = ""
    trigger_seq: int = 0
    source: str = ""
    triggered_at: datetime | None = None


@dataclass(slots=True)
class CaptureArtifact:
    path: str = ""
    camera: str = ""
    index: int = 0  # 1-based position within one run
    captured_at: datetime | None = None
    size_bytes: int = 0


@dataclass(slots=True)
class CameraStats:
    last_error_date: str | None = None
    last_error_type: str | None = None
    last_success_date: str | None = None
    last_ai_process_time: float | None = None
    last_total_process_time: float | None = None

    def to_wire(self) -> dict[str, Any]:
        """camelCase payload for the stats topic; unset fields are omitted."""
        wire = {
            "lastErrorDate": self.last_error_date,
            "lastErrorType": self.last_error_type,
            "lastSuccessDate": self.last_success_date,
            "lastAiProcessTime": self.last_ai_process_time,
            "lastTotalProcessTime": self.last_total_process_time,
        }
        return {k: v for k, v in wire.items() if v is not None}


@dataclass(slots=True)
class CleanupReport:
    removed: list[str] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def merge(self, other: "CleanupReport") -> "CleanupReport":
        self.removed.extend(other.removed)
        self.errors.extend(other.errors)
        return self


@dataclass(slots=True)
class RunOutcome:
    camera: str = ""
    trigger_seq: int = 0
    ok: bool = False
    error: str | None = None
    cleanup_errors: list[tuple[str, str]] = field(default_factory=list)
    artifact_count: int = 0
    ai_process_s: float | None = None
    total_process_s: float | None = None


__all__ = [
    "TriggerEvent",
    "CaptureArtifact",
    "CameraStats",
    "CleanupReport",
    "RunOutcome",
]
