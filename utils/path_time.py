from __future__ import annotations

import itertools
import os
import re
import threading
from datetime import datetime, timezone

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_.-]")


def coerce_utc_datetime(value: datetime | None) -> datetime:
    ref = value or datetime.now(timezone.utc)
    if ref.tzinfo is None:
        ref = ref.replace(tzinfo=timezone.utc)
    return ref.astimezone(timezone.utc)


def format_artifact_filename(
    camera: str, seq: int, ext: str = ".jpg", ts_utc: datetime | None = None
) -> str:
    ref = coerce_utc_datetime(ts_utc)
    ts = ref.strftime("%Y%m%dT%H-%M-%S.%f")[:-3] + "Z"
    safe_cam = _UNSAFE_RE.sub("_", camera) or "camera"
    return f"{safe_cam}_{ts}_{int(seq):05d}{ext}"


class ArtifactNamer:
    """Hands out artifact paths under one directory, unique for the process.

    The sequence counter makes names distinct even when two captures land in
    the same millisecond.
    """

    def __init__(self, root_dir: str, ext: str = ".jpg"):
        self.root_dir = root_dir
        self.ext = ext if ext.startswith(".") else f".{ext}"
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self._dir_ready = False

    def next_path(self, camera: str, ts_utc: datetime | None = None) -> str:
        with self._lock:
            seq = next(self._seq)
            if not self._dir_ready:
                os.makedirs(self.root_dir, exist_ok=True)
                self._dir_ready = True
        name = format_artifact_filename(camera, seq, self.ext, ts_utc)
        return os.path.join(self.root_dir, name)


__all__ = ["ArtifactNamer", "coerce_utc_datetime", "format_artifact_filename"]
