# -- coding: utf-8 --

import asyncio
import logging
import os
import re
import threading

import cv2
import numpy as np

from camera.base import BaseCapture, CaptureConfig, CaptureError, register_capture

L = logging.getLogger("camera_ai_bridge.camera.mock")

_SUPPORTED_EXTS = {".jpg", ".jpeg", ".png", ".bmp"}


def _natural_key(name: str):
    parts = re.split(r"(\d+)", name)
    return [int(p) if p.isdigit() else p.lower() for p in parts]


def _resolve_image_dir(path: str) -> str:
    base = str(path or "").strip()
    if not base:
        raise CaptureError("mock capture requires capture.image_dir")
    if not os.path.isabs(base):
        base = os.path.abspath(os.path.join(os.getcwd(), base))
    if not os.path.isdir(base):
        raise CaptureError(f"mock image_dir not found: {base}")
    return base


def _list_images(root_dir: str) -> list[str]:
    files = []
    for name in os.listdir(root_dir):
        full = os.path.join(root_dir, name)
        if os.path.isfile(full) and os.path.splitext(name)[1].lower() in _SUPPORTED_EXTS:
            files.append(full)
    return sorted(files, key=lambda p: _natural_key(os.path.basename(p)))


def _imread_any(path: str) -> np.ndarray | None:
    arr = cv2.imread(path, cv2.IMREAD_COLOR)
    if arr is not None:
        return arr
    # cv2.imread cannot open some non-ASCII paths on Windows.
    data = np.fromfile(path, dtype=np.uint8)
    if data.size == 0:
        return None
    return cv2.imdecode(data, cv2.IMREAD_COLOR)


def _write_jpeg(src_path: str, out_path: str):
    arr = _imread_any(src_path)
    if arr is None:
        raise CaptureError(f"Image capture failed: cannot decode {src_path}")
    ok, buf = cv2.imencode(".jpg", arr, [int(cv2.IMWRITE_JPEG_QUALITY), 95])
    if not ok:
        raise CaptureError("Image capture failed: opencv_imencode_failed")
    with open(out_path, "wb") as f:
        f.write(buf.tobytes())


@register_capture("mock")
class MockCapture(BaseCapture):
    """Replays still images from `capture.image_dir` in natural name order.

    The stream URL is ignored; each capture yields the next file, looping at
    the end. Useful for bench runs without a live camera.
    """

    def __init__(self, cfg: CaptureConfig):
        super().__init__(cfg)
        self._paths: list[str] | None = None
        self._pos = 0
        self._lock = threading.Lock()

    def _next_source(self) -> str:
        with self._lock:
            if self._paths is None:
                root = _resolve_image_dir(self.cfg.image_dir)
                self._paths = _list_images(root)
                if not self._paths:
                    raise CaptureError(f"no images found in {root}")
            path = self._paths[self._pos % len(self._paths)]
            self._pos += 1
            return path

    async def _grab(self, stream_url: str, out_path: str) -> None:
        _ = stream_url
        src = self._next_source()
        L.debug("mock @ %s", os.path.basename(src))
        await asyncio.to_thread(_write_jpeg, src, out_path)


__all__ = ["MockCapture"]
