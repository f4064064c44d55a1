# -- coding: utf-8 --

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Type
from urllib.parse import urlsplit, urlunsplit

from core.contracts import CaptureArtifact, CleanupReport
from core.registry import register_named, resolve_registered
from utils.path_time import ArtifactNamer, coerce_utc_datetime

L = logging.getLogger("camera_ai_bridge.camera")

CaptureFactory = Dict[str, Type["BaseCapture"]]
_registry: CaptureFactory = {}

ProgressCallback = Callable[[int, int], Optional[Awaitable[None]]]


class CaptureError(RuntimeError):
    """The external tool could not produce a frame."""


@dataclass
class CaptureConfig:
    temp_dir: str = "tmp"
    ffmpeg_bin: str = "ffmpeg"
    rtsp_transport: str = "tcp"
    timeout_s: float = 0.0
    image_dir: str = ""
    ext: str = ".jpg"


def build_capture_config(cfg_block, *, temp_dir: str) -> CaptureConfig:
    return CaptureConfig(
        temp_dir=str(temp_dir or "tmp"),
        ffmpeg_bin=str(cfg_block.ffmpeg_bin or "ffmpeg"),
        rtsp_transport=str(cfg_block.rtsp_transport or ""),
        timeout_s=float(cfg_block.timeout_s or 0.0),
        image_dir=str(cfg_block.image_dir or ""),
    )


def mask_credentials(url: str) -> str:
    """Replace the password part of a stream URL with ***."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<unparseable url>"
    if parts.password is None:
        return url
    host = parts.hostname or ""
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    netloc = f"{parts.username or ''}:***@{host}"
    return urlunsplit(parts._replace(netloc=netloc))


class BaseCapture(ABC):
    def __init__(self, cfg: CaptureConfig):
        self.cfg = cfg
        self.namer = ArtifactNamer(cfg.temp_dir, ext=cfg.ext)

    @abstractmethod
    async def _grab(self, stream_url: str, out_path: str) -> None:
        """Write exactly one still image to out_path or raise CaptureError."""

    async def capture_once(
        self, stream_url: str, *, camera: str, index: int = 1
    ) -> CaptureArtifact:
        out_path = self.namer.next_path(camera)
        L.info(
            "Capturing frame for %s from %s -> %s",
            camera,
            mask_credentials(stream_url),
            out_path,
        )
        try:
            await self._grab(stream_url, out_path)
            size = os.path.getsize(out_path) if os.path.exists(out_path) else 0
            if size <= 0:
                raise CaptureError("Image capture produced no image")
        except (CaptureError, asyncio.CancelledError):
            self._discard_partial(out_path)
            raise
        except Exception as e:
            self._discard_partial(out_path)
            raise CaptureError(f"Image capture failed: {e}") from e

        artifact = CaptureArtifact(
            path=out_path,
            camera=camera,
            index=index,
            captured_at=coerce_utc_datetime(None),
            size_bytes=size,
        )
        L.info("Image captured for %s: %s (%d bytes)", camera, out_path, size)
        return artifact

    async def capture_sequence(
        self,
        stream_url: str,
        *,
        camera: str,
        count: int,
        interval_ms: int,
        on_progress: ProgressCallback | None = None,
    ) -> list[CaptureArtifact]:
        """Capture `count` frames spaced by `interval_ms`, in order.

        On failure every artifact already taken in this call is deleted before
        the CaptureError propagates.
        """
        count = max(int(count), 1)
        artifacts: list[CaptureArtifact] = []
        try:
            for i in range(1, count + 1):
                artifacts.append(
                    await self.capture_once(stream_url, camera=camera, index=i)
                )
                if on_progress is not None:
                    res = on_progress(i, count)
                    if asyncio.iscoroutine(res):
                        await res
                if i < count and interval_ms > 0:
                    await asyncio.sleep(interval_ms / 1000.0)
        except (Exception, asyncio.CancelledError):
            self.cleanup(artifacts)
            raise
        return artifacts

    def cleanup(self, artifacts) -> CleanupReport:
        """Best-effort removal; failures are reported, never raised."""
        report = CleanupReport()
        for art in artifacts:
            path = art.path if isinstance(art, CaptureArtifact) else str(art)
            try:
                os.remove(path)
                report.removed.append(path)
                L.debug("Temporary image file deleted: %s", path)
            except FileNotFoundError:
                L.warning("Temporary image file not found for deletion: %s", path)
            except OSError as e:
                report.errors.append((path, str(e)))
                L.error("Failed to delete temporary image file %s: %s", path, e)
        return report

    def _discard_partial(self, path: str):
        try:
            os.remove(path)
            L.debug("Cleaned up partial file: %s", path)
        except FileNotFoundError:
            pass
        except OSError as e:
            L.warning("Failed to clean up partial file %s: %s", path, e)


def register_capture(name: str):
    return register_named(_registry, name)


def create_capture(name: str, cfg: CaptureConfig) -> BaseCapture:
    cls = resolve_registered(
        _registry,
        name,
        package=__package__ or "camera",
        unknown_label="capture type",
    )
    return cls(cfg)


def create_capture_from_loaded_config(cfg) -> BaseCapture:
    cap_cfg = build_capture_config(cfg.capture, temp_dir=cfg.runtime.temp_dir)
    return create_capture(cfg.capture.type, cap_cfg)


__all__ = [
    "CaptureConfig",
    "CaptureError",
    "BaseCapture",
    "build_capture_config",
    "register_capture",
    "create_capture",
    "create_capture_from_loaded_config",
    "mask_credentials",
]
