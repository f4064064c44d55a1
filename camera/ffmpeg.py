# -- coding: utf-8 --

import asyncio
import logging

from camera.base import (
    BaseCapture,
    CaptureConfig,
    CaptureError,
    mask_credentials,
    register_capture,
)

L = logging.getLogger("camera_ai_bridge.camera.ffmpeg")

_STDERR_TAIL = 400


def build_ffmpeg_args(cfg: CaptureConfig, stream_url: str, out_path: str) -> list[str]:
    args = [cfg.ffmpeg_bin, "-hide_banner", "-loglevel", "error"]
    if cfg.rtsp_transport and stream_url.lower().startswith("rtsp"):
        args += ["-rtsp_transport", cfg.rtsp_transport]
    # Highest quality single frame.
    args += [
        "-i",
        stream_url,
        "-vframes",
        "1",
        "-q:v",
        "1",
        "-compression_level",
        "0",
        "-y",
        out_path,
    ]
    return args


@register_capture("ffmpeg")
class FfmpegCapture(BaseCapture):
    async def _grab(self, stream_url: str, out_path: str) -> None:
        args = build_ffmpeg_args(self.cfg, stream_url, out_path)
        L.debug(
            "Executing ffmpeg: %s",
            " ".join(mask_credentials(a) if a == stream_url else a for a in args),
        )
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CaptureError(f"Image capture failed: cannot run {args[0]} ({e})") from e

        timeout = self.cfg.timeout_s if self.cfg.timeout_s > 0 else None
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            _kill(proc)
            await proc.wait()
            raise CaptureError(
                f"Image capture timed out after {self.cfg.timeout_s:g}s"
            ) from e
        except asyncio.CancelledError:
            _kill(proc)
            raise

        if proc.returncode != 0:
            tail = (stderr or b"").decode("utf-8", errors="replace").strip()
            tail = tail.replace(stream_url, mask_credentials(stream_url))
            L.error(
                "ffmpeg exited with %s for %s: %s",
                proc.returncode,
                mask_credentials(stream_url),
                tail[-_STDERR_TAIL:],
            )
            raise CaptureError(f"Image capture failed (ffmpeg exit {proc.returncode})")


def _kill(proc):
    try:
        proc.kill()
    except ProcessLookupError:
        pass


__all__ = ["FfmpegCapture", "build_ffmpeg_args"]
