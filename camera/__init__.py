from .base import (
    CaptureConfig,
    CaptureError,
    BaseCapture,
    build_capture_config,
    register_capture,
    create_capture,
    create_capture_from_loaded_config,
    mask_credentials,
)

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
