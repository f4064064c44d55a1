"""Typed config schema blocks shared by loader/validator/runtime."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class ConfigError(Exception):
    pass


@dataclass
class RuntimeConfig:
    log_level: str = "info"
    temp_dir: str = "tmp"
    shutdown_grace_s: float = 1.0
    max_runtime_s: float = 0.0


@dataclass
class MqttConfigBlock:
    server: str = ""
    port: int = 1883
    basetopic: str = ""
    user: str = ""
    password: str = ""
    client: str = "camera-ai-bridge"
    keepalive: int = 60
    reconnect_s: float = 5.0


@dataclass
class OpenAiConfigBlock:
    endpoint: str = ""
    api_token: str = ""
    model: str = ""
    backend: str = "openai_chat"
    timeout_s: float = 60.0
    max_tokens: int = 300


@dataclass
class CaptureConfigBlock:
    type: str = "ffmpeg"
    ffmpeg_bin: str = "ffmpeg"
    rtsp_transport: str = "tcp"
    timeout_s: float = 0.0
    image_dir: str = ""


@dataclass
class CameraConfigBlock:
    name: str = ""
    endpoint: str = ""
    prompt: str = ""
    captures: int = 1
    interval: int = 1000
    output: Optional[Dict[str, Any]] = None
    # Derived from `output` at load time.
    response_format: Optional[Dict[str, Any]] = None


@dataclass
class OutputHttpConfigBlock:
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class OutputConfigBlock:
    http: OutputHttpConfigBlock = field(default_factory=OutputHttpConfigBlock)


@dataclass
class LoadedConfig:
    runtime: RuntimeConfig
    mqtt: MqttConfigBlock
    openai: OpenAiConfigBlock
    capture: CaptureConfigBlock
    cameras: Dict[str, CameraConfigBlock]
    output: OutputConfigBlock
    paths: Dict[str, str] = field(default_factory=dict)


__all__ = [
    "ConfigError",
    "RuntimeConfig",
    "MqttConfigBlock",
    "OpenAiConfigBlock",
    "CaptureConfigBlock",
    "CameraConfigBlock",
    "OutputHttpConfigBlock",
    "OutputConfigBlock",
    "LoadedConfig",
]
