"""YAML loader and section builders for runtime configuration."""

from __future__ import annotations

import os
from typing import Any

import yaml

from .response_format import build_response_format
from .schema import (
    CameraConfigBlock,
    CaptureConfigBlock,
    ConfigError,
    LoadedConfig,
    MqttConfigBlock,
    OpenAiConfigBlock,
    OutputConfigBlock,
    OutputHttpConfigBlock,
    RuntimeConfig,
)

DEFAULT_CONFIG_PATH = os.path.join("config", "config.yaml")
CONFIG_ENV_VAR = "CONFIG_FILE"

_CAMERA_KEYS = {"endpoint", "prompt", "captures", "interval", "output"}


def resolve_config_path(path: str | None = None) -> str:
    """CLI path wins, then $CONFIG_FILE, then config/config.yaml."""
    if path:
        return path
    env_path = os.environ.get(CONFIG_ENV_VAR, "").strip()
    return env_path or DEFAULT_CONFIG_PATH


def load_config(path: str | None = None) -> LoadedConfig:
    config_path = resolve_config_path(path)
    if not os.path.isfile(config_path):
        raise ConfigError(f"Configuration file not found: {config_path}")
    data = _read_yaml(config_path)

    missing = [s for s in ("mqtt", "openai", "cameras") if not data.get(s)]
    if missing:
        raise ConfigError(
            f"Missing required sections ({', '.join(missing)}) in {config_path}"
        )
    _validate_allowed_keys(
        data,
        {"mqtt", "openai", "cameras", "capture", "runtime", "output"},
        "<root>",
        config_path,
    )

    runtime = _build_dataclass(
        RuntimeConfig, _section(data, "runtime", config_path), config_path, "runtime"
    )
    mqtt = _build_mqtt_config(_section(data, "mqtt", config_path), config_path)
    openai = _build_dataclass(
        OpenAiConfigBlock, _section(data, "openai", config_path), config_path, "openai"
    )
    capture = _build_dataclass(
        CaptureConfigBlock,
        _section(data, "capture", config_path),
        config_path,
        "capture",
    )
    cameras = _build_cameras(_section(data, "cameras", config_path), config_path)
    output = _build_output_config(_section(data, "output", config_path), config_path)

    if not mqtt.server or not mqtt.basetopic:
        raise ConfigError(
            f"Invalid MQTT configuration: missing server or basetopic in {config_path}"
        )
    if not openai.endpoint or not openai.api_token or not openai.model:
        raise ConfigError(
            "Invalid OpenAI configuration: missing endpoint, api_token, or model "
            f"in {config_path}"
        )

    return LoadedConfig(
        runtime=runtime,
        mqtt=mqtt,
        openai=openai,
        capture=capture,
        cameras=cameras,
        output=output,
        paths={"main": config_path},
    )


def _read_yaml(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"YAML root must be a mapping: {path}")
    return data


def _section(data: dict[str, Any], name: str, path: str) -> dict[str, Any]:
    block = data.get(name)
    if block is None:
        return {}
    if not isinstance(block, dict):
        raise ConfigError(f"'{name}' must be a mapping in {path}")
    return block


def _build_dataclass(cls, data: dict[str, Any], path: str, section: str):
    obj = cls()
    fields = cls.__dataclass_fields__
    for k, v in (data or {}).items():
        if k in fields:
            setattr(obj, k, v)
        else:
            raise ConfigError(f"Unknown field {section}.{k} in {path}")
    return obj


def _validate_allowed_keys(
    data: dict[str, Any], allowed_keys: set[str], section: str, path: str
) -> None:
    for key in data.keys():
        if key not in allowed_keys:
            raise ConfigError(f"Unknown field {section}.{key} in {path}")


def _build_mqtt_config(data: dict[str, Any], path: str) -> MqttConfigBlock:
    cfg = _build_dataclass(MqttConfigBlock, data, path, "mqtt")
    if isinstance(cfg.port, str):
        try:
            cfg.port = int(cfg.port.strip(), 10)
        except ValueError as e:
            raise ConfigError("MQTT port must be a valid number") from e
    cfg.basetopic = str(cfg.basetopic or "").strip().strip("/")
    cfg.user = "" if cfg.user is None else str(cfg.user)
    cfg.password = "" if cfg.password is None else str(cfg.password)
    return cfg


def _build_cameras(data: dict[str, Any], path: str) -> dict[str, CameraConfigBlock]:
    cameras: dict[str, CameraConfigBlock] = {}
    for raw_name, block in data.items():
        name = str(raw_name)
        if not name or "/" in name or "+" in name or "#" in name:
            raise ConfigError(f"Invalid camera name {name!r} in {path}")
        section = f"cameras.{name}"
        if not isinstance(block, dict):
            raise ConfigError(f"'{section}' must be a mapping in {path}")
        _validate_allowed_keys(block, _CAMERA_KEYS, section, path)
        cam = CameraConfigBlock(name=name)
        for key in _CAMERA_KEYS:
            if block.get(key) is not None:
                setattr(cam, key, block[key])
        if not cam.endpoint:
            raise ConfigError(f"{section}.endpoint is required in {path}")
        if not cam.prompt:
            raise ConfigError(f"{section}.prompt is required in {path}")
        if cam.output is not None:
            cam.response_format = build_response_format(name, cam.output)
        cameras[name] = cam
    if not cameras:
        raise ConfigError(f"No cameras configured in {path}")
    return cameras


def _build_output_config(data: dict[str, Any], path: str) -> OutputConfigBlock:
    cfg = OutputConfigBlock()
    _validate_allowed_keys(data, {"http"}, "output", path)
    block = data.get("http")
    if block is not None:
        if not isinstance(block, dict):
            raise ConfigError(f"'output.http' must be a mapping in {path}")
        cfg.http = _build_dataclass(OutputHttpConfigBlock, block, path, "output.http")
    return cfg


__all__ = ["load_config", "resolve_config_path", "DEFAULT_CONFIG_PATH"]
