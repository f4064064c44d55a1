"""Runtime config value validation."""

from __future__ import annotations

from typing import Any

from .schema import ConfigError, LoadedConfig

_LOG_LEVELS = {"debug", "info", "warning", "warn", "error", "critical"}


def validate_config(cfg: LoadedConfig) -> None:
    # runtime
    _require_choice("runtime.log_level", cfg.runtime.log_level, _LOG_LEVELS)
    _require_float("runtime.shutdown_grace_s", cfg.runtime.shutdown_grace_s, min_v=0.0)
    _require_float("runtime.max_runtime_s", cfg.runtime.max_runtime_s, min_v=0.0)
    _require_str("runtime.temp_dir", cfg.runtime.temp_dir)

    # mqtt
    _require_port("mqtt.port", cfg.mqtt.port)
    _require_int("mqtt.keepalive", cfg.mqtt.keepalive, min_v=1)
    _require_float("mqtt.reconnect_s", cfg.mqtt.reconnect_s, min_v=0.1)
    _require_str("mqtt.client", cfg.mqtt.client)

    # openai
    _require_float("openai.timeout_s", cfg.openai.timeout_s, min_v=1.0)
    _require_int("openai.max_tokens", cfg.openai.max_tokens, min_v=1)

    # capture
    _require_float("capture.timeout_s", cfg.capture.timeout_s, min_v=0.0)
    _require_str("capture.ffmpeg_bin", cfg.capture.ffmpeg_bin)

    # cameras
    for name, cam in cfg.cameras.items():
        cam.captures = _require_int(f"cameras.{name}.captures", cam.captures, min_v=1)
        cam.interval = _require_int(f"cameras.{name}.interval", cam.interval, min_v=0)
        _require_str(f"cameras.{name}.endpoint", cam.endpoint)
        _require_str(f"cameras.{name}.prompt", cam.prompt)

    # output
    if cfg.output.http.enabled:
        _require_port("output.http.port", cfg.output.http.port)


def _require_int(
    name: str, value: Any, *, min_v: int | None = None, max_v: int | None = None
) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer")
    try:
        iv = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer") from e
    if min_v is not None and iv < min_v:
        op = ">=" if min_v != 1 else ">"
        threshold = min_v if min_v != 1 else 0
        raise ConfigError(f"{name} must be {op} {threshold}")
    if max_v is not None and iv > max_v:
        raise ConfigError(f"{name} must be <= {max_v}")
    return iv


def _require_float(
    name: str, value: Any, *, min_v: float | None = None, max_v: float | None = None
) -> float:
    try:
        fv = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number") from e
    if min_v is not None and fv < min_v:
        raise ConfigError(f"{name} must be >= {min_v:g}")
    if max_v is not None and fv > max_v:
        raise ConfigError(f"{name} must be <= {max_v:g}")
    return fv


def _require_port(name: str, value: Any) -> int:
    return _require_int(name, value, min_v=1, max_v=65535)


def _require_str(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{name} must be a non-empty string")
    return value


def _require_choice(name: str, value: Any, choices: set[str]) -> str:
    val = str(value or "").strip().lower()
    if val not in choices:
        raise ConfigError(f"{name} must be one of {sorted(choices)}")
    return val


__all__ = ["validate_config"]
