"""Runtime assembly helpers: bus, pipeline, gateway and outputs wiring."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from camera import BaseCapture, create_capture_from_loaded_config
from core.config.schema import LoadedConfig
from core.lifecycle import LoopRunner
from core.mqtt_io import MqttIO
from core.pipeline import PipelineDispatcher, TriggerPipeline
from core.status import StatusTracker
from inference import InferenceClient, create_inference_client_from_loaded_config
from trigger import TriggerGateway

from .runtime import AppContext, SystemRuntime


@dataclass
class RuntimeBuildConfig:
    shutdown_grace_s: float = 1.0
    enable_http: bool = False
    http_host: str = "0.0.0.0"
    http_port: int = 8080


def build_runtime_config_from_loaded_config(cfg: LoadedConfig) -> RuntimeBuildConfig:
    return RuntimeBuildConfig(
        shutdown_grace_s=float(cfg.runtime.shutdown_grace_s),
        enable_http=bool(cfg.output.http.enabled),
        http_host=cfg.output.http.host,
        http_port=int(cfg.output.http.port),
    )


def build_mqtt_io(cfg: LoadedConfig) -> MqttIO:
    m = cfg.mqtt
    return MqttIO(
        m.server,
        m.port,
        m.basetopic,
        client_id=m.client,
        username=m.user or None,
        password=m.password or None,
        keepalive=m.keepalive,
        reconnect_s=m.reconnect_s,
    )


def _wire_output_channels(
    cfg: RuntimeBuildConfig,
    *,
    app_context: AppContext,
    loop_runner: LoopRunner,
) -> list:
    outputs = []
    if cfg.enable_http:
        from output.hmi import HmiOutput

        outputs.append(
            HmiOutput(
                cfg.http_host,
                cfg.http_port,
                app_context,
                loop_runner=loop_runner,
            )
        )
    return outputs


def build_runtime(
    cfg: LoadedConfig,
    *,
    capture: Optional[BaseCapture] = None,
    inference: Optional[InferenceClient] = None,
    mqtt_io: Optional[MqttIO] = None,
    loop_runner: LoopRunner | None = None,
) -> SystemRuntime:
    from output.mqtt import MqttOutput

    loop_runner = loop_runner or LoopRunner()
    build_cfg = build_runtime_config_from_loaded_config(cfg)
    capture = capture or create_capture_from_loaded_config(cfg)
    inference = inference or create_inference_client_from_loaded_config(cfg)
    mqtt_io = mqtt_io or build_mqtt_io(cfg)

    tracker = StatusTracker(cfg.cameras)
    bus_output = MqttOutput(mqtt_io, cfg.cameras, tracker, loop_runner=loop_runner)
    pipeline = TriggerPipeline(cfg.cameras, capture, inference, bus_output, tracker)
    dispatcher = PipelineDispatcher(pipeline, loop_runner)
    app_context = AppContext(
        trigger_gateway=TriggerGateway(cfg.cameras, dispatcher.dispatch),
        tracker=tracker,
        dispatcher=dispatcher,
        mqtt_io=mqtt_io,
    )
    outputs = _wire_output_channels(
        build_cfg, app_context=app_context, loop_runner=loop_runner
    )
    return SystemRuntime(
        app_context,
        bus_output,
        loop_runner,
        outputs=outputs,
        inference=inference,
        shutdown_grace_s=build_cfg.shutdown_grace_s,
    )


__all__ = [
    "RuntimeBuildConfig",
    "build_mqtt_io",
    "build_runtime",
    "build_runtime_config_from_loaded_config",
]
