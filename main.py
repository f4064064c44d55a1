# -- coding: utf-8 --

import argparse
import logging
import os
import signal
import time

from camera import mask_credentials
from core.config import ConfigError, load_config, validate_config
from core.runtime_assembly import build_runtime
from trigger import build_trigger_config_from_loaded_config, create_trigger

EXIT_CONFIG_ERROR = 20
EXIT_FAILURE = 1

LOG_LEVEL_ENV_VAR = "LOG_LEVEL"


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="MQTT-triggered camera snapshot to vision-model bridge",
    )
    p.add_argument(
        "--config",
        default="",
        help="Path to config YAML (default: $CONFIG_FILE or config/config.yaml)",
    )
    p.add_argument("--verbose", action="store_true", help="Debug log")
    p.add_argument(
        "--log-level", default="", help="Override log level (debug/info/warning/error)"
    )
    return p.parse_args(argv)


def setup_logging(verbose: bool, log_level: str = ""):
    if verbose:
        level = logging.DEBUG
    else:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "warn": logging.WARNING,
            "error": logging.ERROR,
            "critical": logging.CRITICAL,
        }
        level = level_map.get(str(log_level or "").strip().lower(), logging.INFO)
    # Use UTC for all %(asctime)s timestamps in logs.
    logging.Formatter.converter = time.gmtime
    logging.basicConfig(
        level=level, format="%(asctime)sZ [%(levelname)s] %(message)s", force=True
    )
    if not verbose:
        for name in ("aiohttp.access", "asyncio"):
            logging.getLogger(name).setLevel(logging.WARNING)


def main(argv=None):
    args = parse_args(argv)
    env_level = os.environ.get(LOG_LEVEL_ENV_VAR, "").strip()
    setup_logging(args.verbose, args.log_level or env_level)
    try:
        cfg = load_config(args.config or None)
        validate_config(cfg)
    except ConfigError as e:
        logging.error("Config invalid: %s", e)
        raise SystemExit(EXIT_CONFIG_ERROR) from e
    # Config-driven log level (unless overridden by CLI or environment).
    if not args.verbose and not args.log_level and not env_level:
        setup_logging(args.verbose, cfg.runtime.log_level)

    logging.info(
        "Starting: broker=%s:%d base=%s cameras=%d capture=%s http=%s runtime=%s",
        cfg.mqtt.server,
        cfg.mqtt.port,
        cfg.mqtt.basetopic,
        len(cfg.cameras),
        cfg.capture.type,
        f"{cfg.output.http.host}:{cfg.output.http.port}"
        if cfg.output.http.enabled
        else "off",
        f"{cfg.runtime.max_runtime_s}s" if cfg.runtime.max_runtime_s else "unlimited",
    )
    logging.info("Config file: %s", cfg.paths.get("main"))
    for name, cam in cfg.cameras.items():
        logging.info(
            "Camera %s: %s (captures=%d interval=%dms structured=%s)",
            name,
            mask_credentials(cam.endpoint),
            cam.captures,
            cam.interval,
            "yes" if cam.response_format else "no",
        )

    try:
        runtime = build_runtime(cfg)
        gateway = runtime.app_context.trigger_gateway

        def on_mqtt_trigger(camera):
            return gateway.report_raw_trigger(camera, "MQTT")

        triggers = [
            create_trigger(
                "mqtt",
                build_trigger_config_from_loaded_config(cfg),
                on_mqtt_trigger,
                mqtt_io=runtime.app_context.mqtt_io,
            )
        ]
        _install_signal_handlers(runtime)
        runtime.start(triggers=triggers)
        logging.info("Initialization complete, waiting for MQTT connection...")
        runtime.run(
            runtime_limit_s=cfg.runtime.max_runtime_s
            if cfg.runtime.max_runtime_s > 0
            else None
        )
        logging.info("Done")
    except KeyboardInterrupt:
        logging.info("Service STOPPED by user (Ctrl+C)")
    except Exception:
        logging.exception("Error")
        raise SystemExit(EXIT_FAILURE)


def _install_signal_handlers(runtime):
    def _handle(signum, _frame):
        logging.info(
            "Received %s, shutting down gracefully...", signal.Signals(signum).name
        )
        runtime.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _handle)


if __name__ == "__main__":
    main()
