from .base import (
    TriggerConfig,
    BaseTrigger,
    register_trigger,
    create_trigger,
    build_trigger_config_from_loaded_config,
)
from .gateway import TriggerGateway

# Backends (trigger.mqtt) load lazily through create_trigger().

__all__ = [
    "TriggerConfig",
    "BaseTrigger",
    "register_trigger",
    "create_trigger",
    "build_trigger_config_from_loaded_config",
    "TriggerGateway",
]
