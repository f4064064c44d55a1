# -- coding: utf-8 --

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Type
from core.registry import register_named, resolve_registered

TriggerFactory = Dict[str, Type["BaseTrigger"]]
_registry: TriggerFactory = {}


@dataclass
class TriggerConfig:
    basetopic: str = ""
    word: str = "YES"

    def __post_init__(self):
        self.basetopic = str(self.basetopic or "").strip("/")
        self.word = str(self.word or "YES").strip()


class BaseTrigger(ABC):
    def __init__(self, cfg: TriggerConfig, on_trigger: Callable[[str], bool]):
        self.cfg = cfg
        self.on_trigger = on_trigger

    @abstractmethod
    def start(self):
        pass

    @abstractmethod
    def stop(self):
        pass

    def raise_if_failed(self):
        return None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()


def register_trigger(name: str):
    return register_named(_registry, name)


def create_trigger(
    name: str, cfg: TriggerConfig, on_trigger: Callable[[str], bool], **kwargs
) -> BaseTrigger:
    cls = resolve_registered(
        _registry,
        name,
        package=__package__ or "trigger",
        unknown_label="trigger type",
    )
    return cls(cfg, on_trigger, **kwargs)


def build_trigger_config_from_loaded_config(cfg) -> TriggerConfig:
    return TriggerConfig(basetopic=cfg.mqtt.basetopic)


__all__ = [
    "TriggerConfig",
    "BaseTrigger",
    "register_trigger",
    "create_trigger",
    "build_trigger_config_from_loaded_config",
]
