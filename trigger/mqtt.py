# -- coding: utf-8 --

import logging
from typing import Optional

from core.mqtt_io import MqttIO
from trigger.base import BaseTrigger, TriggerConfig, register_trigger

L = logging.getLogger("camera_ai_bridge.trigger.mqtt")

TRIGGER_SUBTOPIC = "trigger"


def parse_trigger_topic(basetopic: str, topic: str) -> Optional[str]:
    """Return the camera name of `<base>/<camera>/trigger`, else None.

    `basetopic` may span several levels (`home/cams`); the camera is the
    single level between it and the channel.
    """
    prefix = f"{basetopic}/"
    if not topic.startswith(prefix):
        L.warning("Basetopic mismatch: expected %r, received %r", basetopic, topic)
        return None
    parts = topic[len(prefix):].split("/")
    if len(parts) != 2:
        L.warning(
            "Topic %r does not match <base>/<camera>/<channel>; ignoring", topic
        )
        return None
    camera, channel = parts
    if channel != TRIGGER_SUBTOPIC:
        L.debug("Non-trigger message on channel %r", channel)
        return None
    if not camera:
        return None
    return camera


@register_trigger("mqtt")
class MqttTrigger(BaseTrigger):
    """Turns a `YES` on `<base>/<camera>/trigger` into `on_trigger(camera)`.

    The trigger topic is also written by this service (reset to `NO` after
    every run), so only the trigger word fires; anything else is ignored.
    """

    def __init__(self, cfg: TriggerConfig, on_trigger, mqtt_io: MqttIO):
        super().__init__(cfg, on_trigger)
        self._io = mqtt_io
        self._subscribed = False
        self._active = False

    @property
    def topic_filter(self) -> str:
        return f"{self.cfg.basetopic}/+/{TRIGGER_SUBTOPIC}"

    def start(self):
        self._active = True
        if self._subscribed:
            return
        self._io.subscribe(self.topic_filter, self._on_message)
        self._subscribed = True
        L.info("MQTT trigger listening on %s", self.topic_filter)

    def stop(self):
        # paho keeps the subscription until disconnect; drop late messages here.
        if self._active:
            L.info("MQTT trigger stopped")
        self._active = False

    def _on_message(self, topic: str, payload: bytes) -> bool:
        if not self._active:
            return False
        camera = parse_trigger_topic(self.cfg.basetopic, topic)
        if camera is None:
            return False
        text = payload.decode("utf-8", errors="replace").strip()
        if text.upper() != self.cfg.word.upper():
            L.debug("Message %r on %s is not a trigger", text, topic)
            return False
        L.info("Trigger message received for camera: %s", camera)
        return bool(self.on_trigger(camera))


__all__ = ["MqttTrigger", "parse_trigger_topic"]
