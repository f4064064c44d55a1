# -- coding: utf-8 --
"""Shared MQTT connection used by the MQTT trigger and the MQTT output."""

import logging
import threading
from typing import Callable, Optional

import paho.mqtt.client as mqtt

L = logging.getLogger("camera_ai_bridge.mqtt.io")

ONLINE_SUBTOPIC = "online"
ONLINE_YES = "YES"
ONLINE_NO = "NO"

MessageHandler = Callable[[str, bytes], None]


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        clean_session=True,
    )


class MqttIO:
    """One paho client per process.

    The last-will marks `<base>/online` as NO; every successful (re)connect
    publishes YES, replays the subscriptions and notifies connect listeners.
    paho's network thread runs the callbacks, so handlers must be quick and
    hand real work to the asyncio loop.
    """

    def __init__(
        self,
        host: str,
        port: int,
        basetopic: str,
        *,
        client_id: str = "",
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 60,
        reconnect_s: float = 5.0,
        client_factory: Callable[[str], mqtt.Client] = _default_client_factory,
    ):
        self.host = host
        self.port = int(port)
        self.basetopic = basetopic.strip("/")
        self.keepalive = max(int(keepalive), 1)
        self.reconnect_s = max(float(reconnect_s), 1.0)
        self._state_lock = threading.Lock()
        self._started = False
        self._connected = threading.Event()
        self._subscriptions: list[tuple[str, MessageHandler]] = []
        self._connect_listeners: list[Callable[[], None]] = []

        self._client = client_factory(client_id)
        if username:
            self._client.username_pw_set(username, password or None)
        self._client.will_set(
            self.online_topic, ONLINE_NO, qos=1, retain=True
        )
        delay = max(int(round(self.reconnect_s)), 1)
        # Fixed backoff: paho doubles from min to max, so pin both.
        self._client.reconnect_delay_set(min_delay=delay, max_delay=delay)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

    @property
    def online_topic(self) -> str:
        return self.topic(ONLINE_SUBTOPIC)

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def topic(self, *parts: str) -> str:
        return "/".join([self.basetopic, *[str(p) for p in parts]])

    def add_connect_listener(self, fn: Callable[[], None]):
        self._connect_listeners.append(fn)

    def subscribe(self, topic_filter: str, handler: MessageHandler):
        """Register `handler` for `topic_filter`; replayed on every connect."""
        with self._state_lock:
            self._subscriptions.append((topic_filter, handler))
        if self.is_connected:
            self._subscribe_now(topic_filter)

    def start(self):
        with self._state_lock:
            if self._started:
                return
            self._started = True
        L.info("Connecting to MQTT broker at %s:%d", self.host, self.port)
        L.info("Base topic configured as: %s", self.basetopic)
        # connect_async never raises on an unreachable broker; the network
        # thread keeps retrying with the configured delay.
        self._client.connect_async(self.host, self.port, keepalive=self.keepalive)
        self._client.loop_start()

    def stop(self):
        with self._state_lock:
            if not self._started:
                return
            self._started = False
        try:
            self._client.disconnect()
        finally:
            self._client.loop_stop()
            self._connected.clear()
        L.info("MQTT client disconnected")

    def publish(self, topic: str, payload, *, retain: bool = True, qos: int = 0) -> bool:
        """Fire-and-forget publish; returns False when the message was dropped."""
        if not self.is_connected:
            L.warning("Cannot publish to %s: MQTT client not connected", topic)
            return False
        try:
            info = self._client.publish(topic, payload, qos=qos, retain=retain)
        except (ValueError, OSError) as e:
            L.error("Failed to publish to %s: %s", topic, e)
            return False
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            L.error(
                "Failed to publish to %s: %s", topic, mqtt.error_string(info.rc)
            )
            return False
        if isinstance(payload, (bytes, bytearray)):
            L.debug("Published %d bytes to %s", len(payload), topic)
        else:
            L.debug("Published to %s: %r", topic, payload)
        return True

    def publish_online(self) -> bool:
        return self.publish(self.online_topic, ONLINE_YES, retain=True, qos=1)

    def publish_offline(self) -> bool:
        return self.publish(self.online_topic, ONLINE_NO, retain=True, qos=1)

    def _subscribe_now(self, topic_filter: str):
        rc, _mid = self._client.subscribe(topic_filter, qos=0)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            L.error(
                "Failed to subscribe to %s: %s", topic_filter, mqtt.error_string(rc)
            )
        else:
            L.info("Subscribed to %s", topic_filter)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            L.error("MQTT connection refused: %s; retrying", reason_code)
            return
        L.info("Connected to MQTT broker successfully")
        self._connected.set()
        self.publish_online()
        with self._state_lock:
            filters = [f for f, _ in self._subscriptions]
        for topic_filter in dict.fromkeys(filters):
            self._subscribe_now(topic_filter)
        for listener in list(self._connect_listeners):
            try:
                listener()
            except Exception:
                L.exception("MQTT connect listener failed")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected.clear()
        if reason_code.is_failure:
            L.warning(
                "MQTT connection lost (%s); reconnecting in %ss",
                reason_code,
                self.reconnect_s,
            )
        else:
            L.info("MQTT connection closed")

    def _on_message(self, client, userdata, msg):
        L.debug("Received MQTT message on %s (%d bytes)", msg.topic, len(msg.payload))
        with self._state_lock:
            subs = list(self._subscriptions)
        for topic_filter, handler in subs:
            if not mqtt.topic_matches_sub(topic_filter, msg.topic):
                continue
            try:
                handler(msg.topic, bytes(msg.payload))
            except Exception:
                L.exception("MQTT handler failed for %s", msg.topic)


__all__ = ["MqttIO", "ONLINE_YES", "ONLINE_NO"]
