# -- coding: utf-8 --

import argparse
import datetime

import paho.mqtt.client as mqtt


def _format_ts() -> str:
    ts = datetime.datetime.now()
    return f"{ts:%Y-%m-%d %H:%M:%S}.{ts.microsecond // 1000:03d}"


def _preview_bytes(data: bytes, max_preview: int) -> tuple[bytes, bool]:
    if max_preview <= 0 or len(data) <= max_preview:
        return data, False
    return data[:max_preview], True


def _is_binary_channel(topic: str) -> bool:
    return topic.endswith("/image")


def format_message(topic: str, payload: bytes, retained: bool, max_preview: int) -> str:
    flag = " (retained)" if retained else ""
    if _is_binary_channel(topic):
        head = payload[:4].hex(" ")
        return f"{_format_ts()} {topic}{flag} len={len(payload)} bytes head={head}"
    preview, truncated = _preview_bytes(payload, max_preview)
    suffix = "..." if truncated else ""
    text = preview.decode("utf-8", errors="replace")
    return f"{_format_ts()} {topic}{flag} {text!r}{suffix}"


def main():
    p = argparse.ArgumentParser(
        description="Print every message under the bridge's base topic"
    )
    p.add_argument("--host", default="127.0.0.1", help="MQTT broker host")
    p.add_argument("--port", type=int, default=1883, help="MQTT broker port")
    p.add_argument("--base", default="camera-ai", help="Base topic")
    p.add_argument("--user", default="", help="Broker username")
    p.add_argument("--password", default="", help="Broker password")
    p.add_argument(
        "--max-preview", type=int, default=200, help="Max payload bytes to print"
    )
    args = p.parse_args()

    topic_filter = f"{args.base.strip('/')}/#"

    def on_connect(client, userdata, flags, reason_code, properties=None):
        print(f"{_format_ts()} CONNECT {args.host}:{args.port} rc={reason_code}", flush=True)
        client.subscribe(topic_filter)

    def on_message(client, userdata, msg):
        print(
            format_message(msg.topic, msg.payload, msg.retain, args.max_preview),
            flush=True,
        )

    client = mqtt.Client(callback_api_version=mqtt.CallbackAPIVersion.VERSION2)
    if args.user:
        client.username_pw_set(args.user, args.password or None)
    client.on_connect = on_connect
    client.on_message = on_message
    client.connect(args.host, args.port, keepalive=30)
    try:
        client.loop_forever()
    except KeyboardInterrupt:
        pass
    finally:
        client.disconnect()


if __name__ == "__main__":
    main()
