# -- coding: utf-8 --

import argparse
import datetime

import paho.mqtt.client as mqtt


def _format_ts() -> str:
	ts = datetime.datetime.now()
	return f"{ts:%Y-%m-%d %H:%M:%S}.{ts.microsecond // 1000:03d}"


def main():
	p = argparse.ArgumentParser(description="Publish a retained trigger for one camera")
	p.add_argument('--host', default='127.0.0.1', help='MQTT broker host')
	p.add_argument('--port', type=int, default=1883, help='MQTT broker port')
	p.add_argument('--base', default='camera-ai', help='Base topic')
	p.add_argument('--camera', required=True, help='Camera name')
	p.add_argument('--word', default='YES', help='Trigger payload')
	p.add_argument('--user', default='', help='Broker username')
	p.add_argument('--password', default='', help='Broker password')
	args = p.parse_args()

	topic = f"{args.base.strip('/')}/{args.camera}/trigger"
	client = mqtt.Client(callback_api_version=mqtt.CallbackAPIVersion.VERSION2)
	if args.user:
		client.username_pw_set(args.user, args.password or None)
	client.connect(args.host, args.port, keepalive=10)
	print(f"{_format_ts()} CONNECT {args.host}:{args.port}")
	client.loop_start()
	try:
		info = client.publish(topic, args.word, qos=1, retain=True)
		info.wait_for_publish(timeout=5.0)
		print(f"{_format_ts()} PUBLISH {topic} payload={args.word!r} rc={info.rc}")
	finally:
		client.disconnect()
		client.loop_stop()
	print(f"{_format_ts()} CLOSE {args.host}:{args.port}")


if __name__ == "__main__":
	main()
