import unittest

from aiohttp import test_utils

from core.runtime import AppContext, SystemRuntime
from core.status import StatusTracker
from output.hmi import HmiOutput
from trigger import TriggerGateway


class _Recorder:
    def __init__(self):
        self.calls: list[str] = []


class _FakeBusOutput:
    def __init__(self, rec: _Recorder):
        self.rec = rec

    def start(self):
        self.rec.calls.append("bus.start")

    def stop(self):
        self.rec.calls.append("bus.stop")

    def raise_if_failed(self):
        return None

    def mark_offline(self):
        self.rec.calls.append("cameras.offline")


class _FakeMqttIO:
    def __init__(self, rec: _Recorder, connected: bool = True):
        self.rec = rec
        self.is_connected = connected

    def publish_offline(self):
        self.rec.calls.append("online.NO")
        return True

    def stop(self):
        self.rec.calls.append("mqtt.disconnect")


class _FakeDispatcher:
    def __init__(self, rec: _Recorder):
        self.rec = rec
        self.events = []

    def dispatch(self, event):
        self.events.append(event)

    def cancel_inflight(self):
        self.rec.calls.append("runs.cancel")
        return 1


class _FakeLoopRunner:
    def __init__(self, rec: _Recorder):
        self.rec = rec

    def run_async(self, coro, timeout=None):
        coro.close()
        self.rec.calls.append("loop.run_async")

    def shutdown_loop(self, timeout: float = 2.0):
        self.rec.calls.append("loop.shutdown")


class _FakeHandle:
    def __init__(self, rec: _Recorder, name: str, fail_stop: bool = False):
        self.rec = rec
        self.name = name
        self.fail_stop = fail_stop
        self.failed: Exception | None = None

    def start(self):
        self.rec.calls.append(f"{self.name}.start")

    def stop(self):
        self.rec.calls.append(f"{self.name}.stop")
        if self.fail_stop:
            raise RuntimeError("stop failed")

    def raise_if_failed(self):
        if self.failed is not None:
            raise self.failed


class _FakeInference:
    async def close(self):
        return None


def _build(rec: _Recorder, **kwargs):
    dispatcher = _FakeDispatcher(rec)
    ctx = AppContext(
        trigger_gateway=TriggerGateway(["front"], dispatcher.dispatch),
        tracker=StatusTracker(["front"]),
        dispatcher=dispatcher,
        mqtt_io=_FakeMqttIO(rec),
    )
    return SystemRuntime(
        ctx,
        _FakeBusOutput(rec),
        _FakeLoopRunner(rec),
        sleep=lambda s: rec.calls.append(f"sleep {s:g}"),
        **kwargs,
    )


class TestSystemRuntime(unittest.TestCase):
    def test_shutdown_runs_stages_in_order(self):
        rec = _Recorder()
        runtime = _build(
            rec,
            outputs=[_FakeHandle(rec, "http")],
            inference=_FakeInference(),
            shutdown_grace_s=1.0,
        )
        runtime.start(triggers=[_FakeHandle(rec, "trigger")])
        rec.calls.clear()

        runtime.stop()

        self.assertEqual(
            rec.calls,
            [
                "trigger.stop",
                "runs.cancel",
                "cameras.offline",
                "online.NO",
                "sleep 1",
                "http.stop",
                "bus.stop",
                "loop.run_async",
                "loop.shutdown",
                "mqtt.disconnect",
            ],
        )

    def test_failing_stage_does_not_block_later_stages(self):
        rec = _Recorder()
        runtime = _build(rec)
        runtime.start(triggers=[_FakeHandle(rec, "trigger", fail_stop=True)])

        runtime.stop()

        self.assertIn("loop.shutdown", rec.calls)
        self.assertEqual(rec.calls[-1], "mqtt.disconnect")

    def test_stop_is_idempotent_and_single_use(self):
        rec = _Recorder()
        runtime = _build(rec)
        runtime.start()
        runtime.stop()
        n = len(rec.calls)

        runtime.stop()

        self.assertEqual(len(rec.calls), n)
        with self.assertRaises(RuntimeError):
            runtime.start()

    def test_run_stops_when_requested(self):
        rec = _Recorder()
        runtime = _build(rec, shutdown_grace_s=0)
        runtime.start()
        runtime.request_stop()

        runtime.run()

        self.assertEqual(rec.calls[-1], "mqtt.disconnect")
        self.assertNotIn("sleep 0", rec.calls)

    def test_run_respects_runtime_limit(self):
        rec = _Recorder()
        runtime = _build(rec, shutdown_grace_s=0)
        runtime.start()

        runtime.run(runtime_limit_s=0.05)

        self.assertTrue(runtime.stop_requested)
        self.assertIn("cameras.offline", rec.calls)

    def test_failed_trigger_surfaces_from_run(self):
        rec = _Recorder()
        runtime = _build(rec, shutdown_grace_s=0)
        trig = _FakeHandle(rec, "trigger")
        runtime.start(triggers=[trig])
        trig.failed = RuntimeError("listener died")

        with self.assertRaisesRegex(RuntimeError, "listener died"):
            runtime.run()

        self.assertEqual(rec.calls[-1], "mqtt.disconnect")

    def test_start_failure_rolls_back(self):
        rec = _Recorder()
        runtime = _build(rec, shutdown_grace_s=0)

        class _Boom(_FakeHandle):
            def start(self):
                raise OSError("address in use")

        with self.assertRaises(OSError):
            runtime.start(triggers=[_Boom(rec, "trigger")])

        self.assertEqual(rec.calls[-1], "mqtt.disconnect")


class TestStatusApi(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        rec = _Recorder()
        self.dispatcher = _FakeDispatcher(rec)
        self.tracker = StatusTracker(["front", "drive"])
        ctx = AppContext(
            trigger_gateway=TriggerGateway(["front", "drive"], self.dispatcher.dispatch),
            tracker=self.tracker,
            dispatcher=self.dispatcher,
            mqtt_io=_FakeMqttIO(rec, connected=True),
        )
        hmi = HmiOutput("127.0.0.1", 0, ctx, loop_runner=_FakeLoopRunner(rec))
        self.client = test_utils.TestClient(test_utils.TestServer(hmi.server.app))
        await self.client.start_server()

    async def asyncTearDown(self):
        await self.client.close()

    async def test_status_lists_cameras_and_connection(self):
        self.tracker.record_success("front", 1.0, 2.0)

        resp = await self.client.get("/status")
        data = await resp.json()

        self.assertEqual(resp.status, 200)
        self.assertTrue(data["mqtt_connected"])
        self.assertEqual(data["cameras"]["front"]["status"], "Complete")
        self.assertEqual(data["cameras"]["front"]["stats"]["lastAiProcessTime"], 1.0)
        self.assertEqual(data["cameras"]["drive"], {"status": "Idle", "stats": {}})

    async def test_trigger_goes_through_gateway(self):
        resp = await self.client.post("/trigger/front")
        data = await resp.json()

        self.assertTrue(data["accepted"])
        self.assertEqual(len(self.dispatcher.events), 1)
        self.assertEqual(self.dispatcher.events[0].source, "WEB")

    async def test_trigger_for_unknown_camera_is_rejected(self):
        resp = await self.client.post("/trigger/garage")
        data = await resp.json()

        self.assertFalse(data["accepted"])
        self.assertEqual(self.dispatcher.events, [])


if __name__ == "__main__":
    unittest.main()
