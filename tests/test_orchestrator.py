"""Tests for engine.orchestrator -- run sequencing, state machine and event stream."""

import asyncio
import gc
import unittest

from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

from engine.constants import MIB
from engine.endpoints import Endpoints
from engine.errors import PhaseAbort, ProbeFailure
from engine.models import (
    LatencyResult,
    Phase,
    PhaseResult,
    ProgressSample,
    RunState,
    SpeedTestReport,
    StateChange,
)
from engine.orchestrator import (
    STEP_COMPLETE,
    STEP_DOWNLOAD,
    STEP_FAILED,
    STEP_LATENCY,
    STEP_UPLOAD,
    SpeedTest,
    SpeedTestSettings,
)
from server import app as endpoints_app
from server.app import create_app


def _app(ping=endpoints_app.ping, download=endpoints_app.download, upload=endpoints_app.upload):
    """Endpoint app with individual handlers swapped out."""
    app = web.Application()
    app[endpoints_app.FILLER_KEY] = bytes(MIB)
    app.router.add_get("/api/ping", ping)
    app.router.add_get("/api/download", download)
    app.router.add_post("/api/upload", upload)
    return app


FAST = SpeedTestSettings(
    ping_count=2,
    download_duration=0.3,
    download_connections=2,
    download_size_mb=1,
    upload_duration=0.3,
    upload_connections=2,
    upload_size=64 * 1024,
    progress_interval=0.05,
)


class OrchestratorTestCase(AioHTTPTestCase):
    async def get_application(self):
        return create_app()

    def speedtest(self, settings=FAST):
        endpoints = Endpoints.from_base_url(str(self.server.make_url("/")))
        return SpeedTest(endpoints, settings)


class TestSuccessfulRun(OrchestratorTestCase):
    async def test_run_completes(self):
        test = self.speedtest()
        states = []
        test.on_state = states.append

        report = await test.run()

        self.assertIsInstance(report, SpeedTestReport)
        self.assertIs(test.state, RunState.COMPLETE)
        self.assertEqual(test.step, STEP_COMPLETE)
        self.assertIs(test.report, report)
        self.assertGreater(report.latency_ms, 0.0)
        self.assertGreater(report.download_mbps, 0.0)
        self.assertGreater(report.upload_mbps, 0.0)
        self.assertEqual(test.download_mbps, report.download_mbps)
        self.assertEqual(test.upload_mbps, report.upload_mbps)
        self.assertEqual(test.latency_ms, report.latency_ms)

        self.assertEqual(
            [s.step for s in states],
            [STEP_LATENCY, STEP_DOWNLOAD, STEP_UPLOAD, STEP_COMPLETE],
        )
        self.assertEqual(
            [s.state for s in states],
            [RunState.TESTING] * 3 + [RunState.COMPLETE],
        )

    async def test_phases_are_sequential(self):
        test = self.speedtest()
        order = []
        test.on_result = lambda r: order.append(r)
        test.on_progress = lambda s: order.append(s)
        await test.run()

        latency_idx = next(i for i, e in enumerate(order) if isinstance(e, LatencyResult))
        dl_idx = next(i for i, e in enumerate(order)
                      if isinstance(e, PhaseResult) and e.phase is Phase.DOWNLOAD)
        for i, e in enumerate(order):
            if isinstance(e, ProgressSample) and e.phase is Phase.DOWNLOAD:
                self.assertTrue(latency_idx < i < dl_idx)
            if isinstance(e, ProgressSample) and e.phase is Phase.UPLOAD:
                self.assertGreater(i, dl_idx)

    async def test_rerun_resets_fields(self):
        test = self.speedtest()
        await test.run()
        self.assertGreater(test.download_mbps, 0.0)

        seen = []

        def on_state(change):
            if change.step == STEP_LATENCY:
                seen.append((test.latency_ms, test.download_mbps, test.upload_mbps, test.report))

        test.on_state = on_state
        await test.run()
        self.assertEqual(seen, [(0.0, 0.0, 0.0, None)])
        self.assertIs(test.state, RunState.COMPLETE)

    async def test_not_reentrant(self):
        test = self.speedtest()
        task = asyncio.create_task(test.run())
        while test.state is not RunState.TESTING:
            await asyncio.sleep(0)
        with self.assertRaises(RuntimeError):
            await test.run()
        await task
        self.assertIs(test.state, RunState.COMPLETE)

    async def test_cancel_returns_to_idle(self):
        test = self.speedtest(
            SpeedTestSettings(ping_count=1, download_duration=5.0, download_size_mb=1)
        )
        task = asyncio.create_task(test.run())
        while test.step != STEP_DOWNLOAD:
            await asyncio.sleep(0.01)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertIs(test.state, RunState.IDLE)
        self.assertIsNone(test.report)


class TestStream(OrchestratorTestCase):
    async def test_stream_events(self):
        test = self.speedtest()
        events = [e async for e in test.stream()]

        self.assertIsInstance(events[0], StateChange)
        self.assertIs(events[0].state, RunState.TESTING)
        self.assertIsInstance(events[-1], SpeedTestReport)
        self.assertIsInstance(events[-2], StateChange)
        self.assertIs(events[-2].state, RunState.COMPLETE)

        results = [e for e in events if isinstance(e, PhaseResult)]
        self.assertEqual([r.phase for r in results], [Phase.DOWNLOAD, Phase.UPLOAD])
        self.assertEqual(sum(isinstance(e, LatencyResult) for e in events), 1)

        # Callbacks are restored once the stream ends
        self.assertIsNone(test.on_state)
        self.assertIsNone(test.on_progress)

    async def test_stream_keeps_user_callbacks(self):
        test = self.speedtest()
        states = []
        test.on_state = states.append
        async for _ in test.stream():
            pass
        self.assertEqual(states[-1].state, RunState.COMPLETE)
        self.assertEqual(test.on_state, states.append)

    async def test_early_close_cancels_run(self):
        test = self.speedtest(
            SpeedTestSettings(ping_count=1, download_duration=5.0, download_size_mb=1)
        )
        stream = test.stream()
        async for event in stream:
            if isinstance(event, LatencyResult):
                break
        await stream.aclose()
        self.assertIs(test.state, RunState.IDLE)


class TestFailedRun(AioHTTPTestCase):
    async def get_application(self):
        self.ping_ok = False

        async def ping(request):
            if not self.ping_ok:
                raise web.HTTPInternalServerError()
            return web.json_response({"pong": True})

        return _app(ping=ping)

    def speedtest(self):
        endpoints = Endpoints.from_base_url(str(self.server.make_url("/")))
        return SpeedTest(endpoints, FAST)

    async def test_probe_failure_aborts(self):
        test = self.speedtest()
        states = []
        test.on_state = states.append

        with self.assertLogs("engine.orchestrator", level="ERROR"):
            with self.assertRaises(PhaseAbort) as ctx:
                await test.run()

        self.assertIsInstance(ctx.exception.__cause__, ProbeFailure)
        self.assertEqual(ctx.exception.step, STEP_LATENCY)
        self.assertIs(test.state, RunState.IDLE)
        self.assertEqual(test.step, STEP_FAILED)
        self.assertIsNone(test.report)
        self.assertIsNotNone(test.error)
        self.assertEqual(test.download_mbps, 0.0)
        self.assertEqual([s.state for s in states], [RunState.TESTING, RunState.IDLE])

    async def test_retry_after_failure(self):
        test = self.speedtest()
        with self.assertLogs("engine.orchestrator", level="ERROR"):
            with self.assertRaises(PhaseAbort):
                await test.run()

        self.ping_ok = True
        report = await test.run()
        self.assertIs(test.state, RunState.COMPLETE)
        self.assertIsNone(test.error)
        self.assertGreater(report.download_mbps, 0.0)

    async def test_stream_raises(self):
        test = self.speedtest()
        events = []
        with self.assertLogs("engine.orchestrator", level="ERROR"):
            with self.assertRaises(PhaseAbort):
                async for event in test.stream():
                    events.append(event)
        self.assertFalse(any(isinstance(e, SpeedTestReport) for e in events))
        self.assertIs(events[-1].state, RunState.IDLE)

    async def test_stream_closed_after_failure_retrieves_error(self):
        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        self.addCleanup(loop.set_exception_handler, None)

        test = self.speedtest()
        stream = test.stream()
        with self.assertLogs("engine.orchestrator", level="ERROR"):
            async for event in stream:
                if isinstance(event, StateChange) and event.state is RunState.IDLE:
                    break
            # Let the run task finish failing before the stream is closed.
            for _ in range(3):
                await asyncio.sleep(0)
            await stream.aclose()
        del stream
        gc.collect()

        self.assertIs(test.state, RunState.IDLE)
        self.assertEqual(reported, [])


class TestTransferFailuresDoNotAbort(AioHTTPTestCase):
    async def get_application(self):
        async def broken(request):
            raise web.HTTPInternalServerError()

        return _app(download=broken)

    async def test_download_zero_but_run_completes(self):
        endpoints = Endpoints.from_base_url(str(self.server.make_url("/")))
        test = SpeedTest(endpoints, FAST)
        with self.assertLogs("engine.worker", level="WARNING"):
            report = await test.run()
        self.assertIs(test.state, RunState.COMPLETE)
        self.assertEqual(report.download_mbps, 0.0)
        self.assertGreater(report.upload_mbps, 0.0)


class TestStateMachine(unittest.TestCase):
    def test_invalid_transition(self):
        test = SpeedTest(Endpoints())
        with self.assertRaises(RuntimeError):
            test._transition(RunState.COMPLETE, "done")

    def test_initial_state(self):
        test = SpeedTest(Endpoints())
        self.assertIs(test.state, RunState.IDLE)
        self.assertEqual(test.download_mbps, 0.0)
        self.assertIsNone(test.report)


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        s = SpeedTestSettings()
        self.assertEqual(s.ping_count, 5)
        self.assertEqual(s.download_duration, 8.0)
        self.assertEqual(s.download_connections, 6)
        self.assertEqual(s.download_size_mb, 10)
        self.assertEqual(s.upload_duration, 8.0)
        self.assertEqual(s.upload_connections, 4)
        self.assertEqual(s.upload_size, 2 * 1024 * 1024)

    def test_from_config(self):
        s = SpeedTestSettings.from_config({
            "ping_count": 3,
            "download_connections": 2,
            "upload_size_mb": 1,
            "base_url": "http://ignored",
            "server": None,
        })
        self.assertEqual(s.ping_count, 3)
        self.assertEqual(s.download_connections, 2)
        self.assertEqual(s.upload_size, 1024 * 1024)
        self.assertEqual(s.upload_connections, 4)

    def test_from_config_skips_none(self):
        s = SpeedTestSettings.from_config({"ping_count": None})
        self.assertEqual(s.ping_count, 5)


if __name__ == "__main__":
    unittest.main()
