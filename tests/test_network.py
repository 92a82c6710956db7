from __future__ import annotations

import asyncio
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import httpx
import pytest

from interaction_engine.http_executor import ExecutionResult, ThreadedHttpExecutor
from interaction_engine.models import NetworkStats
from interaction_engine.network import NetworkCallRecorder

from conftest import FakeClock


def _start_test_server() -> HTTPServer:
    class Handler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802 - HTTP handler requirement
            self.send_response(500 if self.path == "/fail" else 200)
            self.send_header("Content-Type", "application/json")
            self.end_headers()
            self.wfile.write(b"{}")

        def log_message(self, format: str, *args: object) -> None:  # pragma: no cover - silence logs
            return

    server = HTTPServer(("127.0.0.1", 0), Handler)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server


def test_stats_are_zero_when_nothing_recorded() -> None:
    assert NetworkCallRecorder(FakeClock()).stats() == NetworkStats(total=0, successful=0, failed=0, average_duration=0)


@pytest.mark.asyncio
async def test_success_and_failure_average_duration(clock: FakeClock) -> None:
    recorder = NetworkCallRecorder(clock)

    async def executor(method: str, url: str, **kwargs) -> httpx.Response:
        if url.endswith("/down"):
            await clock.sleep(50)
            raise httpx.ConnectError("connection refused")
        await clock.sleep(100)
        return httpx.Response(200)

    request = recorder.instrument(executor)
    response = await request("get", "https://api.test/ok")
    with pytest.raises(httpx.ConnectError):
        await request("POST", "https://api.test/down")

    assert response.status_code == 200
    assert recorder.stats() == NetworkStats(total=2, successful=1, failed=1, average_duration=75)
    ok, down = recorder.calls()
    assert (ok.method, ok.status_code, ok.kind, ok.duration) == ("GET", 200, "simple", 100)
    assert down.error == "connection refused"
    assert down.status_code is None


@pytest.mark.asyncio
async def test_http_error_status_counts_as_failure(clock: FakeClock) -> None:
    recorder = NetworkCallRecorder(clock)
    transport = httpx.MockTransport(lambda request: httpx.Response(404 if request.url.path == "/missing" else 201))

    async with httpx.AsyncClient(transport=transport, base_url="https://api.test") as client:
        request = recorder.instrument(client.request)
        await request("POST", "/items")
        await request("GET", "/missing")

    created, missing = recorder.calls()
    assert created.success and created.status_code == 201
    assert not missing.success and missing.status_code == 404
    assert missing.error is None


@pytest.mark.asyncio
async def test_overlapping_calls_keep_their_own_timing(clock: FakeClock) -> None:
    recorder = NetworkCallRecorder(clock)
    gates = {"/a": asyncio.Event(), "/b": asyncio.Event()}

    async def executor(method: str, url: str) -> httpx.Response:
        await gates[url].wait()
        return httpx.Response(200)

    request = recorder.instrument(executor)
    task_a = asyncio.create_task(request("GET", "/a"))
    await asyncio.sleep(0)
    clock.advance(10)
    task_b = asyncio.create_task(request("GET", "/b"))
    await asyncio.sleep(0)
    clock.advance(40)
    gates["/b"].set()
    await task_b
    clock.advance(50)
    gates["/a"].set()
    await task_a

    by_url = {call.url: call for call in recorder.calls()}
    assert (by_url["/a"].start, by_url["/a"].end, by_url["/a"].duration) == (0, 100, 100)
    assert (by_url["/b"].start, by_url["/b"].end, by_url["/b"].duration) == (10, 50, 40)


def test_callback_executor_is_recorded_once(clock: FakeClock) -> None:
    recorder = NetworkCallRecorder(clock)
    seen: list = []

    def executor(method, url, callback, **kwargs):
        clock.advance(25)
        callback(ExecutionResult(status_code=204, elapsed_ms=25), None)
        callback(ExecutionResult(status_code=500, elapsed_ms=30), None)

    recorder.instrument_callback(executor)("DELETE", "https://api.test/items/1", lambda response, error: seen.append(response))

    (call,) = recorder.calls()
    assert (call.kind, call.status_code, call.success, call.duration) == ("callback", 204, True, 25)
    assert len(seen) == 2


def test_callback_executor_raising_synchronously(clock: FakeClock) -> None:
    recorder = NetworkCallRecorder(clock)

    def executor(method, url, callback, **kwargs):
        raise ValueError("bad url")

    with pytest.raises(ValueError):
        recorder.instrument_callback(executor)("GET", "::", lambda response, error: None)

    (call,) = recorder.calls()
    assert call.error == "bad url"
    assert not call.success


def test_threaded_executor_against_local_server() -> None:
    server = _start_test_server()
    base = f"http://127.0.0.1:{server.server_address[1]}"
    recorder = NetworkCallRecorder()
    request = recorder.instrument_callback(ThreadedHttpExecutor(timeout=5))
    done = threading.Event()
    outcomes: list = []

    def collect(response, error):
        outcomes.append((response, error))
        if len(outcomes) == 2:
            done.set()

    try:
        request("GET", f"{base}/ok", collect)
        request("GET", f"{base}/fail", collect)
        assert done.wait(5)
    finally:
        server.shutdown()

    statuses = sorted(call.status_code for call in recorder.calls())
    assert statuses == [200, 500]
    assert recorder.stats().successful == 1
    assert recorder.stats().failed == 1
    assert all(error is None for _, error in outcomes)


def test_clear_empties_the_log(clock: FakeClock) -> None:
    recorder = NetworkCallRecorder(clock)
    recorder.instrument_callback(lambda method, url, callback: callback(None, RuntimeError("x")))("GET", "/", lambda r, e: None)

    recorder.clear()

    assert recorder.calls() == []
