"""Callback-driven HTTP executor built on urllib worker threads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional
import json
import os
import threading
import time
from urllib import error, request

DEFAULT_TIMEOUT = 10.0


@dataclass
class ExecutionResult:
    """Details about a performed request."""

    status_code: int
    elapsed_ms: float
    response_body: Optional[str] = None


class ThreadedHttpExecutor:
    """
    Issues requests on a daemon thread and reports through ``callback(response, error)``.

    HTTP error statuses are responses, not errors; only transport failures
    reach the callback as ``error``.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        env_timeout = os.getenv("ENGINE_HTTP_TIMEOUT", str(DEFAULT_TIMEOUT))
        self._timeout = timeout or float(env_timeout)

    def __call__(
        self,
        method: str,
        url: str,
        callback: Callable[[Optional[ExecutionResult], Optional[BaseException]], None],
        *,
        headers: Optional[dict[str, str]] = None,
        body: Any = None,
    ) -> threading.Thread:
        body_bytes = self._encode_body(method, body)
        worker = threading.Thread(
            target=self._run,
            args=(method.upper(), url, dict(headers or {}), body_bytes, callback),
            daemon=True,
        )
        worker.start()
        return worker

    def _run(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[bytes],
        callback: Callable[[Optional[ExecutionResult], Optional[BaseException]], None],
    ) -> None:
        try:
            result = self._perform_request(method, url, headers, body)
        except Exception as exc:
            callback(None, exc)
            return
        callback(result, None)

    @staticmethod
    def _encode_body(method: str, body: Any) -> Optional[bytes]:
        if body is None or method.upper() == "GET":
            return None
        if isinstance(body, (dict, list)):
            return json.dumps(body).encode("utf-8")
        if isinstance(body, bytes):
            return body
        return str(body).encode("utf-8")

    def _perform_request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[bytes],
    ) -> ExecutionResult:
        req = request.Request(url, data=body, headers=headers, method=method)
        start = time.perf_counter()
        try:
            with request.urlopen(req, timeout=self._timeout) as response:
                payload = response.read().decode("utf-8", errors="replace")
                status = response.getcode()
        except error.HTTPError as exc:
            payload = exc.read().decode("utf-8", errors="replace")
            status = exc.code
        except error.URLError as exc:
            raise RuntimeError(f"HTTP request failed for {method} {url}: {exc}") from exc
        elapsed_ms = (time.perf_counter() - start) * 1000
        return ExecutionResult(status_code=status, elapsed_ms=elapsed_ms, response_body=payload)
