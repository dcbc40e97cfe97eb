"""Client for the etcd v3 key-value store, spoken through its JSON gateway."""

from __future__ import annotations

import base64
import json
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from .logger import get_logger

DEFAULT_TIMEOUT = 5.0

EVENT_PUT = "PUT"
EVENT_DELETE = "DELETE"


class KeyNotFoundError(LookupError):
    """Raised when a key holds no value."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Get key:[{key}] error, cause:[Key not found]")
        self.key = key


@dataclass(frozen=True)
class WatchEvent:
    """One change to a watched key."""

    type: str
    key: bytes
    value: bytes


WatchHandler = Callable[[WatchEvent], Any]


def _b64(data: str | bytes) -> str:
    raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    return base64.b64encode(raw).decode("ascii")


def _unb64(data: str | None) -> bytes:
    return base64.b64decode(data) if data else b""


def _base_url(endpoint: str) -> str:
    endpoint = endpoint.rstrip("/")
    if "://" not in endpoint:
        endpoint = f"http://{endpoint}"
    return endpoint


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and "error" in payload:
        return str(payload["error"])
    return response.text


def _to_event(raw: dict[str, Any]) -> WatchEvent:
    kv = raw.get("kv") or {}
    return WatchEvent(
        type=raw.get("type", EVENT_PUT),
        key=_unb64(kv.get("key")),
        value=_unb64(kv.get("value")),
    )


class EtcdClient:
    """Reads, writes and watches keys on an etcd cluster."""

    def __init__(
        self,
        endpoints: Sequence[str],
        dial_timeout: float = 0.0,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not endpoints:
            raise ValueError("etcd client needs at least one endpoint")
        self._endpoints = [_base_url(endpoint) for endpoint in endpoints]
        self._dial_timeout = dial_timeout if dial_timeout > 0 else None
        self._http = httpx.Client(transport=transport)

    def __enter__(self) -> EtcdClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _timeout(self, timeout: float | None) -> httpx.Timeout:
        seconds = timeout if timeout and timeout > 0 else DEFAULT_TIMEOUT
        return httpx.Timeout(seconds, connect=self._dial_timeout or seconds)

    def _post(self, path: str, payload: dict[str, Any], timeout: float | None) -> dict[str, Any]:
        last_error: Exception | None = None
        for base in self._endpoints:
            try:
                response = self._http.post(base + path, json=payload, timeout=self._timeout(timeout))
            except httpx.TransportError as exc:
                last_error = exc
                continue
            if response.status_code != 200:
                raise ConnectionError(
                    f"etcd {path} returned {response.status_code}: {_error_message(response)}"
                )
            data = response.json()
            return data if isinstance(data, dict) else {}
        raise ConnectionError(f"no etcd endpoint reachable: {last_error}") from last_error

    def get(self, key: str, timeout: float | None = 0.0) -> bytes:
        """Return the value of ``key``; raise :class:`KeyNotFoundError` if it has none."""
        data = self._post("/v3/kv/range", {"key": _b64(key)}, timeout)
        kvs = data.get("kvs") or []
        if not kvs:
            raise KeyNotFoundError(key)
        return _unb64(kvs[0].get("value"))

    def put(self, key: str, value: str | bytes, timeout: float | None = 0.0) -> None:
        """Store ``value`` under ``key``."""
        log = get_logger()
        log.info("Put key:[%s], value:\n%s", key, value)
        try:
            self._post("/v3/kv/put", {"key": _b64(key), "value": _b64(value)}, timeout)
        except ConnectionError as exc:
            raise ConnectionError(f"Put key:[{key}] error, cause:[{exc}]") from exc
        log.info("Put key:[%s] success", key)

    def watch(
        self,
        key: str,
        handler: WatchHandler,
        stop: threading.Event | None = None,
    ) -> None:
        """Wait for the next batch of changes to ``key`` and pass each to ``handler``."""
        if stop is not None and stop.is_set():
            return
        log = get_logger()
        payload = {"create_request": {"key": _b64(key)}}
        timeout = httpx.Timeout(None, connect=self._dial_timeout)
        log.info("Start watch key:[%s]", key)
        for base in self._endpoints:
            try:
                with self._http.stream(
                    "POST", base + "/v3/watch", json=payload, timeout=timeout
                ) as response:
                    if response.status_code != 200:
                        response.read()
                        log.error(
                            "Watch key:[%s] fail, status:[%d], err:[%s]",
                            key,
                            response.status_code,
                            _error_message(response),
                        )
                        return
                    self._consume(key, response, handler, stop)
                return
            except httpx.TransportError as exc:
                log.error("Watch key:[%s] fail, err:[%s]", key, exc)
        return

    def _consume(
        self,
        key: str,
        response: httpx.Response,
        handler: WatchHandler,
        stop: threading.Event | None,
    ) -> None:
        log = get_logger()
        for line in response.iter_lines():
            if stop is not None and stop.is_set():
                return
            if not line.strip():
                continue
            message = json.loads(line)
            if "error" in message:
                log.error("Watch key:[%s] fail", key)
                return
            result = message.get("result") or {}
            if result.get("canceled"):
                log.error("Watch key:[%s] fail", key)
                return
            events = result.get("events")
            if not events:
                continue
            log.info("Get watch respone key:[%s]", key)
            for raw in events:
                handler(_to_event(raw))
            return

    def close(self) -> None:
        self._http.close()