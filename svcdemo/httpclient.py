"""A small client that posts JSON and decodes JSON answers."""

from __future__ import annotations

import dataclasses
import json
import time
from typing import Any

import httpx

from .logger import get_logger


def _encode_default(obj: Any) -> Any:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class HTTPClient:
    """Sends JSON requests with POST and returns the decoded JSON reply."""

    def __init__(self, *, transport: httpx.BaseTransport | None = None) -> None:
        self._http = httpx.Client(transport=transport)

    def __enter__(self) -> HTTPClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def send_json_request(self, uri: str, req: Any = None, timeout: float | None = None) -> Any:
        """POST ``req`` as JSON to ``uri`` and return the decoded reply.

        ``timeout`` is in seconds; ``None`` waits without limit.
        """
        log = get_logger()
        start = time.monotonic()
        request_body = b""
        response_body = b""
        try:
            if req is not None:
                request_body = json.dumps(
                    req, separators=(",", ":"), ensure_ascii=False, default=_encode_default
                ).encode("utf-8")
            response = self._http.post(
                uri,
                content=request_body,
                headers={"Content-Type": "application/json"},
                timeout=timeout,
            )
            response_body = response.content
            result = json.loads(response_body)
        except Exception as exc:
            log.info(
                "uri:[%s],method:[POST],req:[%s],resp:[%s],duration:[%.3fms],err:[%s]",
                uri, request_body, response_body, (time.monotonic() - start) * 1000, exc,
            )
            raise
        log.info(
            "uri:[%s],method:[POST],req:[%s],resp:[%s],duration:[%.3fms]",
            uri, request_body, response_body, (time.monotonic() - start) * 1000,
        )
        return result