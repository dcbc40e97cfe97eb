"""Flask middleware: the JSON gateway, request tracing, access logging and crash recovery."""

from __future__ import annotations

import contextlib
import dataclasses
import json
import re
import secrets
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from flask import Flask, Response, g, request

from . import codes
from .background import log_panic_stack
from .errors import extract_error
from .logger import REQUEST_ID_KEY, SPAN_ID_KEY, TRACE_ID_KEY, bind_fields, get_logger
from .tracing import TraceContext, bind_trace, new_uuid

TRACEPARENT_HEADER = "Traceparent"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"

_TRACEPARENT = re.compile(r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})(-.*)?$")
_LOGGED_BODY_TYPES = ("application/json", "text/plain")

_G_TRACE_SCOPE = "_svcdemo_trace_scope"
_G_ACCESS_START = "_svcdemo_access_start"
_G_REQUEST_BODY = "_svcdemo_request_body"


def _encode_default(obj: Any) -> Any:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


@dataclass
class JsonResponse:
    """The envelope every JSON endpoint answers with."""

    code: int
    message: str
    data: Any = None

    def to_json(self) -> str:
        """Encode the envelope; raise ``TypeError`` if the data cannot be encoded."""
        return json.dumps(
            {"code": self.code, "message": self.message, "data": self.data},
            separators=(",", ":"),
            ensure_ascii=False,
            default=_encode_default,
        )


def build_response(data: Any, err: BaseException | None) -> JsonResponse:
    """Turn a handler's result or error into a response envelope."""
    if err is None:
        return JsonResponse(codes.SUCCESS, "Success", data)
    app_error = extract_error(err)
    code = app_error.code if app_error is not None else codes.UNEXPECT
    return JsonResponse(code, str(err), data if codes.is_warning(code) else None)


def _decode_failure(exc: BaseException) -> JsonResponse:
    return JsonResponse(codes.PROTOCOL_DECODE_FAIL, f"Decode request text fail, cause:[{exc}]")


def _encode(response: JsonResponse) -> bytes:
    try:
        text = response.to_json()
    except (TypeError, ValueError) as exc:
        get_logger().error("Marshal response fail, err:[%s]", exc)
        text = JsonResponse(
            codes.JSON_ENCODE_FAIL, f"JSON Gateway encode response fail, err:[{exc}]"
        ).to_json()
    return text.encode("utf-8")


def json_gateway(request_type: type, handler: Callable[[Any], Any], params: Mapping[str, Any]) -> bytes:
    """Decode ``params`` into ``request_type``, run ``handler`` and encode the envelope.

    An exception raised by the handler becomes an error envelope; an exception
    carrying a ``data`` attribute passes that data on for warning codes.
    """
    try:
        req = request_type.from_params(params)
    except Exception as exc:
        response = _decode_failure(exc)
    else:
        try:
            data = handler(req)
        except Exception as exc:
            response = build_response(getattr(exc, "data", None), exc)
        else:
            response = build_response(data, None)
    return _encode(response)


def _request_params() -> dict[str, Any]:
    if request.method == "GET":
        return request.args.to_dict()
    if request.mimetype == "application/json":
        raw = request.get_data(cache=True)
        if not raw:
            raise ValueError("invalid request")
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("request body is not a JSON object")
        return payload
    params = request.args.to_dict()
    params.update(request.form.to_dict())
    return params


def json_endpoint(request_type: type, handler: Callable[[Any], Any]) -> Callable[[], Response]:
    """Return a Flask view that serves ``handler`` through the JSON gateway."""

    def view() -> Response:
        try:
            params = _request_params()
        except ValueError as exc:
            body = _encode(_decode_failure(exc))
        else:
            body = json_gateway(request_type, handler, params)
        return Response(body, status=200, content_type=JSON_CONTENT_TYPE)

    view.__name__ = f"json_{getattr(handler, '__name__', 'handler')}"
    return view


def trace_ids_from_traceparent(values: Iterable[str]) -> tuple[str, str]:
    """Return the trace and span ids of the first traceparent value, or empty strings."""
    first = next(iter(values), None)
    if first is not None:
        parts = first.split("-")
        if len(parts) >= 3:
            return parts[1], parts[2]
    return "", ""


def _header_values(headers: Mapping[str, Any], name: str) -> list[str]:
    getlist = getattr(headers, "getlist", None)
    if callable(getlist):
        return [str(v) for v in getlist(name)]
    wanted = name.lower()
    values: list[str] = []
    for key, value in headers.items():
        if str(key).lower() != wanted:
            continue
        if isinstance(value, (list, tuple)):
            values.extend(str(v) for v in value)
        else:
            values.append(str(value))
    return values


def _valid_traceparent(values: list[str]) -> bool:
    if not values:
        return False
    match = _TRACEPARENT.match(values[0].strip())
    if match is None:
        return False
    version, trace_id, span_id, _flags, rest = match.groups()
    if version == "ff" or (version == "00" and rest):
        return False
    return trace_id != "0" * 32 and span_id != "0" * 16


def start_trace(span_name: str, headers: Mapping[str, Any]) -> TraceContext:
    """Continue the trace named in ``headers``, or start a new one."""
    parent = _header_values(headers, TRACEPARENT_HEADER)
    if _valid_traceparent(parent):
        trace_id, span_id = trace_ids_from_traceparent(parent)
    else:
        trace_id, span_id = uuid.uuid4().hex, secrets.token_hex(8)
    request_ids = _header_values(headers, codes.REQUEST_ID_HEADER)
    request_id = request_ids[0] if request_ids and request_ids[0] else new_uuid()
    return TraceContext(trace_id=trace_id, span_id=span_id, request_id=request_id, span_name=span_name)


def _is_http_error(exc: Exception) -> bool:
    # Flask's routing errors (404, 405 and the like) carry a status code and
    # know how to render themselves; they are answers, not crashes.
    return isinstance(getattr(exc, "code", None), int) and callable(
        getattr(exc, "get_response", None)
    )


def _recover(exc: Exception) -> Any:
    if _is_http_error(exc):
        return exc
    log_panic_stack(exc)
    return Response("Server Internal Error", status=500, content_type="text/plain")


def _begin_trace() -> None:
    trace = start_trace(request.path, request.headers)
    scope = contextlib.ExitStack()
    scope.enter_context(bind_trace(trace))
    scope.enter_context(
        bind_fields(
            **{
                REQUEST_ID_KEY: trace.request_id,
                TRACE_ID_KEY: trace.trace_id,
                SPAN_ID_KEY: trace.span_id,
            }
        )
    )
    setattr(g, _G_TRACE_SCOPE, scope)


def _end_trace(exc: BaseException | None) -> None:
    scope = g.pop(_G_TRACE_SCOPE, None)
    if scope is not None:
        scope.close()


def _begin_access_log() -> None:
    setattr(g, _G_ACCESS_START, time.monotonic())
    body = ""
    if request.mimetype in _LOGGED_BODY_TYPES:
        body = request.get_data(cache=True, as_text=True)
    setattr(g, _G_REQUEST_BODY, body)


def _write_access_log(response: Response) -> Response:
    start = g.get(_G_ACCESS_START)
    duration = 0.0 if start is None else (time.monotonic() - start) * 1000
    if response.direct_passthrough or response.is_streamed:
        response_body = ""
    else:
        response_body = response.get_data(as_text=True)
    get_logger().info(
        "%s|%s|%s|%s|%s|%.3fms|req_body=%s,res_body=%s",
        request.remote_addr,
        request.host,
        request.method,
        request.full_path.rstrip("?"),
        request.environ.get("SERVER_PROTOCOL", ""),
        duration,
        g.get(_G_REQUEST_BODY, ""),
        response_body,
    )
    return response


def install(app: Flask) -> Flask:
    """Add recovery, tracing and access logging to ``app``."""
    app.register_error_handler(Exception, _recover)
    app.before_request(_begin_trace)
    app.before_request(_begin_access_log)
    app.after_request(_write_access_log)
    app.teardown_request(_end_trace)
    return app