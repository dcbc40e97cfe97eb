from dataclasses import dataclass

import httpx
import pytest

from svcdemo.httpclient import HTTPClient

URI = "http://localhost:15243/json"


def _client(captured, content=b'{"code":1000,"message":"msg"}'):
    def handler(request):
        captured.append(request)
        return httpx.Response(200, content=content)

    return HTTPClient(transport=httpx.MockTransport(handler))


def test_send_json_request():
    captured = []
    with _client(captured) as client:
        result = client.send_json_request(URI, {"param": "p"}, timeout=1.0)
    assert result == {"code": 1000, "message": "msg"}
    request = captured[0]
    assert request.method == "POST"
    assert request.content == b'{"param":"p"}'
    assert request.headers["content-type"] == "application/json"
    assert request.extensions["timeout"]["read"] == 1.0


def test_send_dataclass_request():
    @dataclass
    class Param:
        param: str

    captured = []
    with _client(captured) as client:
        client.send_json_request(URI, Param(param="p"))
    assert captured[0].content == b'{"param":"p"}'


def test_send_without_body():
    captured = []
    with _client(captured) as client:
        client.send_json_request(URI)
    assert captured[0].content == b""


def test_non_json_reply_raises():
    with _client([], content=b"not json") as client:
        with pytest.raises(ValueError):
            client.send_json_request(URI, {"param": "p"})


def test_transport_error_propagates():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with HTTPClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(httpx.ConnectError):
            client.send_json_request(URI, {"param": "p"})