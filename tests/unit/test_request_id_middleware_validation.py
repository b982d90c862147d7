from __future__ import annotations

import pytest
from starlette.requests import Request
from starlette.responses import Response

from vsdc_sim.main import request_id_middleware
from vsdc_sim.utils.observability import request_id_var, validate_request_id


def _make_request(*, raw_headers: list[tuple[bytes, bytes]]) -> Request:
    scope = {
        "type": "http",
        "asgi": {"spec_version": "2.3", "version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/api/v1/vsdc/clearance",
        "raw_path": b"/api/v1/vsdc/clearance",
        "query_string": b"",
        "headers": raw_headers,
        "client": ("127.0.0.1", 12345),
        "server": ("testserver", 80),
    }

    async def receive():
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


@pytest.mark.asyncio
async def test_request_id_invalid_header_is_ignored_and_regenerated():
    injected = "\nINJECT"
    request = _make_request(raw_headers=[(b"x-request-id", injected.encode("latin-1"))])

    async def call_next(_: Request) -> Response:
        return Response("ok")

    response = await request_id_middleware(request, call_next)

    reflected = response.headers.get("X-Request-ID")
    assert reflected is not None
    assert reflected != injected
    assert validate_request_id(reflected) == reflected


@pytest.mark.asyncio
async def test_request_id_valid_header_is_reflected_and_bound_during_call():
    provided = "pos-terminal.07_abc"
    request = _make_request(raw_headers=[(b"x-request-id", provided.encode("ascii"))])
    seen: list[str | None] = []

    async def call_next(_: Request) -> Response:
        seen.append(request_id_var.get())
        return Response("ok")

    response = await request_id_middleware(request, call_next)

    assert response.headers.get("X-Request-ID") == provided
    assert seen == [provided]
    assert request_id_var.get() is None


@pytest.mark.parametrize("value", [None, "", "a" * 65, "has space", "semi;colon"])
def test_validate_request_id_rejects_unsafe_values(value):
    assert validate_request_id(value) is None
