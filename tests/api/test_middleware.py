"""Middleware — verifies stack ordering and the request body size limit.

Invariants:
    - First middleware added runs outermost
    - Bodies at the limit pass; one byte over raises BodyTooLargeError on read
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from apiframe.api.middleware import (
    BodyTooLargeError, MiddlewareStack, limit_body_size,
)


def _tagging(tag: str, calls: list):
    def middleware(handler):
        async def wrapped(request: Request) -> Response:
            calls.append(tag)
            return await handler(request)
        return wrapped
    return middleware


@pytest.mark.asyncio
async def test_stack_runs_first_added_outermost():
    calls: list[str] = []
    stack = MiddlewareStack(_tagging("first", calls)).use(_tagging("second", calls))

    async def handler(request: Request) -> Response:
        calls.append("handler")
        return PlainTextResponse("ok")

    app = FastAPI()
    app.add_route("/", stack.mount(handler), methods=["GET"])
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        res = await c.get("/")

    assert res.status_code == 200
    assert calls == ["first", "second", "handler"]
    assert len(stack) == 2


def test_negative_limit_rejected():
    with pytest.raises(ValueError):
        limit_body_size(-1)


async def _post_body(limit: int, body: bytes) -> tuple[int, str]:
    async def handler(request: Request) -> Response:
        try:
            data = await request.body()
        except BodyTooLargeError as e:
            return PlainTextResponse(str(e.limit), status_code=413)
        return PlainTextResponse(data.decode())

    app = FastAPI()
    app.add_route("/", MiddlewareStack(limit_body_size(limit)).mount(handler), methods=["POST"])
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        res = await c.post("/", content=body)
    return res.status_code, res.text


@pytest.mark.asyncio
async def test_body_at_limit_passes():
    assert await _post_body(5, b"hello") == (200, "hello")


@pytest.mark.asyncio
async def test_body_over_limit_rejected():
    assert await _post_body(4, b"hello") == (413, "4")
