"""Middleware — handler-wrapping composition mounted in front of endpoints.

Invariants:
    - A middleware is Handler -> Handler; it never sees endpoint internals
    - MiddlewareStack applies middlewares in order added: first added runs outermost
    - limit_body_size raises BodyTooLargeError from the receive channel, so the
      endpoint pipeline classifies it (413) like any other failure

Design Decisions:
    - Per-endpoint stacks over app-wide ASGI middleware: an endpoint can opt
      into a stricter body limit without affecting its neighbours
"""

import logging
from typing import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Message

logger = logging.getLogger(__name__)

RequestHandler = Callable[[Request], Awaitable[Response]]
Middleware = Callable[[RequestHandler], RequestHandler]


class BodyTooLargeError(Exception):
    """Request body exceeded the configured limit."""

    def __init__(self, limit: int):
        super().__init__(f"request body too large (limit {limit} bytes)")
        self.limit = limit


class MiddlewareStack:
    """Ordered set of middlewares mounted around a request handler."""

    def __init__(self, *middlewares: Middleware):
        self._middlewares: list[Middleware] = list(middlewares)

    def use(self, middleware: Middleware) -> "MiddlewareStack":
        self._middlewares.append(middleware)
        return self

    def mount(self, handler: RequestHandler) -> RequestHandler:
        """Wrap handler so the first middleware added runs first."""
        for middleware in reversed(self._middlewares):
            handler = middleware(handler)
        return handler

    def __len__(self) -> int:
        return len(self._middlewares)


def limit_body_size(max_bytes: int) -> Middleware:
    """Middleware that caps the number of request body bytes read."""
    if max_bytes < 0:
        raise ValueError("max_bytes must not be negative")

    def middleware(handler: RequestHandler) -> RequestHandler:
        async def limited(request: Request) -> Response:
            receive = request.receive
            received = 0

            async def limited_receive() -> Message:
                nonlocal received
                message = await receive()
                if message["type"] == "http.request":
                    received += len(message.get("body", b""))
                    if received > max_bytes:
                        logger.info(
                            f"Request body exceeded {max_bytes} bytes",
                            extra={
                                "method": request.method,
                                "path": request.url.path,
                            },
                        )
                        raise BodyTooLargeError(max_bytes)
                return message

            return await handler(Request(request.scope, limited_receive))

        return limited

    return middleware
