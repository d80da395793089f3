"""Application Factory — FastAPI app with endpoints mounted through the pipeline.

Invariants:
    - Logging configured once on startup via lifespan (settings-driven)
    - Every endpoint gets a body size limit unless options bring their own stack

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Factory instead of a module-level app: tests build isolated apps
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import replace

from fastapi import FastAPI

from apiframe.api.endpoint import EndpointInterface, MountOptions, mount
from apiframe.api.middleware import MiddlewareStack, limit_body_size
from apiframe.config import Settings, get_settings
from apiframe.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


def create_app(
    *endpoints: EndpointInterface,
    settings: Settings | None = None,
    options: MountOptions | None = None,
    title: str = "apiframe",
) -> FastAPI:
    """Build a FastAPI app and mount each endpoint on it."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_format)
        logger.info(f"{title} started with {len(endpoints)} endpoint(s)")
        yield
        logger.info(f"{title} shutting down")

    app = FastAPI(title=title, lifespan=lifespan)

    options = replace(options) if options else MountOptions()
    if options.middleware_stack is None:
        options.middleware_stack = MiddlewareStack(
            limit_body_size(settings.max_request_body_bytes),
        )
    if options.timeout is None:
        options.timeout = settings.request_timeout_seconds

    for endpoint in endpoints:
        mount(app, endpoint, options)

    return app
