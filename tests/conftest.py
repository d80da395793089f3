"""Root conftest — shared test configuration.

Invariants:
    - Every test gets a fresh FastAPI app (no endpoints leak between tests)
    - client talks to the app in-process over ASGITransport
"""

import logging
import os

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

# Keep a developer's .env or shell settings from changing test behavior
os.environ.setdefault("APIFRAME_REQUEST_TIMEOUT_SECONDS", "10")
os.environ.setdefault("APIFRAME_LOG_FORMAT", "text")


@pytest.fixture
def logger():
    return logging.getLogger("apiframe.tests")


@pytest.fixture
def app():
    return FastAPI()


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
