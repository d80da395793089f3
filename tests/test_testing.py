"""Direct Invocation — verifies invoke_handler's request and response checks."""

from typing import Annotated

import pytest
from pydantic import BaseModel, Field

from apiframe.api.endpoint import MountOptions
from apiframe.core.errors import APIError, ErrorKind
from apiframe.core.validator import Validator
from apiframe.testing import invoke_handler


class CreateJobRequest(BaseModel):
    name: Annotated[str, Field(min_length=1)]


class CreateJobResponse(BaseModel):
    id: Annotated[str, Field(pattern=r"^job_\d+$")]
    name: str


async def create_job(req: CreateJobRequest) -> CreateJobResponse:
    return CreateJobResponse(id="job_1", name=req.name)


async def create_broken_job(req: CreateJobRequest) -> CreateJobResponse:
    # Skips validation, like a handler assembling a response from raw rows
    return CreateJobResponse.model_construct(id="not-a-job-id", name=req.name)


@pytest.mark.asyncio
async def test_valid_round_trip():
    resp = await invoke_handler(create_job, CreateJobRequest(name="nightly"))
    assert resp == CreateJobResponse(id="job_1", name="nightly")


@pytest.mark.asyncio
async def test_invalid_request_raises_bad_request():
    called = False

    async def handler(req: CreateJobRequest) -> CreateJobResponse:
        nonlocal called
        called = True
        return await create_job(req)

    with pytest.raises(APIError) as exc_info:
        await invoke_handler(handler, CreateJobRequest.model_construct(name=""))

    assert exc_info.value.kind is ErrorKind.BAD_REQUEST
    assert exc_info.value.message == "Field 'name' is too short (minimum length is 1)."
    assert not called


@pytest.mark.asyncio
async def test_invalid_response_raises_plain_error():
    with pytest.raises(ValueError, match="error validating response API resource") as exc_info:
        await invoke_handler(create_broken_job, CreateJobRequest(name="nightly"))
    assert not isinstance(exc_info.value, APIError)


@pytest.mark.asyncio
async def test_handler_errors_propagate_unchanged():
    async def handler(req: CreateJobRequest) -> CreateJobResponse:
        raise APIError.not_found("Queue not found.")

    with pytest.raises(APIError, match="Queue not found."):
        await invoke_handler(handler, CreateJobRequest(name="nightly"))


@pytest.mark.asyncio
async def test_custom_validator_from_options():
    options = MountOptions(validator=Validator(strict=True))
    with pytest.raises(APIError):
        await invoke_handler(
            create_job, CreateJobRequest.model_construct(name=5), options,
        )
