"""Direct Invocation — run an endpoint handler without HTTP framing.

Handlers are plain async functions and can be awaited directly, but
invoke_handler adds the checks the pipeline would otherwise make:

    - Request models are validated and an APIError (400) raised if invalid
    - Response models are validated; a failure is a handler bug, so it's
      raised as a plain ValueError rather than a classified APIError

Sample invocation:

    endpoint = CreateJobEndpoint()
    resp = await invoke_handler(endpoint.execute, CreateJobRequest(name="nightly"))
"""

from typing import Awaitable, Callable, TypeVar

from pydantic import BaseModel, ValidationError

from apiframe.api.endpoint import MountOptions
from apiframe.core.errors import APIError
from apiframe.core.validator import default_validator, public_facing_message

TReq = TypeVar("TReq", bound=BaseModel)
TResp = TypeVar("TResp", bound=BaseModel)


async def invoke_handler(
    handler: Callable[[TReq], Awaitable[TResp]],
    req: TReq,
    options: MountOptions | None = None,
) -> TResp:
    """Validate req, await handler, validate and return its response."""
    if options is None:
        options = MountOptions()

    validator = options.validator or default_validator()

    try:
        req = validator.validate(req)
    except ValidationError as e:
        raise APIError.bad_request(public_facing_message(e)) from e

    resp = await handler(req)

    try:
        return validator.validate(resp)
    except ValidationError as e:
        raise ValueError(f"error validating response API resource: {e}") from e
