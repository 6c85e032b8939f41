"""
Helpers for resolving function calls requested by the model.

The resolution loop itself is driven by
:meth:`genaikit.model.GenerativeModel.generate_content`; these helpers build
the values that flow through it without mutating their inputs.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence

from .types import (
    INVALID_FUNCTION_NAME,
    INVALID_FUNCTION_RESPONSE,
    Content,
    FunctionCall,
    FunctionResponse,
    GenerateContentResponse,
    Role,
)

logger = logging.getLogger(__name__)


def get_function_call(response: GenerateContentResponse) -> FunctionCall | None:
    """Return the first function call of the first candidate, if any."""
    return response.function_call


def mark_invalid_function_call(response: GenerateContentResponse) -> GenerateContentResponse:
    """Return a copy of ``response`` whose first function call is renamed to ``InvalidName``."""
    updated = copy.deepcopy(response)
    function_call = updated.function_call
    if function_call is not None:
        logger.warning(f"Model called unknown function {function_call.name}, answering with an error")
        function_call.name = INVALID_FUNCTION_NAME
    return updated


def invalid_function_response(function_call: FunctionCall) -> FunctionResponse:
    """Error payload sent back for a call to an unknown function."""
    return FunctionResponse(
        id=function_call.id,
        name=INVALID_FUNCTION_NAME,
        response=dict(INVALID_FUNCTION_RESPONSE),
    )


def model_turn(response: GenerateContentResponse) -> Content:
    """The first candidate's content as a new turn, role preserved."""
    content = response.first_content
    if content is None:
        return Content(role=Role.MODEL.value)
    return Content(parts=list(content.parts), role=content.role)


def build_followup_contents(
    contents: Sequence[Content],
    response: GenerateContentResponse,
    function_response: FunctionResponse,
    exclude: Sequence[Content] = (),
) -> list[Content]:
    """Contents for the next round after a function was executed.

    Args:
        contents: Contents of the request that produced ``response``.
        response: The response carrying the function call.
        function_response: Result of executing the call.
        exclude: Entries to leave out, compared by identity. Used for the
            chat history and cached contents, which are prepended again when
            the next request is prepared.

    Returns:
        The kept contents followed by the model's call turn and the
        ``function`` role turn holding ``function_response``.
    """
    excluded = {id(content) for content in exclude}
    followup = [content for content in contents if id(content) not in excluded]
    followup.append(model_turn(response))
    followup.append(function_response.to_content())
    return followup
