from __future__ import annotations

import copy
from collections.abc import AsyncGenerator
from typing import Any

import pytest

from genaikit import GenerativeModel
from genaikit.types import (
    Candidate,
    Content,
    CountTokensRequest,
    CountTokensResponse,
    FinishReason,
    FunctionCall,
    GenerateContentRequest,
    GenerateContentResponse,
    Part,
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def text_response(text: str, role: str | None = "model") -> GenerateContentResponse:
    return GenerateContentResponse(
        candidates=[
            Candidate(
                content=Content(parts=[Part(text=text)], role=role),
                finish_reason=FinishReason.STOP,
            )
        ]
    )


def function_call_response(name: str, args: dict[str, Any] | None = None) -> GenerateContentResponse:
    return GenerateContentResponse(
        candidates=[
            Candidate(
                content=Content(
                    parts=[Part(function_call=FunctionCall(name=name, args=args or {}))],
                    role="model",
                )
            )
        ]
    )


class FakeBackend:
    """Scripted stand-in for GenerativeBackend.

    Every request is recorded as a deep copy taken when it is sent.
    """

    def __init__(
        self,
        responses: list[GenerateContentResponse] | None = None,
        streams: list[list[GenerateContentResponse]] | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.streams = list(streams or [])
        self.requests: list[GenerateContentRequest] = []
        self.count_requests: list[CountTokensRequest] = []
        self.models: list[str] = []
        self.closed = False
        self.open_streams = 0

    def build_url(self, model: str, task: str = "generateContent") -> str:
        return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:{task}?key=secret-key"

    async def generate_content(
        self, model: str, request: GenerateContentRequest
    ) -> GenerateContentResponse:
        self.models.append(model)
        self.requests.append(copy.deepcopy(request))
        return self.responses.pop(0)

    async def stream_generate_content(
        self, model: str, request: GenerateContentRequest
    ) -> AsyncGenerator[GenerateContentResponse, None]:
        self.models.append(model)
        self.requests.append(copy.deepcopy(request))
        self.open_streams += 1
        try:
            for chunk in self.streams.pop(0):
                yield chunk
        finally:
            self.open_streams -= 1

    async def count_tokens(self, model: str, request: CountTokensRequest) -> CountTokensResponse:
        self.count_requests.append(request)
        return CountTokensResponse(total_tokens=7)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def model(fake_backend: FakeBackend) -> GenerativeModel:
    return GenerativeModel("gemini-1.5-flash", backend=fake_backend)  # type: ignore[arg-type]
