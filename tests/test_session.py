from __future__ import annotations

import asyncio

import pytest

from genaikit import ChatSession, GenerativeModel, QuickTool
from genaikit.exceptions import InvalidFunctionCallError, SessionBusyError
from genaikit.types import (
    ChatSessionBackUpData,
    Content,
    FunctionCallingBehaviour,
    FunctionResponse,
    GenerateContentRequest,
    GenerateContentResponse,
    GenerationConfig,
    HarmBlockThreshold,
    HarmCategory,
    Part,
    SafetySetting,
)

from .conftest import FakeBackend, function_call_response, text_response

pytestmark = pytest.mark.anyio


@pytest.fixture
def chat(model: GenerativeModel) -> ChatSession:
    return model.start_chat()


def lookup_capital(country: str) -> str:
    """Look up the capital of a country."""
    return {"France": "Paris"}.get(country, "unknown")


async def test_exchange_is_added_to_history(chat: ChatSession, fake_backend: FakeBackend):
    fake_backend.responses = [text_response("Hello Ada!", role=None), text_response("Your name is Ada.")]

    await chat.generate_content("Hi, I'm Ada.")
    assert [content.role for content in chat.history] == ["user", "model"]
    assert chat.history[0].text == "Hi, I'm Ada."
    assert chat.last_request_content is chat.history[0]
    assert chat.last_response_content is chat.history[1]

    await chat.generate_content("What's my name?")
    second = fake_backend.requests[1]
    assert [content.text for content in second.contents] == [
        "Hi, I'm Ada.",
        "Hello Ada!",
        "What's my name?",
    ]
    assert len(chat.history) == 4


async def test_function_rounds_do_not_duplicate_history(
    model: GenerativeModel, fake_backend: FakeBackend
):
    model.add_function_tool(QuickTool(lookup_capital))
    chat = model.start_chat(
        history=[Content.from_text("Hello"), Content.from_text("Hi there", role="model")]
    )
    fake_backend.responses = [
        function_call_response("lookup_capital", {"country": "France"}),
        text_response("The capital is Paris."),
    ]

    response = await chat.generate_content("Capital of France?")

    assert response.text == "The capital is Paris."
    followup = fake_backend.requests[1]
    assert [content.role for content in followup.contents] == [
        "user",
        "model",
        "user",
        "model",
        "function",
    ]
    assert [content.text for content in chat.history] == [
        "Hello",
        "Hi there",
        "Capital of France?",
        "The capital is Paris.",
    ]


async def test_unresolved_function_call_is_not_committed(
    model: GenerativeModel, fake_backend: FakeBackend
):
    model.add_function_tool(
        QuickTool(lookup_capital),
        behaviour=FunctionCallingBehaviour(auto_call_function=False),
    )
    chat = model.start_chat()
    fake_backend.responses = [function_call_response("lookup_capital", {"country": "France"})]

    await chat.generate_content("Capital of France?")

    assert chat.history == []
    assert chat.last_response_content is None


async def test_function_response_request_is_not_committed(chat: ChatSession, fake_backend: FakeBackend):
    fake_backend.responses = [text_response("Thanks.")]
    request = GenerateContentRequest(
        contents=[FunctionResponse(name="f", response={"ok": True}).to_content()]
    )

    await chat.generate_content(request)

    assert chat.history == []


async def test_replacing_history_resets_last_contents(chat: ChatSession, fake_backend: FakeBackend):
    fake_backend.responses = [text_response("Hello")]
    await chat.generate_content("Hi")

    chat.history = [Content.from_text("fresh start")]

    assert chat.last_request_content is None
    assert chat.last_response_content is None
    assert len(chat.history) == 1


async def test_stream_commits_accumulated_text(chat: ChatSession, fake_backend: FakeBackend):
    fake_backend.streams = [[text_response("Once upon "), text_response("a time.")]]

    chunks = [chunk async for chunk in chat.stream_content("Tell me a story")]

    assert len(chunks) == 2
    assert [content.role for content in chat.history] == ["user", "model"]
    assert chat.history[0].text == "Tell me a story"
    assert chat.history[1].text == "Once upon a time."
    assert chat.last_response_content is chat.history[1]


async def test_stream_without_user_content_only_updates_last_response(
    chat: ChatSession, fake_backend: FakeBackend
):
    fake_backend.streams = [[text_response("noted")]]
    request = GenerateContentRequest(contents=[Content(parts=[Part(text="ctx")], role="model")])

    async for _ in chat.stream_content(request):
        pass

    assert chat.history == []
    assert chat.last_response_content.text == "noted"


async def test_cancelled_stream_is_not_committed(chat: ChatSession, fake_backend: FakeBackend):
    cancel = asyncio.Event()
    fake_backend.streams = [[text_response("a"), text_response("b")]]

    async for _ in chat.stream_content("Go", cancel_event=cancel):
        cancel.set()

    assert chat.history == []
    assert chat.last_response_content is None
    assert fake_backend.open_streams == 0


class SlowBackend(FakeBackend):
    def __init__(self) -> None:
        super().__init__([text_response("slow")])
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def generate_content(
        self, model: str, request: GenerateContentRequest
    ) -> GenerateContentResponse:
        self.started.set()
        await self.release.wait()
        return await super().generate_content(model, request)


async def test_overlapping_calls_are_rejected():
    backend = SlowBackend()
    chat = ChatSession("gemini-1.5-flash", backend=backend)  # type: ignore[arg-type]

    first = asyncio.create_task(chat.generate_content("one"))
    await backend.started.wait()

    with pytest.raises(SessionBusyError):
        await chat.generate_content("two")

    backend.release.set()
    await first
    assert len(chat.history) == 2


async def test_backup_and_restore(model: GenerativeModel, fake_backend: FakeBackend):
    model.generation_config = GenerationConfig(temperature=0.3)
    model.system_instruction = "Be brief."
    model.use_json_mode = True
    chat = model.start_chat()
    fake_backend.responses = [text_response("{}"), text_response("[]")]
    await chat.generate_content("Give me JSON")

    backup = chat.create_backup()
    data = backup.to_dict()
    restored = ChatSession.from_backup(
        ChatSessionBackUpData.from_dict(data),
        tools=[QuickTool(lookup_capital)],
        backend=fake_backend,  # type: ignore[arg-type]
    )

    assert restored.model == "gemini-1.5-flash"
    assert restored.history == chat.history
    assert restored.history[0] is not chat.history[0]
    assert restored.last_request_content == chat.last_request_content
    assert restored.generation_config == GenerationConfig(temperature=0.3)
    assert restored.system_instruction == "Be brief."
    assert restored.use_json_mode is True
    assert restored.tools.find("lookup_capital") is not None

    await restored.generate_content("More")
    assert len(restored.history) == 4


def test_start_chat_copies_model_settings(model: GenerativeModel, fake_backend: FakeBackend):
    model.add_function_tool(QuickTool(lookup_capital))
    model.use_google_search = True
    model.system_instruction = "Be brief."

    chat = model.start_chat()

    assert chat.backend is fake_backend
    assert chat.use_google_search is True
    assert chat.system_instruction == "Be brief."
    assert chat.tools.find("lookup_capital") is not None
    chat.disable_functions()
    assert model.function_calling_behaviour.function_enabled is True


async def test_abandoned_stream_does_not_block_the_session(
    chat: ChatSession, fake_backend: FakeBackend
):
    fake_backend.streams = [[text_response("a"), text_response("b")]]
    fake_backend.responses = [text_response("Next reply")]

    async for _ in chat.stream_content("Go"):
        break

    response = await chat.generate_content("Next")

    assert response.text == "Next reply"
    assert [content.text for content in chat.history] == ["Next", "Next reply"]


async def test_resuming_stream_during_another_call_is_rejected():
    backend = SlowBackend()
    backend.streams = [[text_response("a"), text_response("b")]]
    chat = ChatSession("gemini-1.5-flash", backend=backend)  # type: ignore[arg-type]

    stream = chat.stream_content("Go")
    first = await stream.__anext__()
    assert first.text == "a"

    other = asyncio.create_task(chat.generate_content("meanwhile"))
    await backend.started.wait()

    with pytest.raises(SessionBusyError):
        await stream.__anext__()
    assert backend.open_streams == 0

    backend.release.set()
    await other
    assert [content.text for content in chat.history] == ["meanwhile", "slow"]


async def test_unknown_function_leaves_history_untouched(
    chat: ChatSession, fake_backend: FakeBackend
):
    fake_backend.responses = [text_response("Hello"), function_call_response("launch_rocket")]
    await chat.generate_content("Hi")
    history = list(chat.history)
    last_request = chat.last_request_content
    last_response = chat.last_response_content

    with pytest.raises(InvalidFunctionCallError):
        await chat.generate_content("Launch it")

    assert len(chat.history) == 2
    assert all(after is before for after, before in zip(chat.history, history))
    assert chat.last_request_content is last_request
    assert chat.last_response_content is last_response

    fake_backend.responses = [text_response("Still here")]
    await chat.generate_content("Hello again")
    assert len(chat.history) == 4


def test_start_chat_overrides_model_settings(model: GenerativeModel):
    model.system_instruction = "Be brief."
    model.generation_config = GenerationConfig(temperature=0.1)
    safety = [
        SafetySetting(
            category=HarmCategory.HARM_CATEGORY_HARASSMENT,
            threshold=HarmBlockThreshold.BLOCK_NONE,
        )
    ]

    chat = model.start_chat(
        generation_config=GenerationConfig(temperature=0.9),
        safety_settings=safety,
        system_instruction="Be thorough.",
    )

    assert chat.generation_config == GenerationConfig(temperature=0.9)
    assert chat.safety_settings == safety
    assert chat.system_instruction == "Be thorough."
    assert model.system_instruction == "Be brief."
    assert model.start_chat().generation_config == GenerationConfig(temperature=0.1)
