"""
GenerativeModel - request preparation, generation and function calling.

This module provides the GenerativeModel class, the entry point for
one-shot generation against a Gemini model. It fills model defaults into
requests, injects tools, enforces mode compatibility and drives the
function-calling loop. :class:`genaikit.session.ChatSession` builds on it
to add conversation history.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar, Union

from pydantic import TypeAdapter

from .auth import GoogleAIPlatform, Platform, mask_api_key
from .backend import GenerativeBackend
from .exceptions import (
    BlockedResponseError,
    CachedContentModelMismatchError,
    FunctionCallLimitError,
    GenerativeAIError,
    IncompatibleModeError,
    InvalidFunctionCallError,
)
from .function_calling import (
    build_followup_contents,
    get_function_call,
    invalid_function_response,
    mark_invalid_function_call,
)
from .schema import schema_for
from .tools import BaseFunctionTool, ToolRegistry
from .types import (
    ENUM_MIME_TYPE,
    JSON_MIME_TYPE,
    TASK_GENERATE_CONTENT,
    CachedContent,
    CodeExecutionTool,
    Content,
    CountTokensRequest,
    CountTokensResponse,
    DynamicRetrievalConfig,
    DynamicRetrievalMode,
    FunctionCallingBehaviour,
    GenerateContentRequest,
    GenerateContentResponse,
    GenerationConfig,
    GoogleSearchRetrievalTool,
    GoogleSearchTool,
    Part,
    Role,
    SafetySetting,
    Tool,
    ToolConfig,
    extract_json_blocks,
    get_default_model,
)

if TYPE_CHECKING:
    from .session import ChatSession

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

ContentInput = Union[str, Part, Content, Sequence[Part], Sequence[Content], GenerateContentRequest]

JSON_MODE_ERROR = "Json mode does not support grounding or google search or code execution tool"
CACHED_CONTENT_MODE_ERROR = (
    "Cached content mode does not support the use of grounding, Google Search, "
    "or code execution tools. Please disable these features."
)


def default_google_search_retrieval_tool() -> Tool:
    return Tool(
        google_search_retrieval=GoogleSearchRetrievalTool(
            dynamic_retrieval_config=DynamicRetrievalConfig(
                mode=DynamicRetrievalMode.MODE_DYNAMIC,
                dynamic_threshold=1,
            )
        )
    )


def default_google_search_tool() -> Tool:
    return Tool(google_search=GoogleSearchTool())


def default_code_execution_tool() -> Tool:
    return Tool(code_execution=CodeExecutionTool())


def to_request(value: ContentInput) -> GenerateContentRequest:
    """Build a request from a prompt, parts, contents, or pass a request through.

    Raises:
        TypeError: If ``value`` is none of the accepted shapes.
    """
    if isinstance(value, GenerateContentRequest):
        return value
    if isinstance(value, str):
        return GenerateContentRequest.from_prompt(value)
    if isinstance(value, Content):
        return GenerateContentRequest(contents=[value])
    if isinstance(value, Part):
        return GenerateContentRequest(contents=[Content.from_parts([value])])

    items = list(value)
    if items and all(isinstance(item, Content) for item in items):
        return GenerateContentRequest(contents=items)
    if items and all(isinstance(item, Part) for item in items):
        return GenerateContentRequest(contents=[Content.from_parts(items)])
    raise TypeError(
        "Expected a prompt, a Part, a Content, a list of Parts or Contents, "
        f"or a GenerateContentRequest, got {type(value).__name__}"
    )


def _same_model(left: str, right: str) -> bool:
    return left.rsplit("/", 1)[-1] == right.rsplit("/", 1)[-1]


def _request_template(request: GenerateContentRequest) -> GenerateContentRequest:
    """Caller-supplied settings of ``request``, without contents."""
    return GenerateContentRequest(
        tools=copy.deepcopy(request.tools),
        tool_config=copy.deepcopy(request.tool_config),
        safety_settings=copy.deepcopy(request.safety_settings),
        system_instruction=copy.deepcopy(request.system_instruction),
        generation_config=copy.deepcopy(request.generation_config),
        cached_content=request.cached_content,
    )


@dataclass(frozen=True)
class GenerationPolicy:
    """Model settings captured at the start of a call.

    Every round of one call (function rounds included) is prepared from the
    same policy, so changing the model while a call runs does not affect it.
    """

    model: str
    generation_config: GenerationConfig | None
    safety_settings: list[SafetySetting] | None
    system_instruction: str | None
    use_json_mode: bool
    use_grounding: bool
    use_google_search: bool
    use_code_execution_tool: bool
    retrieval_tool: Tool | None
    cached_content: CachedContent | None
    tool_config: ToolConfig | None
    behaviour: FunctionCallingBehaviour
    tools: ToolRegistry

    @property
    def uses_builtin_tools(self) -> bool:
        return self.use_grounding or self.use_google_search or self.use_code_execution_tool


class GenerativeModel:
    """
    A Gemini model with default settings, tools and function calling.

    Example:
        >>> async with GenerativeModel("gemini-1.5-flash", api_key="...") as model:
        ...     response = await model.generate_content("Write a haiku about rain")
        ...     print(response.text)
    """

    def __init__(
        self,
        model: str | None = None,
        *,
        backend: GenerativeBackend | None = None,
        api_key: str | None = None,
        platform: Platform | None = None,
        generation_config: GenerationConfig | None = None,
        safety_settings: list[SafetySetting] | None = None,
        system_instruction: str | None = None,
        tools: list[BaseFunctionTool] | None = None,
        tool_config: ToolConfig | None = None,
        function_calling_behaviour: FunctionCallingBehaviour | None = None,
        cached_content: CachedContent | None = None,
        retrieval_tool: Tool | None = None,
        use_json_mode: bool = False,
        use_grounding: bool = False,
        use_google_search: bool = False,
        use_code_execution_tool: bool = False,
    ) -> None:
        """Initialize the model.

        Args:
            model: Model name. Defaults to the cached content's model, then
                ``$GOOGLE_AI_MODEL``, then ``gemini-1.5-flash``.
            backend: Shared transport. When omitted the model creates and
                owns one for ``platform`` (or Google AI with ``api_key``).
            api_key: Google AI Studio API key, used without ``backend``/``platform``.
            platform: Platform adapter, used without ``backend``.
            generation_config: Default generation config.
            safety_settings: Default safety settings.
            system_instruction: Default system instruction text.
            tools: Function tools the model may call.
            tool_config: Tool config sent with function tools.
            function_calling_behaviour: How function calls are handled.
            cached_content: Server-side cache to generate against.
            retrieval_tool: Custom retrieval tool appended to every request.
            use_json_mode: Ask for JSON output.
            use_grounding: Add Google Search Retrieval grounding.
            use_google_search: Add the Google Search tool.
            use_code_execution_tool: Add the code execution tool.
        """
        if model is None and cached_content is not None:
            model = cached_content.model
        self.model = get_default_model(model)

        self._owns_backend = backend is None
        self._backend = backend or GenerativeBackend(platform or GoogleAIPlatform(api_key))

        self.generation_config = generation_config
        self.safety_settings = safety_settings
        self.system_instruction = system_instruction
        self.tool_config = tool_config
        self.function_calling_behaviour = function_calling_behaviour or FunctionCallingBehaviour()
        self.cached_content = cached_content
        self.retrieval_tool = retrieval_tool
        self.use_json_mode = use_json_mode
        self.use_grounding = use_grounding
        self.use_google_search = use_google_search
        self.use_code_execution_tool = use_code_execution_tool
        self.tools = ToolRegistry(tools)

    async def __aenter__(self) -> GenerativeModel:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    @property
    def backend(self) -> GenerativeBackend:
        return self._backend

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def add_function_tool(
        self,
        tool: BaseFunctionTool,
        tool_config: ToolConfig | None = None,
        behaviour: FunctionCallingBehaviour | None = None,
    ) -> None:
        """Register a function tool, optionally replacing tool config and behaviour."""
        self.tools.register(tool)
        if tool_config is not None:
            self.tool_config = tool_config
        if behaviour is not None:
            self.function_calling_behaviour = behaviour

    def enable_functions(self) -> None:
        self.function_calling_behaviour.function_enabled = True

    def disable_functions(self) -> None:
        self.function_calling_behaviour.function_enabled = False

    # ------------------------------------------------------------------
    # Request preparation
    # ------------------------------------------------------------------

    def _snapshot_policy(self) -> GenerationPolicy:
        return GenerationPolicy(
            model=self.model,
            generation_config=copy.deepcopy(self.generation_config),
            safety_settings=copy.deepcopy(self.safety_settings),
            system_instruction=self.system_instruction,
            use_json_mode=self.use_json_mode,
            use_grounding=self.use_grounding,
            use_google_search=self.use_google_search,
            use_code_execution_tool=self.use_code_execution_tool,
            retrieval_tool=copy.deepcopy(self.retrieval_tool),
            cached_content=self.cached_content,
            tool_config=copy.deepcopy(self.tool_config),
            behaviour=copy.copy(self.function_calling_behaviour),
            tools=self.tools.copy(),
        )

    def prepare_request(
        self,
        request: GenerateContentRequest,
        policy: GenerationPolicy | None = None,
    ) -> GenerateContentRequest:
        """Apply model defaults, tools and cached content to ``request`` in place.

        Fields already set on the request are kept. Preparing the same
        request again leaves it unchanged.

        Raises:
            CachedContentModelMismatchError: If the cache belongs to another model.
            IncompatibleModeError: If JSON or cached-content mode is combined
                with grounding, Google Search or code execution.
        """
        policy = policy or self._snapshot_policy()

        if request.generation_config is None:
            request.generation_config = copy.deepcopy(policy.generation_config)
        if request.safety_settings is None and policy.safety_settings:
            request.safety_settings = copy.deepcopy(policy.safety_settings)
        if request.system_instruction is None and policy.system_instruction:
            request.system_instruction = Content.from_text(policy.system_instruction, role=None)

        self._adjust_json_mode(request, policy)
        self.add_tools(request, policy)
        self._add_cached_content(request, policy)
        self._validate(request, policy)
        return request

    def _adjust_json_mode(self, request: GenerateContentRequest, policy: GenerationPolicy) -> None:
        if not policy.use_json_mode:
            return
        if request.generation_config is None:
            request.generation_config = GenerationConfig()
        # An unset MIME type is left for the caller or the service to decide.
        if request.generation_config.response_mime_type:
            request.generation_config.response_mime_type = JSON_MIME_TYPE

    def add_tools(
        self,
        request: GenerateContentRequest,
        policy: GenerationPolicy | None = None,
    ) -> None:
        """Append function tools, built-in tools and the retrieval tool to ``request``."""
        policy = policy or self._snapshot_policy()

        if policy.behaviour.function_enabled and len(policy.tools) > 0:
            for tool in policy.tools:
                wire_tool = tool.as_tool()
                if request.tools and wire_tool in request.tools:
                    continue
                request.add_tool(wire_tool, policy.tool_config or request.tool_config)

        if policy.use_grounding and not any(
            t.google_search_retrieval is not None for t in request.tools or []
        ):
            request.tools = [*(request.tools or []), default_google_search_retrieval_tool()]

        if policy.use_google_search and not any(
            t.google_search is not None for t in request.tools or []
        ):
            request.tools = [*(request.tools or []), default_google_search_tool()]

        if policy.use_code_execution_tool and not any(
            t.code_execution is not None for t in request.tools or []
        ):
            request.tools = [*(request.tools or []), default_code_execution_tool()]

        if policy.retrieval_tool is not None and policy.retrieval_tool not in (request.tools or []):
            request.tools = [*(request.tools or []), copy.deepcopy(policy.retrieval_tool)]

    def _add_cached_content(self, request: GenerateContentRequest, policy: GenerationPolicy) -> None:
        cache = policy.cached_content
        if cache is None:
            return
        if not _same_model(cache.model, policy.model):
            raise CachedContentModelMismatchError(policy.model, cache.model)

        if request.cached_content != cache.name or not any(
            content is cached for content in request.contents for cached in cache.contents or []
        ):
            request.cached_content = cache.name
            if cache.contents:
                request.contents[0:0] = cache.contents

        # Tools and the system instruction are part of the cache itself
        request.tools = None
        request.tool_config = None
        request.system_instruction = None

    def _validate(self, request: GenerateContentRequest, policy: GenerationPolicy) -> None:
        if not policy.uses_builtin_tools:
            return
        if policy.use_json_mode:
            raise IncompatibleModeError(JSON_MODE_ERROR, "use_json_mode")
        if policy.cached_content is not None:
            raise IncompatibleModeError(CACHED_CONTENT_MODE_ERROR, "cached_content")
        config = request.generation_config
        if config is not None and config.response_mime_type == JSON_MIME_TYPE:
            raise IncompatibleModeError(JSON_MODE_ERROR, "response_mime_type")

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _check_blocked(self, response: GenerateContentResponse, model: str) -> None:
        if response.candidates:
            return

        message = "Response was blocked"
        feedback = response.prompt_feedback
        if feedback is not None and feedback.block_reason is not None:
            reason = getattr(feedback.block_reason, "value", feedback.block_reason)
            message += f" due to {reason}"
        if feedback is not None and feedback.block_reason_message:
            message += f": {feedback.block_reason_message}"

        url = mask_api_key(self._backend.build_url(model, TASK_GENERATE_CONTENT))
        logger.debug(f"No candidates returned from {url}: {message}")
        raise BlockedResponseError(url, message)

    async def _generate_once(
        self,
        request: GenerateContentRequest,
        policy: GenerationPolicy,
    ) -> GenerateContentResponse:
        self.prepare_request(request, policy)
        response = await self._backend.generate_content(policy.model, request)
        self._check_blocked(response, policy.model)
        return response

    async def generate_content(self, request: ContentInput) -> GenerateContentResponse:
        """
        Generate a response, executing requested functions along the way.

        Args:
            request: A prompt, Part(s), Content(s) or a full request.

        Returns:
            The final response. With auto-reply enabled this is the model's
            answer after all function results were sent back.

        Raises:
            BlockedResponseError: If the service returned no candidates.
            InvalidFunctionCallError: If the model called an unknown function
                and bad calls are not auto-handled.
            FunctionCallLimitError: If function rounds exceed the configured limit.
            APIError: On transport errors.
        """
        request = to_request(request)
        policy = self._snapshot_policy()
        template = _request_template(request)

        response = await self._generate_once(request, policy)

        rounds = 0
        while True:
            response, next_request = await self._call_function(request, response, policy, template)
            if next_request is None:
                return response

            rounds += 1
            if rounds > policy.behaviour.max_function_call_rounds:
                call = get_function_call(response)
                raise FunctionCallLimitError(
                    policy.behaviour.max_function_call_rounds,
                    call.name if call else None,
                )
            request = next_request
            response = await self._generate_once(request, policy)

    async def generate_content_with_file(
        self,
        prompt: str,
        file_uri: str,
        mime_type: str,
    ) -> GenerateContentResponse:
        """Generate from a prompt about a file already uploaded to the service."""
        content = Content(role=Role.USER.value)
        content.add_remote_file(file_uri, mime_type)
        content.add_text(prompt)
        return await self.generate_content(GenerateContentRequest(contents=[content]))

    async def stream_content(
        self,
        request: ContentInput,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[GenerateContentResponse, None]:
        """
        Stream response chunks, continuing through function calls.

        When the final chunk of a round carries a function call, the call is
        resolved like in :meth:`generate_content` and the chunks of the
        follow-up round are yielded from the same stream.

        Args:
            request: A prompt, Part(s), Content(s) or a full request.
            cancel_event: Checked before every chunk. Once set, the stream
                ends quietly.

        Yields:
            Chunks that carry candidates.
        """
        request = to_request(request)
        policy = self._snapshot_policy()
        template = _request_template(request)

        rounds = 0
        while True:
            self.prepare_request(request, policy)
            last_chunk: GenerateContentResponse | None = None

            async with aclosing(
                self._backend.stream_generate_content(policy.model, request)
            ) as stream:
                async for chunk in stream:
                    if cancel_event is not None and cancel_event.is_set():
                        logger.debug("Stream cancelled by caller")
                        return
                    if not chunk.candidates:
                        continue
                    last_chunk = chunk
                    yield chunk

            if last_chunk is None or (cancel_event is not None and cancel_event.is_set()):
                return

            _, next_request = await self._call_function(request, last_chunk, policy, template)
            if next_request is None:
                return

            rounds += 1
            if rounds > policy.behaviour.max_function_call_rounds:
                call = get_function_call(last_chunk)
                raise FunctionCallLimitError(
                    policy.behaviour.max_function_call_rounds,
                    call.name if call else None,
                )
            request = next_request

    # ------------------------------------------------------------------
    # Function calling
    # ------------------------------------------------------------------

    async def _call_function(
        self,
        request: GenerateContentRequest,
        response: GenerateContentResponse,
        policy: GenerationPolicy,
        template: GenerateContentRequest,
    ) -> tuple[GenerateContentResponse, GenerateContentRequest | None]:
        """Execute the response's function call, if any.

        Returns:
            The response (renamed copy for an auto-handled invalid call) and
            the request for the next round, or ``None`` when there is none.
        """
        function_call = get_function_call(response)
        if not policy.behaviour.auto_call_function or function_call is None:
            return response, None

        tool = policy.tools.find(function_call.name)
        if tool is None:
            if not policy.behaviour.auto_handle_bad_function_calls:
                raise InvalidFunctionCallError(function_call.name)
            response = mark_invalid_function_call(response)
            function_response = invalid_function_response(function_call)
        else:
            logger.debug(f"Model requested function {function_call.name}")
            function_response = await tool.call(function_call)

        if not policy.behaviour.auto_reply_function:
            return response, None

        next_request = copy.deepcopy(template)
        next_request.contents = build_followup_contents(
            request.contents,
            response,
            function_response,
            exclude=self._regeneration_excludes(policy),
        )
        return response, next_request

    def _regeneration_excludes(self, policy: GenerationPolicy) -> list[Content]:
        """Contents prepended during preparation, left out of follow-up requests."""
        if policy.cached_content is not None and policy.cached_content.contents:
            return list(policy.cached_content.contents)
        return []

    # ------------------------------------------------------------------
    # Structured output
    # ------------------------------------------------------------------

    def _structured_request(
        self,
        request: ContentInput,
        mime_type: str,
        schema: dict[str, Any],
    ) -> GenerateContentRequest:
        request = to_request(request)
        if request.generation_config is None:
            request.generation_config = copy.deepcopy(self.generation_config) or GenerationConfig()
        request.generation_config.response_mime_type = mime_type
        request.generation_config.response_schema = schema
        return request

    async def generate_object(self, request: ContentInput, output_type: type[T]) -> T:
        """
        Generate JSON matching ``output_type`` and validate it.

        ``output_type`` is anything pydantic can validate: a ``BaseModel``,
        a dataclass, a TypedDict, ``list[...]`` and so on.

        Raises:
            GenerativeAIError: If the response holds no JSON document.
            pydantic.ValidationError: If the JSON does not match ``output_type``.
        """
        request = self._structured_request(request, JSON_MIME_TYPE, schema_for(output_type))
        response = await self.generate_content(request)

        text = response.text or ""
        blocks = extract_json_blocks(text)
        if not blocks:
            raise GenerativeAIError("Response does not contain a JSON document", text)
        return TypeAdapter(output_type).validate_json(blocks[0])

    async def generate_enum(self, request: ContentInput, enum_type: type[E]) -> E:
        """Generate one member of ``enum_type``, matched by value or name.

        Raises:
            GenerativeAIError: If the response is not a member of the enum.
        """
        schema = {"type": "string", "enum": [str(member.value) for member in enum_type]}
        request = self._structured_request(request, ENUM_MIME_TYPE, schema)
        response = await self.generate_content(request)

        value = (response.text or "").strip().strip('"')
        for member in enum_type:
            if str(member.value) == value or member.name == value:
                return member
        raise GenerativeAIError(f"Response is not a member of {enum_type.__name__}", value)

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    async def count_tokens(self, request: CountTokensRequest | ContentInput) -> CountTokensResponse:
        """Count the tokens of a request, contents, parts or a prompt."""
        if not isinstance(request, CountTokensRequest):
            request = CountTokensRequest(contents=to_request(request).contents)
        return await self._backend.count_tokens(self.model, request)

    def _model_settings(self) -> dict[str, Any]:
        return {
            "backend": self._backend,
            "generation_config": copy.deepcopy(self.generation_config),
            "safety_settings": copy.deepcopy(self.safety_settings),
            "system_instruction": self.system_instruction,
            "tools": self.tools.get_all(),
            "tool_config": copy.deepcopy(self.tool_config),
            "function_calling_behaviour": copy.copy(self.function_calling_behaviour),
            "cached_content": self.cached_content,
            "retrieval_tool": copy.deepcopy(self.retrieval_tool),
            "use_json_mode": self.use_json_mode,
            "use_grounding": self.use_grounding,
            "use_google_search": self.use_google_search,
            "use_code_execution_tool": self.use_code_execution_tool,
        }

    def start_chat(
        self,
        history: list[Content] | None = None,
        *,
        generation_config: GenerationConfig | None = None,
        safety_settings: list[SafetySetting] | None = None,
        system_instruction: str | None = None,
    ) -> ChatSession:
        """Start a chat session sharing this model's backend, settings and tools.

        Args:
            history: Initial conversation, oldest first.
            generation_config: Replaces the model's generation config for the chat.
            safety_settings: Replaces the model's safety settings for the chat.
            system_instruction: Replaces the model's system instruction for the chat.
        """
        from .session import ChatSession

        settings = self._model_settings()
        if generation_config is not None:
            settings["generation_config"] = generation_config
        if safety_settings is not None:
            settings["safety_settings"] = safety_settings
        if system_instruction is not None:
            settings["system_instruction"] = system_instruction
        return ChatSession(self.model, history=history, **settings)

    async def close(self) -> None:
        """Close the backend if this model created it."""
        if self._owns_backend:
            await self._backend.close()
