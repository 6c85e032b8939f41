"""
Type definitions for genaikit

Wire-level data model for the Gemini (Google AI) and Vertex AI
``generateContent`` family of endpoints, plus shared constants.

Every request/response type is a dataclass that serializes to and from the
camelCase JSON the REST API speaks through :class:`WireModel`.
"""

from __future__ import annotations

import base64
import dataclasses
import functools
import json
import os
import re
import types as _pytypes
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, TypedDict, Union, get_args, get_origin, get_type_hints

from typing_extensions import Self

# =============================================================================
# Serialization
# =============================================================================


def _to_camel(name: str) -> str:
    head, *tail = name.split("_")
    return head + "".join(word.title() for word in tail)


def _dump(value: Any) -> Any:
    if isinstance(value, WireModel):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_dump(item) for item in value]
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    return value


@functools.lru_cache(maxsize=None)
def _type_hints(cls: type) -> dict[str, Any]:
    return get_type_hints(cls)


def _load(value: Any, hint: Any) -> Any:
    if value is None or hint is Any:
        return value

    origin = get_origin(hint)
    if origin in (Union, _pytypes.UnionType):
        options = [arg for arg in get_args(hint) if arg is not type(None)]
        return _load(value, options[0]) if len(options) == 1 else value
    if origin is list:
        args = get_args(hint)
        return [_load(item, args[0]) if args else item for item in value]
    if origin is dict:
        return dict(value)

    if isinstance(hint, type):
        if issubclass(hint, WireModel):
            return hint.from_dict(value)
        if issubclass(hint, Enum):
            try:
                return hint(value)
            except ValueError:
                # Newer API revisions add enum members; keep the raw string.
                return value
    return value


class WireModel:
    """Mixin for dataclasses exchanged with the API as camelCase JSON.

    ``None`` fields are omitted on output. ``from_dict`` accepts both the
    camelCase wire keys and the snake_case attribute names.
    """

    _aliases: ClassVar[dict[str, str]] = {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in dataclasses.fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if value is None:
                continue
            data[self._aliases.get(f.name, _to_camel(f.name))] = _dump(value)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        hints = _type_hints(cls)
        kwargs: dict[str, Any] = {}
        for f in dataclasses.fields(cls):  # type: ignore[arg-type]
            key = cls._aliases.get(f.name, _to_camel(f.name))
            if key in data:
                kwargs[f.name] = _load(data[key], hints[f.name])
            elif f.name in data:
                kwargs[f.name] = _load(data[f.name], hints[f.name])
        return cls(**kwargs)

    @classmethod
    def from_json(cls, text: str) -> Self:
        return cls.from_dict(json.loads(text))


# =============================================================================
# Roles and Enums
# =============================================================================


class Role(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    MODEL = "model"
    SYSTEM = "system"
    FUNCTION = "function"


class HarmCategory(str, Enum):
    HARM_CATEGORY_UNSPECIFIED = "HARM_CATEGORY_UNSPECIFIED"
    HARM_CATEGORY_HATE_SPEECH = "HARM_CATEGORY_HATE_SPEECH"
    HARM_CATEGORY_SEXUALLY_EXPLICIT = "HARM_CATEGORY_SEXUALLY_EXPLICIT"
    HARM_CATEGORY_HARASSMENT = "HARM_CATEGORY_HARASSMENT"
    HARM_CATEGORY_DANGEROUS_CONTENT = "HARM_CATEGORY_DANGEROUS_CONTENT"
    HARM_CATEGORY_CIVIC_INTEGRITY = "HARM_CATEGORY_CIVIC_INTEGRITY"


class HarmBlockThreshold(str, Enum):
    HARM_BLOCK_THRESHOLD_UNSPECIFIED = "HARM_BLOCK_THRESHOLD_UNSPECIFIED"
    BLOCK_LOW_AND_ABOVE = "BLOCK_LOW_AND_ABOVE"
    BLOCK_MEDIUM_AND_ABOVE = "BLOCK_MEDIUM_AND_ABOVE"
    BLOCK_ONLY_HIGH = "BLOCK_ONLY_HIGH"
    BLOCK_NONE = "BLOCK_NONE"
    OFF = "OFF"


class FinishReason(str, Enum):
    FINISH_REASON_UNSPECIFIED = "FINISH_REASON_UNSPECIFIED"
    STOP = "STOP"
    MAX_TOKENS = "MAX_TOKENS"
    SAFETY = "SAFETY"
    RECITATION = "RECITATION"
    LANGUAGE = "LANGUAGE"
    OTHER = "OTHER"
    BLOCKLIST = "BLOCKLIST"
    PROHIBITED_CONTENT = "PROHIBITED_CONTENT"
    SPII = "SPII"
    MALFORMED_FUNCTION_CALL = "MALFORMED_FUNCTION_CALL"
    IMAGE_SAFETY = "IMAGE_SAFETY"


class BlockReason(str, Enum):
    BLOCK_REASON_UNSPECIFIED = "BLOCK_REASON_UNSPECIFIED"
    SAFETY = "SAFETY"
    OTHER = "OTHER"
    BLOCKLIST = "BLOCKLIST"
    PROHIBITED_CONTENT = "PROHIBITED_CONTENT"
    IMAGE_SAFETY = "IMAGE_SAFETY"


class FunctionCallingMode(str, Enum):
    MODE_UNSPECIFIED = "MODE_UNSPECIFIED"
    AUTO = "AUTO"
    ANY = "ANY"
    NONE = "NONE"


class DynamicRetrievalMode(str, Enum):
    MODE_UNSPECIFIED = "MODE_UNSPECIFIED"
    MODE_DYNAMIC = "MODE_DYNAMIC"


# =============================================================================
# Content Types
# =============================================================================


@dataclass
class Blob(WireModel):
    """Inline binary data. ``data`` holds the base64 encoding."""

    mime_type: str
    data: str

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> Blob:
        return cls(mime_type=mime_type, data=base64.b64encode(data).decode("ascii"))


@dataclass
class FileData(WireModel):
    """Reference to a file already stored on the service."""

    file_uri: str
    mime_type: str | None = None
    display_name: str | None = None


@dataclass
class FunctionCall(WireModel):
    """A function call requested by the model."""

    name: str
    args: dict[str, Any] | None = None
    id: str | None = None


@dataclass
class FunctionResponse(WireModel):
    """The result of a function call, sent back to the model."""

    name: str
    response: Any = None
    id: str | None = None

    def to_content(self) -> Content:
        return Content(parts=[Part(function_response=self)], role=Role.FUNCTION.value)


@dataclass
class Part(WireModel):
    """A single unit of content. Exactly one payload field is expected."""

    text: str | None = None
    inline_data: Blob | None = None
    file_data: FileData | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponse | None = None
    executable_code: dict[str, Any] | None = None
    code_execution_result: dict[str, Any] | None = None
    thought: bool | None = None


@dataclass
class Content(WireModel):
    """One turn of a conversation."""

    parts: list[Part] = field(default_factory=list)
    role: str | None = None

    @classmethod
    def from_text(cls, text: str, role: str | None = Role.USER.value) -> Content:
        return cls(parts=[Part(text=text)], role=role)

    @classmethod
    def from_parts(cls, parts: list[Part], role: str | None = Role.USER.value) -> Content:
        return cls(parts=list(parts), role=role)

    def add_text(self, text: str) -> None:
        self.parts.append(Part(text=text))

    def add_remote_file(self, file_uri: str, mime_type: str) -> None:
        self.parts.append(Part(file_data=FileData(file_uri=file_uri, mime_type=mime_type)))

    def add_inline_data(self, data: bytes, mime_type: str) -> None:
        self.parts.append(Part(inline_data=Blob.from_bytes(data, mime_type)))

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if part.text and not part.thought)

    def has_function_response(self) -> bool:
        return any(part.function_response is not None for part in self.parts)


# =============================================================================
# Generation Config Types
# =============================================================================


@dataclass
class ThinkingConfig(WireModel):
    """Configuration for model thinking/reasoning."""

    include_thoughts: bool | None = None
    thinking_budget: int | None = None


@dataclass
class GenerationConfig(WireModel):
    """Configuration for text generation.

    All fields default to ``None`` so that unset values are left to the
    service defaults and never overwrite model-level configuration.
    """

    stop_sequences: list[str] | None = None
    response_mime_type: str | None = None
    response_schema: dict[str, Any] | None = None
    response_modalities: list[str] | None = None
    candidate_count: int | None = None
    max_output_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    seed: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    response_logprobs: bool | None = None
    logprobs: int | None = None
    thinking_config: ThinkingConfig | None = None


@dataclass
class SafetySetting(WireModel):
    category: HarmCategory
    threshold: HarmBlockThreshold
    method: str | None = None


# =============================================================================
# Tool Types
# =============================================================================


@dataclass
class FunctionDeclaration(WireModel):
    """Describes a callable function to the model."""

    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None


@dataclass
class DynamicRetrievalConfig(WireModel):
    mode: DynamicRetrievalMode | None = None
    dynamic_threshold: float | None = None


@dataclass
class GoogleSearchRetrievalTool(WireModel):
    dynamic_retrieval_config: DynamicRetrievalConfig | None = None


@dataclass
class GoogleSearchTool(WireModel):
    pass


@dataclass
class CodeExecutionTool(WireModel):
    pass


@dataclass
class VertexRetrievalTool(WireModel):
    """Retrieval backed by Vertex AI Search or a Vertex RAG corpus."""

    vertex_ai_search: dict[str, Any] | None = None
    vertex_rag_store: dict[str, Any] | None = None
    disable_attribution: bool | None = None


@dataclass
class Tool(WireModel):
    """Wire descriptor of a capability offered to the model."""

    function_declarations: list[FunctionDeclaration] | None = None
    google_search_retrieval: GoogleSearchRetrievalTool | None = None
    code_execution: CodeExecutionTool | None = None
    google_search: GoogleSearchTool | None = None
    retrieval: VertexRetrievalTool | None = None


@dataclass
class FunctionCallingConfig(WireModel):
    mode: FunctionCallingMode | None = None
    allowed_function_names: list[str] | None = None


@dataclass
class ToolConfig(WireModel):
    function_calling_config: FunctionCallingConfig | None = None


@dataclass
class CachedContent(WireModel):
    """Server-side cached context bound to one model."""

    model: str
    name: str | None = None
    display_name: str | None = None
    contents: list[Content] | None = None
    tools: list[Tool] | None = None
    tool_config: ToolConfig | None = None
    system_instruction: Content | None = None
    expire_time: str | None = None
    ttl: str | None = None
    create_time: str | None = None
    update_time: str | None = None


# =============================================================================
# Request/Response Types
# =============================================================================


@dataclass
class GenerateContentRequest(WireModel):
    """A generateContent request in progress.

    ``contents`` is ordered oldest first and is only ever appended to or
    prepended to while the request is prepared.
    """

    contents: list[Content] = field(default_factory=list)
    tools: list[Tool] | None = None
    tool_config: ToolConfig | None = None
    safety_settings: list[SafetySetting] | None = None
    system_instruction: Content | None = None
    generation_config: GenerationConfig | None = None
    cached_content: str | None = None

    @classmethod
    def from_prompt(cls, prompt: str) -> GenerateContentRequest:
        return cls(contents=[Content.from_text(prompt)])

    def add_content(self, content: Content) -> None:
        self.contents.append(content)

    def add_text(self, text: str, role: str = Role.USER.value) -> None:
        self.contents.append(Content.from_text(text, role))

    def add_tool(self, tool: Tool, tool_config: ToolConfig | None = None) -> None:
        if self.tools is None:
            self.tools = []
        self.tools.append(tool)
        self.tool_config = tool_config


@dataclass
class SafetyRating(WireModel):
    category: HarmCategory | None = None
    probability: str | None = None
    blocked: bool | None = None


@dataclass
class PromptFeedback(WireModel):
    block_reason: BlockReason | None = None
    block_reason_message: str | None = None
    safety_ratings: list[SafetyRating] | None = None


@dataclass
class Candidate(WireModel):
    """One alternative completion."""

    content: Content | None = None
    finish_reason: FinishReason | None = None
    finish_message: str | None = None
    safety_ratings: list[SafetyRating] | None = None
    citation_metadata: dict[str, Any] | None = None
    grounding_metadata: dict[str, Any] | None = None
    token_count: int | None = None
    avg_logprobs: float | None = None
    index: int | None = None


@dataclass
class UsageMetadata(WireModel):
    """Token usage information."""

    prompt_token_count: int | None = None
    cached_content_token_count: int | None = None
    candidates_token_count: int | None = None
    tool_use_prompt_token_count: int | None = None
    thoughts_token_count: int | None = None
    total_token_count: int | None = None


@dataclass
class GenerateContentResponse(WireModel):
    """Result of a generateContent call, or one chunk of a streamed one."""

    candidates: list[Candidate] | None = None
    prompt_feedback: PromptFeedback | None = None
    usage_metadata: UsageMetadata | None = None
    model_version: str | None = None
    response_id: str | None = None

    @property
    def first_content(self) -> Content | None:
        if not self.candidates:
            return None
        return self.candidates[0].content

    @property
    def text(self) -> str | None:
        content = self.first_content
        if content is None:
            return None
        return content.text

    @property
    def function_calls(self) -> list[FunctionCall]:
        content = self.first_content
        if content is None:
            return []
        return [part.function_call for part in content.parts if part.function_call is not None]

    @property
    def function_call(self) -> FunctionCall | None:
        """First function call of the first candidate, if any."""
        calls = self.function_calls
        return calls[0] if calls else None


@dataclass
class CountTokensRequest(WireModel):
    contents: list[Content] | None = None
    generate_content_request: dict[str, Any] | None = None


@dataclass
class CountTokensResponse(WireModel):
    total_tokens: int = 0
    cached_content_token_count: int | None = None
    prompt_tokens_details: list[dict[str, Any]] | None = None


# =============================================================================
# Orchestration Types
# =============================================================================


@dataclass
class FunctionCallingBehaviour(WireModel):
    """Controls how function calls requested by the model are handled.

    Attributes:
        auto_call_function: Execute the matching tool when the model asks for it.
        auto_reply_function: Send the tool result back to the model and return
            the model's follow-up instead of the function-call response.
        function_enabled: Advertise registered function tools on requests.
        auto_handle_bad_function_calls: Answer calls to unknown functions with
            an error payload instead of raising.
        max_function_call_rounds: Upper bound on consecutive call/reply rounds
            for one top-level request.
    """

    auto_call_function: bool = True
    auto_reply_function: bool = True
    function_enabled: bool = True
    auto_handle_bad_function_calls: bool = False
    max_function_call_rounds: int = 10


@dataclass
class ChatSessionBackUpData(WireModel):
    """Serializable snapshot of a chat session. Tools are not included."""

    _aliases = {"system_instruction": "systemInstructions"}

    model: str = ""
    history: list[Content] = field(default_factory=list)
    function_calling_behaviour: FunctionCallingBehaviour = field(
        default_factory=FunctionCallingBehaviour
    )
    last_request_content: Content | None = None
    last_response_content: Content | None = None
    generation_config: GenerationConfig | None = None
    safety_settings: list[SafetySetting] | None = None
    system_instruction: str | None = None
    cached_content: CachedContent | None = None
    use_json_mode: bool = False
    use_grounding: bool = False
    use_google_search: bool = False
    use_code_execution_tool: bool = False
    retrieval_tool: Tool | None = None
    tool_config: ToolConfig | None = None


@dataclass
class CodeBlock:
    """A fenced code block found in model output."""

    code: str
    language: str | None = None


_FENCE_RE = re.compile(r"```[ \t]*([\w+#.-]*)[^\n]*\n(.*?)```", re.DOTALL)


def extract_code_blocks(text: str) -> list[CodeBlock]:
    """Return the fenced code blocks of ``text`` in order of appearance."""
    return [
        CodeBlock(code=match.group(2).strip(), language=match.group(1) or None)
        for match in _FENCE_RE.finditer(text)
    ]


def extract_json_blocks(text: str) -> list[str]:
    """Return JSON documents embedded in ``text``.

    Fenced blocks tagged ``json`` (or untagged blocks that parse as JSON) come
    first. When there are none, the whole text is tried as a bare document.
    """
    blocks: list[str] = []
    for block in extract_code_blocks(text):
        if block.language and block.language.lower() != "json":
            continue
        try:
            json.loads(block.code)
        except json.JSONDecodeError:
            continue
        blocks.append(block.code)

    if not blocks:
        stripped = text.strip()
        try:
            json.loads(stripped)
        except json.JSONDecodeError:
            return []
        blocks.append(stripped)
    return blocks


# =============================================================================
# Client Options Types
# =============================================================================


class VertexOptions(TypedDict, total=False):
    project_id: str
    region: str
    access_token: str
    api_version: str


class ClientOptions(TypedDict, total=False):
    """Options for creating a GenAIClient."""

    api_key: str  # Google AI Studio key, defaults to $GOOGLE_API_KEY
    api_version: str
    model: str  # Default model for created models and sessions
    timeout: float  # Request timeout in seconds
    vertex: VertexOptions  # Use Vertex AI instead of Google AI Studio


# =============================================================================
# Constants
# =============================================================================

GOOGLE_AI_BASE_URL = "https://generativelanguage.googleapis.com"
VERTEX_AI_BASE_URL = (
    "https://{region}-aiplatform.googleapis.com/{version}/projects/{project_id}/locations/{region}"
)

API_VERSION_V1 = "v1"
API_VERSION_V1BETA = "v1beta"
API_VERSION_V1BETA1 = "v1beta1"

TASK_GENERATE_CONTENT = "generateContent"
TASK_STREAM_GENERATE_CONTENT = "streamGenerateContent"
TASK_COUNT_TOKENS = "countTokens"

JSON_MIME_TYPE = "application/json"
ENUM_MIME_TYPE = "text/x.enum"

# Sentinel stamped on calls to functions that are not registered
INVALID_FUNCTION_NAME = "InvalidName"
INVALID_FUNCTION_RESPONSE: dict[str, str] = {
    "error": "Invalid function name or function doesn't exist."
}

GEMINI_1_5_FLASH = "gemini-1.5-flash"
GEMINI_1_5_PRO = "gemini-1.5-pro"
GEMINI_2_0_FLASH = "gemini-2.0-flash"
GEMINI_2_5_FLASH = "gemini-2.5-flash"
GEMINI_2_5_PRO = "gemini-2.5-pro"
DEFAULT_GEMINI_MODEL = GEMINI_1_5_FLASH

# Environment variables
ENV_API_KEY = "GOOGLE_API_KEY"
ENV_MODEL = "GOOGLE_AI_MODEL"
ENV_PROJECT_ID = "GOOGLE_PROJECT_ID"
ENV_REGION = "GOOGLE_REGION"
ENV_ACCESS_TOKEN = "GOOGLE_ACCESS_TOKEN"
DEFAULT_REGION = "us-central1"

# HTTP Status codes
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429


def to_model_id(model_name: str) -> str:
    """Normalise a model name to the ``models/<name>`` form.

    Raises:
        ValueError: If the name contains a path that is not ``models/...``.
    """
    if "/" in model_name:
        if model_name.lower().startswith("models/"):
            return model_name
        raise ValueError(f"Invalid model name. {model_name}")
    return f"models/{model_name}"


def get_default_model(custom_model: str | None = None) -> str:
    """Resolve the model to use when none is given explicitly."""
    if custom_model:
        return custom_model
    return os.environ.get(ENV_MODEL) or DEFAULT_GEMINI_MODEL
