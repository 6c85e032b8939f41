"""
genaikit - An async Python SDK for Google Gemini and Vertex AI.

This SDK provides typed request/response models, a GenerativeModel with
automatic function calling, JSON and enum output, and ChatSession for
multi-turn conversations with backup and restore.

Example:
    >>> from genaikit import GenAIClient, define_tool
    >>>
    >>> @define_tool()
    ... def get_weather(city: str) -> str:
    ...     '''Get the current weather for a city.'''
    ...     return f"Sunny in {city}"
    >>>
    >>> async def main():
    ...     async with GenAIClient() as client:
    ...         chat = client.start_chat("gemini-1.5-flash", tools=[get_weather])
    ...         response = await chat.generate_content("Weather in Paris?")
    ...         print(response.text)
    ...
    >>> import asyncio
    >>> asyncio.run(main())
"""

__version__ = "0.1.0"

# Platforms
from .auth import GoogleAIPlatform, Platform, VertexAIPlatform, mask_api_key

# Backend
from .backend import GenerativeBackend

# Client
from .client import GenAIClient

# Exceptions
from .exceptions import (
    APIError,
    AuthenticationError,
    BlockedResponseError,
    CachedContentModelMismatchError,
    ConfigurationError,
    FunctionCallLimitError,
    GenAIKitError,
    GenerativeAIError,
    IncompatibleModeError,
    InvalidFunctionCallError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    SessionBusyError,
    SessionError,
    ToolError,
    ToolNotFoundError,
)

# Models
from .model import GenerationPolicy, GenerativeModel
from .schema import schema_for
from .session import ChatSession

# Tools
from .tools import (
    BaseFunctionTool,
    GenericFunctionTool,
    QuickTool,
    ToolRegistry,
    define_tool,
)

# Types
from .types import (
    DEFAULT_GEMINI_MODEL,
    GEMINI_1_5_FLASH,
    GEMINI_1_5_PRO,
    GEMINI_2_0_FLASH,
    GEMINI_2_5_FLASH,
    GEMINI_2_5_PRO,
    INVALID_FUNCTION_NAME,
    Blob,
    BlockReason,
    CachedContent,
    Candidate,
    ChatSessionBackUpData,
    ClientOptions,
    Content,
    CountTokensRequest,
    CountTokensResponse,
    FileData,
    FinishReason,
    FunctionCall,
    FunctionCallingBehaviour,
    FunctionCallingConfig,
    FunctionCallingMode,
    FunctionDeclaration,
    FunctionResponse,
    GenerateContentRequest,
    GenerateContentResponse,
    GenerationConfig,
    HarmBlockThreshold,
    HarmCategory,
    Part,
    PromptFeedback,
    Role,
    SafetySetting,
    ThinkingConfig,
    Tool,
    ToolConfig,
    UsageMetadata,
    VertexOptions,
    VertexRetrievalTool,
    extract_code_blocks,
    extract_json_blocks,
    to_model_id,
)

__all__ = [
    # Version
    "__version__",
    # Client
    "GenAIClient",
    # Models
    "GenerativeModel",
    "GenerationPolicy",
    "ChatSession",
    # Platforms and backend
    "Platform",
    "GoogleAIPlatform",
    "VertexAIPlatform",
    "GenerativeBackend",
    "mask_api_key",
    # Tools
    "BaseFunctionTool",
    "QuickTool",
    "GenericFunctionTool",
    "ToolRegistry",
    "define_tool",
    "schema_for",
    # Types - Content
    "Role",
    "Content",
    "Part",
    "Blob",
    "FileData",
    "FunctionCall",
    "FunctionResponse",
    # Types - Requests
    "GenerateContentRequest",
    "GenerationConfig",
    "ThinkingConfig",
    "SafetySetting",
    "HarmCategory",
    "HarmBlockThreshold",
    "CountTokensRequest",
    # Types - Responses
    "GenerateContentResponse",
    "Candidate",
    "FinishReason",
    "BlockReason",
    "PromptFeedback",
    "UsageMetadata",
    "CountTokensResponse",
    # Types - Tools
    "Tool",
    "ToolConfig",
    "FunctionDeclaration",
    "FunctionCallingConfig",
    "FunctionCallingMode",
    "FunctionCallingBehaviour",
    "VertexRetrievalTool",
    "CachedContent",
    # Types - Sessions and options
    "ChatSessionBackUpData",
    "ClientOptions",
    "VertexOptions",
    # Helpers and constants
    "extract_code_blocks",
    "extract_json_blocks",
    "to_model_id",
    "INVALID_FUNCTION_NAME",
    "DEFAULT_GEMINI_MODEL",
    "GEMINI_1_5_FLASH",
    "GEMINI_1_5_PRO",
    "GEMINI_2_0_FLASH",
    "GEMINI_2_5_FLASH",
    "GEMINI_2_5_PRO",
    # Exceptions
    "GenAIKitError",
    "AuthenticationError",
    "ConfigurationError",
    "IncompatibleModeError",
    "CachedContentModelMismatchError",
    "GenerativeAIError",
    "BlockedResponseError",
    "InvalidFunctionCallError",
    "FunctionCallLimitError",
    "APIError",
    "RateLimitError",
    "PermissionDeniedError",
    "NotFoundError",
    "SessionError",
    "SessionBusyError",
    "ToolError",
    "ToolNotFoundError",
]
