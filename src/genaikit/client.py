"""
genaikit Client - Main entry point for the SDK.

This module provides the GenAIClient class, which owns the transport for one
platform (Google AI Studio or Vertex AI) and creates models and chat sessions
sharing it.

Example:
    >>> from genaikit import GenAIClient
    >>>
    >>> async def main():
    ...     async with GenAIClient({"model": "gemini-1.5-flash"}) as client:
    ...         chat = client.start_chat()
    ...         response = await chat.generate_content("Hello!")
    ...         print(response.text)
"""

from __future__ import annotations

import logging
from typing import Any

from .auth import GoogleAIPlatform, Platform, VertexAIPlatform
from .backend import DEFAULT_TIMEOUT, GenerativeBackend
from .model import GenerativeModel
from .session import ChatSession
from .tools import BaseFunctionTool
from .types import (
    API_VERSION_V1,
    API_VERSION_V1BETA,
    ChatSessionBackUpData,
    ClientOptions,
    Content,
    get_default_model,
)

logger = logging.getLogger(__name__)


class GenAIClient:
    """
    Factory for models and chat sessions over one shared backend.

    Attributes:
        options: The configuration options for the client.

    Example:
        >>> # Google AI Studio, key from $GOOGLE_API_KEY
        >>> client = GenAIClient()
        >>>
        >>> # Vertex AI
        >>> client = GenAIClient({"vertex": {"project_id": "my-project"}})
        >>> model = client.generative_model("gemini-1.5-pro")
        >>> await client.close()
    """

    def __init__(self, options: ClientOptions | None = None) -> None:
        """Initialize the GenAIClient.

        Args:
            options: Optional configuration options.
        """
        self._options: ClientOptions = options or {}
        self._backend: GenerativeBackend | None = None

    @property
    def options(self) -> ClientOptions:
        """Get the client options."""
        return self._options

    async def __aenter__(self) -> GenAIClient:
        """Enter async context manager."""
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()

    def _create_platform(self) -> Platform:
        vertex = self._options.get("vertex")
        if vertex is not None:
            return VertexAIPlatform(
                project_id=vertex.get("project_id"),
                region=vertex.get("region"),
                access_token=vertex.get("access_token"),
                api_version=vertex.get("api_version", API_VERSION_V1),
            )
        return GoogleAIPlatform(
            api_key=self._options.get("api_key"),
            api_version=self._options.get("api_version", API_VERSION_V1BETA),
        )

    def start(self) -> GenerativeBackend:
        """
        Create the backend if needed and return it.

        Raises:
            AuthenticationError: If credentials for the platform are missing.
            ConfigurationError: If the Vertex AI project id is missing.
        """
        if self._backend is None:
            platform = self._create_platform()
            self._backend = GenerativeBackend(
                platform,
                timeout=self._options.get("timeout", DEFAULT_TIMEOUT),
            )
            logger.debug(f"Client started for {type(platform).__name__}")
        return self._backend

    @property
    def backend(self) -> GenerativeBackend:
        return self.start()

    def generative_model(self, model: str | None = None, **settings: Any) -> GenerativeModel:
        """
        Create a model sharing the client's backend.

        Args:
            model: Model name. Defaults to the ``model`` option.
            **settings: Model settings, as accepted by :class:`GenerativeModel`.
        """
        return GenerativeModel(
            get_default_model(model or self._options.get("model")),
            backend=self.start(),
            **settings,
        )

    def start_chat(
        self,
        model: str | None = None,
        history: list[Content] | None = None,
        **settings: Any,
    ) -> ChatSession:
        """Create a chat session sharing the client's backend."""
        return ChatSession(
            get_default_model(model or self._options.get("model")),
            history=history,
            backend=self.start(),
            **settings,
        )

    def restore_chat(
        self,
        backup: ChatSessionBackUpData | dict[str, Any],
        tools: list[BaseFunctionTool] | None = None,
    ) -> ChatSession:
        """
        Rebuild a chat session from a backup.

        Args:
            backup: Backup data, or its ``to_dict()`` form.
            tools: Function tools to register on the restored session.
        """
        if isinstance(backup, dict):
            backup = ChatSessionBackUpData.from_dict(backup)
        return ChatSession.from_backup(backup, tools=tools, backend=self.start())

    async def close(self) -> None:
        """Close the backend. Models and sessions created by the client stop working."""
        if self._backend is not None:
            await self._backend.close()
            self._backend = None
