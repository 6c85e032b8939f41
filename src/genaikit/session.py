"""
genaikit Session - multi-turn chat on top of GenerativeModel.

This module provides the ChatSession class. A session prepends its history
to every request it prepares, commits each completed exchange back into the
history, and can be backed up to and restored from plain JSON data.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import AsyncGenerator, Iterator
from contextlib import aclosing, contextmanager
from typing import Any

from .backend import GenerativeBackend
from .exceptions import SessionBusyError
from .model import ContentInput, GenerationPolicy, GenerativeModel, to_request
from .tools import BaseFunctionTool
from .types import (
    ChatSessionBackUpData,
    Content,
    GenerateContentRequest,
    GenerateContentResponse,
    Role,
)

logger = logging.getLogger(__name__)


class ChatSession(GenerativeModel):
    """
    A conversation with a Gemini model.

    Only one call may be in flight per session; overlapping calls raise
    :class:`SessionBusyError`.

    Example:
        >>> chat = model.start_chat()
        >>> response = await chat.generate_content("Hi, I'm Ada.")
        >>> response = await chat.generate_content("What's my name?")
        >>> len(chat.history)
        4
    """

    def __init__(
        self,
        model: str | None = None,
        *,
        history: list[Content] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the session.

        Args:
            model: Model name.
            history: Initial conversation, oldest first.
            **kwargs: Model settings, as accepted by :class:`GenerativeModel`.
        """
        super().__init__(model, **kwargs)
        self._history: list[Content] = list(history or [])
        self.last_request_content: Content | None = None
        self.last_response_content: Content | None = None
        self._flight: object | None = None

    @property
    def history(self) -> list[Content]:
        """The conversation so far. Append-only while the session is in use."""
        return self._history

    @history.setter
    def history(self, value: list[Content]) -> None:
        self._history = list(value)
        self.last_request_content = None
        self.last_response_content = None

    def _enter_flight(self) -> object:
        if self._flight is not None:
            raise SessionBusyError()
        token = object()
        self._flight = token
        return token

    def _leave_flight(self, token: object) -> None:
        if self._flight is token:
            self._flight = None

    @contextmanager
    def _single_flight(self) -> Iterator[None]:
        token = self._enter_flight()
        try:
            yield
        finally:
            self._leave_flight(token)

    def prepare_request(
        self,
        request: GenerateContentRequest,
        policy: GenerationPolicy | None = None,
    ) -> GenerateContentRequest:
        """Prepend the history, then apply the model's preparation."""
        if self._history and not any(content is self._history[0] for content in request.contents):
            request.contents[0:0] = self._history
        return super().prepare_request(request, policy)

    def _regeneration_excludes(self, policy: GenerationPolicy) -> list[Content]:
        return [*super()._regeneration_excludes(policy), *self._history]

    async def generate_content(self, request: ContentInput) -> GenerateContentResponse:
        """Send a message and add the exchange to the history.

        Exchanges that end in an unresolved function call, or that carry a
        function response, are not added.
        """
        request = to_request(request)
        with self._single_flight():
            response = await super().generate_content(request)
            self._update_history(request, response)
            return response

    def _update_history(
        self,
        request: GenerateContentRequest,
        response: GenerateContentResponse,
    ) -> None:
        if response.function_call is not None:
            return
        if any(content.has_function_response() for content in request.contents):
            return
        if not request.contents:
            return

        request_content = request.contents[-1]
        if request_content.role is None:
            request_content.role = Role.USER.value

        response_content = response.first_content or Content()
        if response_content.role is None:
            response_content.role = Role.MODEL.value

        self._history.append(request_content)
        self._history.append(response_content)
        self.last_request_content = request_content
        self.last_response_content = response_content
        logger.debug(f"History now holds {len(self._history)} entries")

    async def stream_content(
        self,
        request: ContentInput,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[GenerateContentResponse, None]:
        """Stream a reply and add the exchange to the history once complete.

        The committed model turn holds the concatenated text of all chunks.
        A cancelled stream leaves the history untouched.

        Raises:
            SessionBusyError: On entry, or when the stream is resumed while
                another call is in flight.
        """
        request = to_request(request)
        new_contents = [
            content
            for content in request.contents
            if not any(content is entry for entry in self._history)
        ]

        # The session is only held while the stream runs, not while the
        # caller holds a chunk. An abandoned stream never blocks the session.
        token = self._enter_flight()
        try:
            text_parts: list[str] = []
            async with aclosing(super().stream_content(request, cancel_event)) as stream:
                async for chunk in stream:
                    if chunk.text:
                        text_parts.append(chunk.text)
                    self._leave_flight(token)
                    yield chunk
                    token = self._enter_flight()

            if cancel_event is not None and cancel_event.is_set():
                return
            self._commit_stream(new_contents, "".join(text_parts))
        finally:
            self._leave_flight(token)

    def _commit_stream(self, new_contents: list[Content], text: str) -> None:
        response_content = Content.from_text(text, role=Role.MODEL.value)
        request_content = next(
            (
                content
                for content in new_contents
                if content.role in (None, Role.USER.value) and not content.has_function_response()
            ),
            None,
        )

        if request_content is not None:
            if request_content.role is None:
                request_content.role = Role.USER.value
            self._history.append(request_content)
            self._history.append(response_content)
            self.last_request_content = request_content
        self.last_response_content = response_content

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def create_backup(self) -> ChatSessionBackUpData:
        """Snapshot the session. Function tools are not part of the backup."""
        return ChatSessionBackUpData(
            model=self.model,
            history=copy.deepcopy(self._history),
            function_calling_behaviour=copy.copy(self.function_calling_behaviour),
            last_request_content=copy.deepcopy(self.last_request_content),
            last_response_content=copy.deepcopy(self.last_response_content),
            generation_config=copy.deepcopy(self.generation_config),
            safety_settings=copy.deepcopy(self.safety_settings),
            system_instruction=self.system_instruction,
            cached_content=copy.deepcopy(self.cached_content),
            use_json_mode=self.use_json_mode,
            use_grounding=self.use_grounding,
            use_google_search=self.use_google_search,
            use_code_execution_tool=self.use_code_execution_tool,
            retrieval_tool=copy.deepcopy(self.retrieval_tool),
            tool_config=copy.deepcopy(self.tool_config),
        )

    @classmethod
    def from_backup(
        cls,
        data: ChatSessionBackUpData,
        *,
        tools: list[BaseFunctionTool] | None = None,
        backend: GenerativeBackend | None = None,
        **kwargs: Any,
    ) -> ChatSession:
        """Rebuild a session from :meth:`create_backup` data.

        Args:
            data: The backup.
            tools: Function tools to register again.
            backend: Transport to use. Other keyword arguments (``api_key``,
                ``platform``) are passed on when no backend is given.
        """
        session = cls(
            data.model or None,
            history=copy.deepcopy(data.history),
            backend=backend,
            generation_config=copy.deepcopy(data.generation_config),
            safety_settings=copy.deepcopy(data.safety_settings),
            system_instruction=data.system_instruction,
            tools=tools,
            tool_config=copy.deepcopy(data.tool_config),
            function_calling_behaviour=copy.copy(data.function_calling_behaviour),
            cached_content=copy.deepcopy(data.cached_content),
            retrieval_tool=copy.deepcopy(data.retrieval_tool),
            use_json_mode=data.use_json_mode,
            use_grounding=data.use_grounding,
            use_google_search=data.use_google_search,
            use_code_execution_tool=data.use_code_execution_tool,
            **kwargs,
        )
        session.last_request_content = copy.deepcopy(data.last_request_content)
        session.last_response_content = copy.deepcopy(data.last_response_content)
        return session
