"""
HTTP transport for the Gemini / Vertex AI content generation endpoints.

Features:
- generateContent, streamGenerateContent (SSE) and countTokens
- Google error envelope translation into typed exceptions
- API keys masked in every logged or raised URL

The backend does not retry and does not interpret responses beyond decoding
them; blocked-response checks and function calling live in
:class:`genaikit.model.GenerativeModel`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

import httpx

from .auth import GoogleAIPlatform, Platform, mask_api_key
from .exceptions import (
    APIError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
)
from .types import (
    HTTP_FORBIDDEN,
    HTTP_NOT_FOUND,
    HTTP_TOO_MANY_REQUESTS,
    TASK_COUNT_TOKENS,
    TASK_GENERATE_CONTENT,
    TASK_STREAM_GENERATE_CONTENT,
    CountTokensRequest,
    CountTokensResponse,
    GenerateContentRequest,
    GenerateContentResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 720.0
DEFAULT_USER_AGENT = "genaikit/0.1.0"


class GenerativeBackend:
    """Async transport for one platform (Google AI or Vertex AI).

    Example:
        >>> async with GenerativeBackend(GoogleAIPlatform(api_key="...")) as backend:
        ...     request = GenerateContentRequest.from_prompt("Hello!")
        ...     response = await backend.generate_content("gemini-1.5-flash", request)
        ...     print(response.text)
    """

    def __init__(
        self,
        platform: Platform | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            platform: URL and header provider. Defaults to Google AI with
                ``$GOOGLE_API_KEY``.
            timeout: Request timeout in seconds for an owned client.
            http_client: Pre-configured client. It is not closed by the backend.
        """
        self.platform = platform or GoogleAIPlatform()
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> GenerativeBackend:
        self._get_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create an HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
            self._owns_client = True
        return self._client

    def _build_headers(self) -> dict[str, str]:
        headers = self.platform.get_headers()
        headers.setdefault("User-Agent", DEFAULT_USER_AGENT)
        return headers

    def build_url(self, model: str, task: str = TASK_GENERATE_CONTENT) -> str:
        """Return the endpoint URL for ``task`` on ``model``."""
        return self.platform.build_url(model, task)

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        logger.debug(f"POST {mask_api_key(url)}")
        try:
            client = self._get_client()
            response = await client.post(url, headers=self._build_headers(), json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e, url)
            raise  # _handle_http_error always raises

    async def generate_content(
        self,
        model: str,
        request: GenerateContentRequest,
    ) -> GenerateContentResponse:
        """Send a generateContent request.

        Args:
            model: Model name, with or without the ``models/`` prefix.
            request: The prepared request.

        Returns:
            The decoded response. Candidates are not checked here.

        Raises:
            APIError: If the service answers with a non-success status.
        """
        url = self.build_url(model, TASK_GENERATE_CONTENT)
        data = await self._post(url, request.to_dict())
        return GenerateContentResponse.from_dict(data)

    async def count_tokens(
        self,
        model: str,
        request: CountTokensRequest,
    ) -> CountTokensResponse:
        """Count the tokens of a request without generating."""
        url = self.build_url(model, TASK_COUNT_TOKENS)
        data = await self._post(url, request.to_dict())
        return CountTokensResponse.from_dict(data)

    async def stream_generate_content(
        self,
        model: str,
        request: GenerateContentRequest,
    ) -> AsyncGenerator[GenerateContentResponse, None]:
        """Send a streamGenerateContent request and yield decoded chunks.

        A non-success status raises before the first chunk is produced. An
        error object delivered inside the stream raises :class:`APIError`.
        """
        url = self.build_url(model, TASK_STREAM_GENERATE_CONTENT)
        logger.debug(f"Streaming URL: {mask_api_key(url)}")

        try:
            client = self._get_client()
            async with client.stream(
                method="POST",
                url=url,
                headers=self._build_headers(),
                json=request.to_dict(),
                params={"alt": "sse"},
            ) as response:
                if response.is_error:
                    await response.aread()
                response.raise_for_status()

                async for chunk in self._stream_sse_response(response, url):
                    yield chunk

        except httpx.HTTPStatusError as e:
            self._handle_http_error(e, url)

    def _parse_sse_line(self, line: str) -> tuple[str, str] | None:
        """Parse an SSE line and return (key, value) if valid."""
        if not line or line.startswith(":"):
            return None

        if ":" in line:
            key, value = line.split(":", 1)
            return key.strip(), value.strip()

        return None

    async def _stream_sse_response(
        self, response: httpx.Response, url: str
    ) -> AsyncGenerator[GenerateContentResponse, None]:
        """Stream SSE response and yield chunks."""
        content_type = response.headers.get("content-type", "")
        if "text/event-stream" not in content_type:
            # Without alt=sse the service answers with a JSON array of chunks.
            body = await response.aread()
            for chunk_data in self._parse_json_array(body.decode("utf-8"), url):
                self._handle_chunk_error(chunk_data, url)
                yield GenerateContentResponse.from_dict(chunk_data)
            return

        sse_data_parts: list[str] = []

        async for line in response.aiter_lines():
            line = line.strip()

            if not line:
                if sse_data_parts:
                    event_data = "\n".join(sse_data_parts).strip()
                    sse_data_parts = []
                    chunk = self._decode_event(event_data, url)
                    if chunk is not None:
                        yield chunk
                continue

            parsed = self._parse_sse_line(line)
            if not parsed:
                continue

            key, value = parsed
            if key == "data" and value:
                sse_data_parts.append(value)

        if sse_data_parts:
            chunk = self._decode_event("\n".join(sse_data_parts).strip(), url)
            if chunk is not None:
                yield chunk

    def _decode_event(self, event_data: str, url: str) -> GenerateContentResponse | None:
        if not event_data or event_data == "[DONE]":
            return None
        chunk_data = self._parse_chunk_data(event_data)
        if chunk_data is None:
            return None
        self._handle_chunk_error(chunk_data, url)
        return GenerateContentResponse.from_dict(chunk_data)

    def _parse_json_array(self, body_text: str, url: str) -> list[dict[str, Any]]:
        if not body_text.strip():
            return []
        try:
            data = json.loads(body_text)
        except json.JSONDecodeError as exc:
            raise APIError(
                f"Unexpected API response: {body_text[:200]}",
                status_code=500,
                response_body=body_text,
                endpoint=mask_api_key(url),
            ) from exc
        return data if isinstance(data, list) else [data]

    def _parse_chunk_data(self, value: str) -> dict[str, Any] | None:
        """Parse chunk data from SSE value, returning None on JSON error."""
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.debug("Failed to parse chunk data JSON.")
            return None

    def _handle_chunk_error(self, chunk_data: dict[str, Any], url: str) -> None:
        """Raise if a streamed chunk carries an error object."""
        error_info = chunk_data.get("error")
        if not error_info:
            return
        if isinstance(error_info, dict):
            raise APIError(
                error_info.get("message") or str(error_info),
                status_code=error_info.get("code") or 500,
                status=error_info.get("status"),
                response_body=json.dumps(chunk_data),
                endpoint=mask_api_key(url),
            )
        raise APIError(str(error_info), status_code=500, endpoint=mask_api_key(url))

    def _handle_http_error(self, e: httpx.HTTPStatusError, url: str) -> None:
        """Translate an HTTP error status into a typed exception and raise it."""
        status_code = e.response.status_code
        body = e.response.text
        endpoint = mask_api_key(url)

        # Google error envelope: {"error": {"code", "message", "status"}}
        error_msg = body
        status = None
        try:
            error_data = e.response.json()
        except ValueError:
            error_data = None
        if isinstance(error_data, dict) and isinstance(error_data.get("error"), dict):
            error_msg = error_data["error"].get("message", body)
            status = error_data["error"].get("status")

        if not error_msg:
            error_msg = f"Request to {endpoint} failed with status code {status_code}"

        logger.error(f"Request to {endpoint} failed with status {status_code}: {status}")

        if status_code == HTTP_TOO_MANY_REQUESTS:
            retry_after = e.response.headers.get("retry-after")
            raise RateLimitError(
                message=f"Rate limit exceeded: {error_msg}",
                status=status,
                response_body=body,
                endpoint=endpoint,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            ) from e
        elif status_code == HTTP_FORBIDDEN:
            raise PermissionDeniedError(
                message=f"Permission denied: {error_msg}",
                status=status,
                response_body=body,
                endpoint=endpoint,
            ) from e
        elif status_code == HTTP_NOT_FOUND:
            raise NotFoundError(
                message=f"Not found: {error_msg}",
                status=status,
                response_body=body,
                endpoint=endpoint,
            ) from e
        else:
            raise APIError(
                message=f"API error: {error_msg}",
                status_code=status_code,
                status=status,
                response_body=body,
                endpoint=endpoint,
            ) from e

    async def close(self) -> None:
        """Close the HTTP client if the backend created it."""
        if self._owns_client and self._client:
            await self._client.aclose()
            self._client = None
