"""
Platform adapters for Google AI Studio and Vertex AI.

A platform knows how to turn a model name and a task (``generateContent``,
``streamGenerateContent``, ``countTokens``) into a URL, and which headers
authenticate the request. Credentials fall back to environment variables:

- ``GOOGLE_API_KEY`` for Google AI Studio
- ``GOOGLE_PROJECT_ID``, ``GOOGLE_REGION`` and ``GOOGLE_ACCESS_TOKEN`` for Vertex AI
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod

from .exceptions import AuthenticationError, ConfigurationError
from .types import (
    API_VERSION_V1,
    API_VERSION_V1BETA,
    DEFAULT_REGION,
    ENV_ACCESS_TOKEN,
    ENV_API_KEY,
    ENV_PROJECT_ID,
    ENV_REGION,
    GOOGLE_AI_BASE_URL,
    VERTEX_AI_BASE_URL,
    to_model_id,
)

logger = logging.getLogger(__name__)

_API_KEY_QUERY_RE = re.compile(r"([?&]key=)[^&#]*")


def mask_api_key(url: str) -> str:
    """Replace an API key passed as ``key=`` query parameter with a placeholder."""
    return _API_KEY_QUERY_RE.sub(r"\1Google_API_Key", url)


class Platform(ABC):
    """Resolves endpoint URLs and authentication headers for one API surface."""

    api_version: str

    @abstractmethod
    def build_url(self, model: str, task: str) -> str:
        """Return the full URL for ``task`` on ``model``."""

    @abstractmethod
    def get_headers(self) -> dict[str, str]:
        """Return the headers that authenticate a request."""


class GoogleAIPlatform(Platform):
    """Google AI Studio (generativelanguage.googleapis.com), API key auth.

    Example:
        >>> platform = GoogleAIPlatform(api_key="...")
        >>> platform.build_url("gemini-1.5-flash", "generateContent")
        'https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent'
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_version: str = API_VERSION_V1BETA,
        base_url: str = GOOGLE_AI_BASE_URL,
    ) -> None:
        """Initialize the platform.

        Args:
            api_key: API key. Falls back to ``$GOOGLE_API_KEY``.
            api_version: REST API version segment.
            base_url: Service root, overridable for proxies.

        Raises:
            AuthenticationError: If no API key is available.
        """
        api_key = api_key or os.environ.get(ENV_API_KEY)
        if not api_key:
            raise AuthenticationError(
                f"API key is required. Pass api_key or set ${ENV_API_KEY}.",
                {"env": ENV_API_KEY},
            )
        self._api_key = api_key
        self.api_version = api_version
        self.base_url = base_url.rstrip("/")

    def build_url(self, model: str, task: str) -> str:
        return f"{self.base_url}/{self.api_version}/{to_model_id(model)}:{task}"

    def get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self._api_key,
        }


class VertexAIPlatform(Platform):
    """Vertex AI publisher models, bearer token auth.

    The access token is taken as given. Obtaining or refreshing it (gcloud,
    service accounts, workload identity) is left to the caller, who can swap
    it with :meth:`set_access_token`.
    """

    def __init__(
        self,
        project_id: str | None = None,
        region: str | None = None,
        access_token: str | None = None,
        api_version: str = API_VERSION_V1,
    ) -> None:
        project_id = project_id or os.environ.get(ENV_PROJECT_ID)
        if not project_id:
            raise ConfigurationError(
                f"Vertex AI needs a project id. Pass project_id or set ${ENV_PROJECT_ID}.",
                "project_id",
            )
        access_token = access_token or os.environ.get(ENV_ACCESS_TOKEN)
        if not access_token:
            raise AuthenticationError(
                f"Vertex AI needs an access token. Pass access_token or set ${ENV_ACCESS_TOKEN}.",
                {"env": ENV_ACCESS_TOKEN},
            )

        self.project_id = project_id
        self.region = region or os.environ.get(ENV_REGION) or DEFAULT_REGION
        self.api_version = api_version
        self._access_token = access_token

    @property
    def base_url(self) -> str:
        return VERTEX_AI_BASE_URL.format(
            region=self.region,
            version=self.api_version,
            project_id=self.project_id,
        )

    def set_access_token(self, access_token: str) -> None:
        logger.debug("Vertex AI access token replaced")
        self._access_token = access_token

    def build_url(self, model: str, task: str) -> str:
        model_name = to_model_id(model).split("/", 1)[1]
        return f"{self.base_url}/publishers/google/models/{model_name}:{task}"

    def get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._access_token}",
        }
