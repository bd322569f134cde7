"""HTTP client for the language tutoring API."""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from confluency.core.exceptions import TutorAPIError
from confluency.models.tutor import (
    ChatRequest,
    ConversationResponse,
    CreateConversationRequest,
)

logger = logging.getLogger(__name__)


class TutorClient:
    """Async client for conversation creation, chat and audio streaming.

    Args:
        base_url: Tutor API root
        timeout: Request timeout in seconds
        client: Preconfigured ``httpx.AsyncClient`` (tests inject a mock transport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_conversation(self, request: CreateConversationRequest) -> ConversationResponse:
        """Start a conversation with the given lesson settings."""
        data = await self._post("/create-conversation", request.model_dump(mode="json"))
        return ConversationResponse.model_validate(data)

    async def send_message(self, request: ChatRequest) -> ConversationResponse:
        """Send a text message and return the updated conversation.

        When the reply has audio, ``message_index`` points at the latest
        assistant message for use with ``audio_stream_url``.
        """
        data = await self._post("/chat", request.model_dump(mode="json"))
        response = ConversationResponse.model_validate(data)
        if response.has_audio and response.history:
            response.message_index = len(response.history) - 1
        return response

    def audio_stream_url(
        self,
        conversation_id: str,
        message_index: int = -1,
        tempo: float = 0.75,
        target_language: str = "es",
        is_muted: bool = False,
    ) -> str:
        query = urlencode(
            {
                "message_index": message_index,
                "tempo": f"{tempo:g}",
                "target_language": target_language,
                "is_muted": "true" if is_muted else "false",
            }
        )
        return f"{self.base_url}/stream-audio/{conversation_id}?{query}"

    async def preconnect(self) -> bool:
        """Warm up the connection to the API. Failures are not errors."""
        try:
            await self._client.head("/")
        except httpx.HTTPError as e:
            logger.debug("Tutor API preconnect failed: %s", e)
            return False
        return True

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.error("Tutor API request to %s failed: %s", path, e)
            raise TutorAPIError(f"Tutor API request failed: {e}") from e

        if response.is_error:
            detail = _error_detail(response)
            logger.error("Tutor API %s responded %d: %s", path, response.status_code, detail)
            raise TutorAPIError(detail, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise TutorAPIError(
                "Tutor API returned invalid JSON", status_code=response.status_code
            ) from e


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return f"Server responded with status: {response.status_code}"
