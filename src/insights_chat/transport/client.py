"""Chat transport: the remote insights assistant behind a small async interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from insights_chat.config import TransportConfig
from insights_chat.log import get_logger

logger = get_logger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please check your internet connection."
TIMEOUT_ERROR_MESSAGE = "Request timed out. Please try again."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"


class TransportError(Exception):
    """A failed exchange with the assistant, carrying a human-readable message."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status

    @property
    def unauthorized(self) -> bool:
        return self.status == 401


@dataclass
class ChatReply:
    """One assistant reply. ``charts`` is raw and still needs validation."""

    message: str
    conversation_id: str
    timestamp: str = ""
    processing_time_ms: Optional[float] = None
    charts: list[Any] = field(default_factory=list)
    sequence_number: Optional[int] = None
    token_count: Optional[int] = None


class ChatTransport(ABC):
    """Boundary to the remote assistant. Timeouts are the transport's job."""

    @abstractmethod
    async def send(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        include_charts: bool = True,
    ) -> ChatReply:
        """Send one utterance and return the reply, or raise TransportError."""
        ...

    async def close(self) -> None:
        return None


class _ChatResponseBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str
    conversation_id: str = Field(alias="conversationId")
    timestamp: str = ""
    processing_time_ms: Optional[float] = Field(default=None, alias="processingTimeMs")
    charts: Any = None
    sequence_number: Optional[int] = Field(default=None, alias="sequenceNumber")
    token_count: Optional[int] = Field(default=None, alias="tokenCount")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("message"), str) and body["message"]:
        return body["message"]
    return response.reason_phrase or UNEXPECTED_ERROR_MESSAGE


class HttpChatTransport(ChatTransport):
    """JSON-over-HTTP transport for the admin insights chat endpoint."""

    def __init__(self, config: TransportConfig, client: httpx.AsyncClient | None = None):
        self._endpoint = config.endpoint
        headers = {"Content-Type": "application/json"}
        if config.api_token:
            headers["Authorization"] = f"Bearer {config.api_token}"
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
            headers=headers,
        )
        if client is not None:
            self._client.headers.update(headers)

    async def send(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        include_charts: bool = True,
    ) -> ChatReply:
        body: dict[str, Any] = {"message": message, "includeCharts": include_charts}
        if conversation_id:
            body["conversationId"] = conversation_id

        logger.debug("chat_request", include_charts=include_charts, has_conversation=bool(conversation_id))
        try:
            response = await self._client.post(self._endpoint, json=body)
        except httpx.TimeoutException as e:
            logger.error("chat_timeout", error=str(e))
            raise TransportError(TIMEOUT_ERROR_MESSAGE) from e
        except httpx.TransportError as e:
            logger.error("chat_network_error", error=str(e))
            raise TransportError(NETWORK_ERROR_MESSAGE) from e

        if response.is_error:
            message_text = _error_message(response)
            logger.error("chat_http_error", status=response.status_code, error=message_text)
            raise TransportError(message_text, status=response.status_code)

        try:
            parsed = _ChatResponseBody.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("chat_bad_response", status=response.status_code, error=str(e))
            raise TransportError(UNEXPECTED_ERROR_MESSAGE, status=response.status_code) from e

        logger.debug(
            "chat_response",
            processing_time_ms=parsed.processing_time_ms,
            charts=len(parsed.charts) if isinstance(parsed.charts, list) else 0,
        )
        return ChatReply(
            message=parsed.message,
            conversation_id=parsed.conversation_id,
            timestamp=parsed.timestamp,
            processing_time_ms=parsed.processing_time_ms,
            charts=parsed.charts if isinstance(parsed.charts, list) else [],
            sequence_number=parsed.sequence_number,
            token_count=parsed.token_count,
        )

    async def close(self) -> None:
        await self._client.aclose()
