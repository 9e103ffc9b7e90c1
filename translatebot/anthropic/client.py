"""
Anthropic Messages API client implementation.

This module handles the request/response exchange with the translation
provider. It performs exactly one HTTP call per request and leaves retry
decisions to the caller.
"""

import asyncio
import aiohttp
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


logger = logging.getLogger(__name__)

BASE_URL = "https://api.anthropic.com"
DEFAULT_VERSION = "2023-06-01"
MESSAGES_ENDPOINT = "/v1/messages"


class AnthropicError(Exception):
    """Base exception for provider-related errors."""
    pass


class AnthropicTimeoutError(AnthropicError):
    """Raised when a provider request times out."""
    pass


class AnthropicAPIError(AnthropicError):
    """Raised when the provider answers with a non-success status."""

    def __init__(self, status: int, error_type: str = "", message: str = ""):
        self.status = status
        self.error_type = error_type
        self.message = message
        if error_type or message:
            super().__init__(f"API error: {status} {error_type} - {message}")
        else:
            super().__init__(f"API error: {status}")


@dataclass
class RequestMessage:
    """One conversation turn in a request."""
    role: str
    content: List[Dict[str, str]]

    @classmethod
    def user_text(cls, text: str) -> 'RequestMessage':
        """Build a user turn carrying a single text block."""
        return cls(role="user", content=[{"type": "text", "text": text}])

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": [dict(block) for block in self.content]}


@dataclass
class MessageRequest:
    """Request body for the Messages endpoint."""
    model: str
    messages: List[RequestMessage]
    max_tokens: int
    system: str = ""
    stream: bool = False
    temperature: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON payload, omitting unset optional fields."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [message.to_dict() for message in self.messages],
            "max_tokens": self.max_tokens,
            "stream": self.stream,
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.system:
            payload["system"] = self.system
        return payload


@dataclass(frozen=True)
class TextBlock:
    """Plain text content block."""
    text: str
    type: str = "text"


@dataclass(frozen=True)
class StructuredBlock:
    """
    Language-tagged content block.

    ``text`` holds the decoded value of the block's ``text`` key, which is
    usually a string but is not guaranteed to be one.
    """
    lang: str
    text: Any
    type: str = "text"


ContentBlock = Union[TextBlock, StructuredBlock]


def decode_content_block(raw: Any) -> Optional[ContentBlock]:
    """
    Decode one entry of a response ``content`` array.

    Returns:
        TextBlock or StructuredBlock, or None for blocks that carry no text
        (for example tool calls)
    """
    if not isinstance(raw, dict):
        return None

    block_type = raw.get("type", "text")
    lang = raw.get("lang")
    if isinstance(lang, str) and "text" in raw:
        return StructuredBlock(lang=lang, text=raw["text"], type=block_type)

    text = raw.get("text")
    if isinstance(text, str):
        return TextBlock(text=text, type=block_type)

    return None


@dataclass
class Usage:
    """Token usage counters."""
    input_tokens: int = 0
    output_tokens: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Usage':
        data = data or {}
        return cls(
            input_tokens=int(data.get("input_tokens") or 0),
            output_tokens=int(data.get("output_tokens") or 0)
        )


@dataclass
class MessageResponse:
    """Successful Messages endpoint response."""
    id: str
    type: str
    role: str
    content: List[ContentBlock]
    model: str
    stop_reason: Optional[str]
    usage: Usage = field(default_factory=Usage)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MessageResponse':
        """Create MessageResponse from decoded JSON, dropping non-text blocks."""
        blocks = []
        for raw_block in data.get("content") or []:
            block = decode_content_block(raw_block)
            if block is not None:
                blocks.append(block)

        return cls(
            id=data.get("id", ""),
            type=data.get("type", ""),
            role=data.get("role", ""),
            content=blocks,
            model=data.get("model", ""),
            stop_reason=data.get("stop_reason"),
            usage=Usage.from_dict(data.get("usage"))
        )


@dataclass
class ErrorResponse:
    """Error body delivered with a non-2xx status."""
    type: str
    error_type: str
    message: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorResponse':
        error = data.get("error") or {}
        return cls(
            type=data.get("type", ""),
            error_type=error.get("type", ""),
            message=error.get("message", "")
        )


class AnthropicClient:
    """
    HTTP client for the Anthropic Messages API.

    Authenticates with the ``x-api-key`` and ``anthropic-version`` headers
    and enforces a total per-call timeout.
    """

    def __init__(self, api_key: str, anthropic_version: str = DEFAULT_VERSION,
                 base_url: str = BASE_URL, timeout: int = 60):
        """
        Initialize the client.

        Args:
            api_key: Provider API key
            anthropic_version: Value of the ``anthropic-version`` header
            base_url: Base URL for the API (e.g., "https://api.anthropic.com")
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.anthropic_version = anthropic_version
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self):
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def _headers(self) -> Dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.anthropic_version,
        }

    async def create_message(self, request: MessageRequest) -> MessageResponse:
        """
        Send one Messages request.

        Args:
            request: The request to send

        Returns:
            Decoded MessageResponse

        Raises:
            AnthropicTimeoutError: If the request times out
            AnthropicAPIError: If the provider answers with status >= 400
            AnthropicError: For transport errors and undecodable bodies
        """
        session = await self._get_session()
        url = f"{self.base_url}{MESSAGES_ENDPOINT}"

        try:
            async with session.post(url, json=request.to_dict(), headers=self._headers()) as response:
                if response.status >= 400:
                    raise await self._api_error(response)

                try:
                    data = await response.json(content_type=None)
                except (json.JSONDecodeError, aiohttp.ContentTypeError, UnicodeDecodeError) as e:
                    raise AnthropicError(f"Invalid response body: {e}")

                if not isinstance(data, dict):
                    raise AnthropicError("Invalid response format from Anthropic")

                message = MessageResponse.from_dict(data)
                logger.debug("Anthropic response received", extra={
                    "model": message.model,
                    "stop_reason": message.stop_reason,
                    "input_tokens": message.usage.input_tokens,
                    "output_tokens": message.usage.output_tokens
                })
                return message

        except asyncio.TimeoutError:
            logger.warning("Anthropic API request timed out", extra={
                "endpoint": MESSAGES_ENDPOINT,
                "timeout": self.timeout
            })
            raise AnthropicTimeoutError(f"Request to {MESSAGES_ENDPOINT} timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            logger.error("Anthropic API client error", extra={
                "endpoint": MESSAGES_ENDPOINT,
                "error": str(e)
            })
            raise AnthropicError(f"Client error: {str(e)}")

    async def _api_error(self, response: aiohttp.ClientResponse) -> AnthropicAPIError:
        """Build an AnthropicAPIError from an error response, tolerating any body."""
        error_text = await response.text()
        try:
            error = ErrorResponse.from_dict(json.loads(error_text))
        except (json.JSONDecodeError, AttributeError, TypeError):
            return AnthropicAPIError(response.status)
        return AnthropicAPIError(response.status, error.error_type, error.message)
