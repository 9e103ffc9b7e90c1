"""Translation provider client for the Anthropic Messages API."""

from .client import (
    AnthropicClient,
    AnthropicError,
    AnthropicTimeoutError,
    AnthropicAPIError,
    MessageRequest,
    MessageResponse,
    RequestMessage,
    ErrorResponse,
    TextBlock,
    StructuredBlock,
    ContentBlock,
    Usage,
    decode_content_block
)

__all__ = [
    'AnthropicClient',
    'AnthropicError',
    'AnthropicTimeoutError',
    'AnthropicAPIError',
    'MessageRequest',
    'MessageResponse',
    'RequestMessage',
    'ErrorResponse',
    'TextBlock',
    'StructuredBlock',
    'ContentBlock',
    'Usage',
    'decode_content_block'
]
