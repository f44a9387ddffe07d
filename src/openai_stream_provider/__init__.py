from .config import ProviderClientOptions
from .contracts import FinishReason, ModelDescriptor, ProviderResponse, TokenUsage, ToolInfo
from .errors import (
    AuthenticationError,
    ConfigurationError,
    ErrorKind,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    StreamCancelledError,
    TransportError,
    UpstreamAPIError,
    UpstreamProtocolError,
)
from .events import EventType, StreamEvent
from .message import (
    BinaryContent,
    Finish,
    ImageURLContent,
    Message,
    ReasoningContent,
    Role,
    TextContent,
    ToolCall,
    ToolResult,
)
from .provider import OpenAIProvider
from .tiering import ModelType
from .variant import ProviderVariant, classify

__all__ = [
    "AuthenticationError",
    "BinaryContent",
    "ConfigurationError",
    "ErrorKind",
    "EventType",
    "Finish",
    "FinishReason",
    "ImageURLContent",
    "Message",
    "ModelDescriptor",
    "ModelType",
    "OpenAIProvider",
    "ProviderClientOptions",
    "ProviderError",
    "ProviderResponse",
    "ProviderVariant",
    "RateLimitError",
    "ReasoningContent",
    "RequestTimeoutError",
    "Role",
    "StreamCancelledError",
    "StreamEvent",
    "TextContent",
    "TokenUsage",
    "ToolCall",
    "ToolInfo",
    "ToolResult",
    "TransportError",
    "UpstreamAPIError",
    "UpstreamProtocolError",
    "classify",
]
