from chatstream.adapters import (
    AnthropicAdapter,
    CanonicalAdapter,
    EventAdapter,
    GeminiAdapter,
    OpenAIAdapter,
    anthropic_text_adapter,
    create_anthropic_adapter,
    create_canonical_adapter,
    create_gemini_adapter,
    create_openai_adapter,
    gemini_text_adapter,
    openai_text_adapter,
)
from chatstream.cancellation import CancellationToken
from chatstream.decoding import (
    DEFAULT_MAX_JSON_DEPTH,
    DEFAULT_MAX_JSON_SIZE,
    safe_json_loads,
)
from chatstream.driver import iter_events, stream_sse
from chatstream.errors import (
    ChatStreamError,
    EmptyResponseBodyError,
    StreamCancelledError,
    StreamHTTPError,
    TurnInProgressError,
)
from chatstream.events import (
    ErrorEvent,
    StreamEvent,
    TextToken,
    ToolContent,
    ToolEnd,
    ToolStart,
)
from chatstream.instrumentation import instrument, uninstrument
from chatstream.message import Message, MessageRole, TextSegment, ToolSegment
from chatstream.provider import (
    AnthropicProvider,
    GeminiProvider,
    ModelProvider,
    OpenAIProvider,
    StreamRequest,
)
from chatstream.runner import Runner, SendParams, TurnResult
from chatstream.session import Session
from chatstream.sse import LineSplitter, SSEParser, SSEParserOptions, parse_line
from chatstream.state import TurnState

__all__ = [
    "AnthropicAdapter",
    "AnthropicProvider",
    "CanonicalAdapter",
    "CancellationToken",
    "ChatStreamError",
    "DEFAULT_MAX_JSON_DEPTH",
    "DEFAULT_MAX_JSON_SIZE",
    "EmptyResponseBodyError",
    "ErrorEvent",
    "EventAdapter",
    "GeminiAdapter",
    "GeminiProvider",
    "LineSplitter",
    "Message",
    "MessageRole",
    "ModelProvider",
    "OpenAIAdapter",
    "OpenAIProvider",
    "Runner",
    "SSEParser",
    "SSEParserOptions",
    "SendParams",
    "Session",
    "StreamCancelledError",
    "StreamEvent",
    "StreamHTTPError",
    "StreamRequest",
    "TextSegment",
    "TextToken",
    "ToolContent",
    "ToolEnd",
    "ToolSegment",
    "ToolStart",
    "TurnInProgressError",
    "TurnResult",
    "TurnState",
    "anthropic_text_adapter",
    "create_anthropic_adapter",
    "create_canonical_adapter",
    "create_gemini_adapter",
    "create_openai_adapter",
    "gemini_text_adapter",
    "instrument",
    "iter_events",
    "openai_text_adapter",
    "parse_line",
    "safe_json_loads",
    "stream_sse",
    "uninstrument",
]
