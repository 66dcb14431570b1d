"""Model backend layer."""

from .adapter import (
    ConversationItem,
    FunctionCall,
    FunctionCallOutput,
    MessageItem,
    ModelAdapter,
    ModelResponse,
    OutputSchema,
    ResponseOptions,
)

__all__ = [
    "ConversationItem",
    "FunctionCall",
    "FunctionCallOutput",
    "MessageItem",
    "ModelAdapter",
    "ModelResponse",
    "OutputSchema",
    "ResponseOptions",
]
