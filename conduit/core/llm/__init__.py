"""LLM provider subpackage.

Only the canonical types are re-exported here; ``conduit.core.stream``
depends on them, and adapters depend on the stream module.
"""

from conduit.core.llm.types import (
    DeltaChunk,
    LLMMessage,
    LLMRequest,
    LLMResponse,
    ToolDeclaration,
    ToolFunction,
    Usage,
)

__all__ = [
    "DeltaChunk",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "ToolDeclaration",
    "ToolFunction",
    "Usage",
]
