"""LLM subsystem.

Provides:
- LLMProvider base class with the bounded tool-calling loop
- Anthropic, OpenAI and Gemini adapters
- ProviderRegistry for choosing an adapter by model id
- MockLLMProvider for testing
- LLMError classes for structured error handling
"""

from stagedit.llm.base import (
    AgentRunResult,
    ImageAttachment,
    LLMProvider,
    LLMResponse,
    Message,
    MockLLMProvider,
    ToolCall,
    ToolCallHistoryItem,
    ToolResult,
    parse_images,
    # Error classes
    LLMError,
    APIKeyError,
    ConnectionError,
    RateLimitError,
    ModelError,
    ContextLengthError,
    ResponseParseError,
    UpstreamProviderError,
)
from stagedit.llm.anthropic import AnthropicProvider
from stagedit.llm.openai import OpenAIProvider
from stagedit.llm.gemini import GeminiProvider
from stagedit.llm.registry import ProviderRegistry

__all__ = [
    # Core classes
    "AgentRunResult",
    "ImageAttachment",
    "LLMProvider",
    "LLMResponse",
    "Message",
    "ToolCall",
    "ToolCallHistoryItem",
    "ToolResult",
    "parse_images",
    # Providers
    "AnthropicProvider",
    "OpenAIProvider",
    "GeminiProvider",
    "MockLLMProvider",
    "ProviderRegistry",
    # Errors
    "LLMError",
    "APIKeyError",
    "ConnectionError",
    "RateLimitError",
    "ModelError",
    "ContextLengthError",
    "ResponseParseError",
    "UpstreamProviderError",
]
