"""Provider-neutral LLM interface and the bounded tool-calling loop."""

import base64
import binascii
import json
import re
import sys
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, TYPE_CHECKING

from stagedit.style import dim, yellow

if TYPE_CHECKING:
    from stagedit.tools.base import ToolContext
    from stagedit.tools.executor import ToolExecutor


DEFAULT_MAX_ITERATIONS = 25


# =============================================================================
# LLM Error Classes - Structured errors for better debugging
# =============================================================================

class LLMError(Exception):
    """Base exception for LLM errors."""

    def __init__(self, message: str, provider: str = "", suggestion: str = ""):
        self.message = message
        self.provider = provider
        self.suggestion = suggestion
        super().__init__(self.format_message())

    def format_message(self) -> str:
        parts = [f"[{self.provider}] {self.message}" if self.provider else self.message]
        if self.suggestion:
            parts.append(f"\n  Suggestion: {self.suggestion}")
        return "".join(parts)


class APIKeyError(LLMError):
    """API key is missing or invalid."""

    def __init__(self, provider: str, env_var: str = ""):
        env_var = env_var or f"{provider.upper()}_API_KEY"
        super().__init__(
            message="API key not configured",
            provider=provider,
            suggestion=f"Set {env_var} or pass the key in apiKeys"
        )


class ConnectionError(LLMError):
    """Failed to connect to the API."""

    def __init__(self, provider: str, details: str = ""):
        super().__init__(
            message=f"Connection failed: {details}" if details else "Connection failed",
            provider=provider,
            suggestion="Check your internet connection and API endpoint"
        )


class ModelError(LLMError):
    """Model not found or not accessible."""

    def __init__(self, provider: str, model: str):
        self.model = model
        super().__init__(
            message=f"Model '{model}' not available",
            provider=provider,
            suggestion="Check model name or your API plan permissions"
        )


class UpstreamProviderError(LLMError):
    """The provider answered with a non-2xx status."""

    def __init__(self, provider: str, status_code: int = 0, message: str = "", suggestion: str = ""):
        self.status_code = status_code
        text = message or "Request failed"
        if status_code:
            text = f"HTTP {status_code}: {text}"
        super().__init__(message=text, provider=provider, suggestion=suggestion)


class RateLimitError(UpstreamProviderError):
    """Rate limit exceeded."""

    def __init__(self, provider: str, retry_after: int = 0, message: str = ""):
        msg = message or "Rate limit exceeded"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(
            provider=provider,
            status_code=429,
            message=msg,
            suggestion="Wait a moment and try again, or reduce request frequency"
        )
        self.retry_after = retry_after


class ContextLengthError(UpstreamProviderError):
    """Context length exceeded."""

    def __init__(self, provider: str, limit: int = 0, message: str = ""):
        msg = message or "Context length exceeded"
        if limit:
            msg += f" (limit: {limit} tokens)"
        super().__init__(
            provider=provider,
            status_code=400,
            message=msg,
            suggestion="Reduce the prompt or attached file, or use a model with larger context"
        )


class ResponseParseError(LLMError):
    """Failed to parse API response."""

    def __init__(self, provider: str, details: str = ""):
        super().__init__(
            message=f"Failed to parse response: {details}" if details else "Failed to parse response",
            provider=provider,
            suggestion="This may be a temporary API issue - try again"
        )


# =============================================================================
# Conversation types
# =============================================================================

_DATA_URL = re.compile(r"^data:(?P<media>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)


@dataclass
class ImageAttachment:
    """An inline image, base64 encoded."""
    media_type: str
    data: str

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"

    @classmethod
    def from_data_url(cls, url: str) -> Optional["ImageAttachment"]:
        """Parse ``data:<type>;base64,<data>``. Returns None if malformed."""
        match = _DATA_URL.match((url or "").strip())
        if not match or not match.group("media").startswith("image/"):
            return None
        data = match.group("data").strip()
        try:
            base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            return None
        return cls(media_type=match.group("media"), data=data)


def parse_images(urls: Optional[Iterable[str]]) -> list[ImageAttachment]:
    """Decode data URLs, skipping malformed entries."""
    images = []
    for url in urls or []:
        image = ImageAttachment.from_data_url(url) if isinstance(url, str) else None
        if image is not None:
            images.append(image)
    return images


@dataclass
class Message:
    """A chat message."""
    role: str  # "user" or "assistant"
    content: str
    images: list[ImageAttachment] = field(default_factory=list)


@dataclass
class ToolCall:
    """A tool call from the LLM."""
    id: str
    name: str
    arguments: dict = field(default_factory=dict)


@dataclass
class LLMResponse:
    """Response from an LLM."""
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str = "end_turn"

    @property
    def has_tool_calls(self) -> bool:
        """Check if response contains tool calls."""
        return len(self.tool_calls) > 0


@dataclass
class ToolResult:
    """Result from executing a tool, as sent back to the provider."""
    tool_id: str
    name: str
    content: str
    is_error: bool = False
    payload: dict = field(default_factory=dict)


@dataclass
class ToolCallHistoryItem:
    """One entry of the per-run audit log."""
    tool: str
    args: dict
    result: dict

    def to_dict(self) -> dict:
        return {"tool": self.tool, "args": self.args, "result": self.result}


@dataclass
class AgentRunResult:
    """Outcome of one bounded tool-calling run."""
    content: str
    tool_calls: list[ToolCallHistoryItem] = field(default_factory=list)
    turns: int = 0
    exhausted: bool = False


def decode_arguments(raw: Any) -> dict:
    """Decode tool arguments, falling back to {} for anything malformed."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def iteration_limit_message(limit: int) -> str:
    return f"Reached the maximum number of tool iterations ({limit}) without a final answer."


# =============================================================================
# Provider base
# =============================================================================

class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    Subclasses translate a conversation into their wire format in
    ``chat`` and ``continue_with_tool_results``; the tool loop in ``run``
    is shared by all of them.

    Attributes:
        name: Provider name used in errors.
        debug: Enable debug logging of requests/responses.
        max_retries: Maximum attempts for transient failures.
        retry_delay: Base delay between retries (exponential backoff).
        max_iterations: Provider round trips allowed per run.
        max_tokens: Max output tokens per response.
    """

    name: str = "base"
    debug: bool = False
    max_retries: int = 3
    retry_delay: float = 1.0
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    max_tokens: int = 4096

    @abstractmethod
    def chat(
        self,
        messages: list[Message],
        tools: list[dict] = None,
        system: str = None,
    ) -> LLMResponse:
        """Send a chat request to the LLM.

        Args:
            messages: List of chat messages.
            tools: Optional tool schemas in the internal (Anthropic) format.
            system: Optional system prompt.

        Returns:
            LLMResponse with content and/or tool calls.

        Raises:
            LLMError: On any provider failure.
        """
        pass

    @abstractmethod
    def continue_with_tool_results(
        self,
        messages: list[Message],
        tool_rounds: list[dict],
        tools: list[dict] = None,
        system: str = None,
    ) -> LLMResponse:
        """Continue conversation after tool execution.

        Args:
            messages: Initial user/assistant messages.
            tool_rounds: List of tool interaction rounds, each containing:
                - "content": Assistant's text content (str)
                - "tool_calls": List of ToolCall objects
                - "results": List of ToolResult objects
            tools: Tool schemas (to allow more tool calls).
            system: System prompt.

        Returns:
            LLMResponse - may contain more tool calls or final response.
        """
        pass

    def is_available(self) -> bool:
        """Check if the provider is configured (API key set, etc.)."""
        return bool(getattr(self, "api_key", None))

    def run(
        self,
        system_prompt: str,
        user_prompt: str,
        executor: "ToolExecutor",
        context: "ToolContext",
        tools: Optional[list[dict]] = None,
        allowed_tool_names: Optional[Iterable[str]] = None,
        images: Optional[list[ImageAttachment]] = None,
    ) -> AgentRunResult:
        """Drive the tool-calling loop until a final answer or the ceiling.

        Tool calls within one turn run in order, so later calls see the
        overlay changes of earlier ones. Calls to tools outside
        ``allowed_tool_names`` get an error result without reaching the
        executor.

        Raises:
            LLMError: Provider failures abort the run.
            StoreTransportError: Propagated from the executor.
        """
        tools = tools or []
        if allowed_tool_names is None:
            allowed = {tool["name"] for tool in tools}
        else:
            allowed = set(allowed_tool_names)

        messages = [Message(role="user", content=user_prompt, images=list(images or []))]
        tool_rounds: list[dict] = []
        history: list[ToolCallHistoryItem] = []

        for turn in range(1, self.max_iterations + 1):
            if tool_rounds:
                response = self._retry_with_backoff(
                    self.continue_with_tool_results, messages, tool_rounds, tools, system_prompt
                )
            else:
                response = self._retry_with_backoff(self.chat, messages, tools, system_prompt)

            if not response.has_tool_calls:
                self._log_debug("DONE", {"turns": turn, "tool_calls": len(history)})
                return AgentRunResult(content=response.content, tool_calls=history, turns=turn)

            results = []
            for call in response.tool_calls:
                if call.name in allowed:
                    payload = executor.execute(call.name, call.arguments, context)
                else:
                    payload = {"error": f"Tool '{call.name}' is not allowed in current mode"}
                history.append(ToolCallHistoryItem(tool=call.name, args=call.arguments, result=payload))
                results.append(ToolResult(
                    tool_id=call.id,
                    name=call.name,
                    content=json.dumps(payload),
                    is_error="error" in payload,
                    payload=payload,
                ))

            tool_rounds.append({
                "content": response.content,
                "tool_calls": response.tool_calls,
                "results": results,
            })

        self._log_debug("ITERATION LIMIT", {"turns": self.max_iterations})
        return AgentRunResult(
            content=iteration_limit_message(self.max_iterations),
            tool_calls=history,
            turns=self.max_iterations,
            exhausted=True,
        )

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        images: Optional[list[ImageAttachment]] = None,
    ) -> str:
        """Single-shot request without tools."""
        messages = [Message(role="user", content=user_prompt, images=list(images or []))]
        return self._retry_with_backoff(self.chat, messages, None, system_prompt).content

    def _log_debug(self, label: str, data: Any) -> None:
        """Log debug information if debug mode is enabled."""
        if self.debug:
            try:
                formatted = json.dumps(data, indent=2, default=str)
            except (TypeError, ValueError):
                formatted = str(data)
            print(dim(f"[DEBUG {self.name} {label}]\n{formatted}"), file=sys.stderr)

    def _retry_with_backoff(self, func, *args, **kwargs):
        """Execute function with exponential backoff retry.

        Only rate limits and connection failures are retried.

        Raises:
            Last exception if all retries fail.
        """
        attempts = max(1, self.max_retries)
        last_error = None
        for attempt in range(attempts):
            try:
                return func(*args, **kwargs)
            except RateLimitError as e:
                last_error = e
                wait_time = e.retry_after if e.retry_after else (self.retry_delay * (2 ** attempt))
                if attempt < attempts - 1:
                    if self.debug:
                        print(yellow(f"[Retry] Rate limited, waiting {wait_time}s..."), file=sys.stderr)
                    time.sleep(wait_time)
            except ConnectionError as e:
                last_error = e
                wait_time = self.retry_delay * (2 ** attempt)
                if attempt < attempts - 1:
                    if self.debug:
                        print(yellow(f"[Retry] Connection error, waiting {wait_time}s..."), file=sys.stderr)
                    time.sleep(wait_time)

        raise last_error


class MockLLMProvider(LLMProvider):
    """Scripted provider for tests.

    Responses are consumed in order; the last one repeats once the script
    runs out. A scripted exception instance is raised instead of returned.
    """

    name = "Mock"

    def __init__(self, responses: Optional[list] = None, model: str = "mock"):
        self.model = model
        self.responses: list = list(responses or [])
        self.response_index = 0
        self.calls: list[dict] = []
        self.retry_delay = 0.0

    def add_response(self, response) -> None:
        """Add a canned response (LLMResponse, str or exception)."""
        self.responses.append(response)

    def is_available(self) -> bool:
        """Mock is always available."""
        return True

    def _next(self) -> LLMResponse:
        if not self.responses:
            return LLMResponse(content="[Mock] no response scripted")
        index = min(self.response_index, len(self.responses) - 1)
        self.response_index += 1
        item = self.responses[index]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return LLMResponse(content=item)
        return item

    def chat(self, messages, tools=None, system=None) -> LLMResponse:
        self.calls.append({"messages": messages, "tool_rounds": [], "tools": tools, "system": system})
        return self._next()

    def continue_with_tool_results(self, messages, tool_rounds, tools=None, system=None) -> LLMResponse:
        self.calls.append({
            "messages": messages,
            "tool_rounds": list(tool_rounds),
            "tools": tools,
            "system": system,
        })
        return self._next()
