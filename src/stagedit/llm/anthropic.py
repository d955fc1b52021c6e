"""Anthropic Claude implementation (messages-style protocol)."""

from typing import Optional

import anthropic
import httpx

from stagedit.llm.base import (
    LLMProvider, LLMResponse, Message, ToolCall,
    LLMError, APIKeyError, ConnectionError, RateLimitError,
    ModelError, ContextLengthError, ResponseParseError, UpstreamProviderError,
    decode_arguments,
)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def _error_message(e: "anthropic.APIStatusError") -> str:
    """Pull the upstream message out of an error body."""
    body = getattr(e, "body", None)
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    return getattr(e, "message", "") or str(e)


def _parse_anthropic_error(e: Exception, model: str = "") -> LLMError:
    """Convert Anthropic exceptions to structured LLMError."""
    if isinstance(e, anthropic.AuthenticationError):
        return APIKeyError("Anthropic")

    if isinstance(e, anthropic.RateLimitError):
        retry_after = 0
        if getattr(e, "response", None) is not None:
            try:
                retry_after = int(e.response.headers.get("retry-after", 0))
            except ValueError:
                retry_after = 0
        return RateLimitError("Anthropic", retry_after, _error_message(e))

    if isinstance(e, anthropic.NotFoundError):
        return ModelError("Anthropic", model)

    if isinstance(e, anthropic.BadRequestError):
        message = _error_message(e)
        lowered = message.lower()
        if "context length" in lowered or "too long" in lowered:
            return ContextLengthError("Anthropic", message=message)
        return UpstreamProviderError("Anthropic", e.status_code, message, "Check your request format")

    if isinstance(e, anthropic.APIStatusError):
        return UpstreamProviderError("Anthropic", e.status_code, _error_message(e))

    if isinstance(e, anthropic.APIConnectionError):
        return ConnectionError("Anthropic", str(e))

    return LLMError(str(e), "Anthropic")


class AnthropicProvider(LLMProvider):
    """Anthropic Claude LLM provider."""

    name = "Anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        max_iterations: int = 25,
        max_retries: int = 3,
        debug: bool = False,
        ssl_verify: bool | str = True,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize the Anthropic provider.

        Args:
            api_key: Anthropic API key.
            model: Model to use.
            max_tokens: Max output tokens per response.
            max_iterations: Tool-loop ceiling.
            max_retries: Attempts for transient failures.
            debug: Enable debug logging.
            ssl_verify: SSL verification (True, False, or path to CA bundle).
            http_client: Preconfigured httpx client (tests use a mock transport).
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.max_iterations = max_iterations
        self.max_retries = max_retries
        self.debug = debug
        self.ssl_verify = ssl_verify
        self._http_client = http_client
        self._client = None

    @property
    def client(self) -> anthropic.Anthropic:
        """Lazy-load the Anthropic client."""
        if self._client is None:
            if not self.api_key:
                raise APIKeyError("Anthropic")

            http_client = self._http_client
            if http_client is None and self.ssl_verify is not True:
                http_client = httpx.Client(verify=self.ssl_verify)

            # Retries are handled by _retry_with_backoff
            kwargs = {"api_key": self.api_key, "max_retries": 0}
            if http_client is not None:
                kwargs["http_client"] = http_client
            self._client = anthropic.Anthropic(**kwargs)
        return self._client

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        """Convert messages to Anthropic format, images first."""
        converted = []
        for msg in messages:
            if msg.role == "system":
                # System messages go in the system parameter
                continue
            if msg.images:
                blocks = [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": image.media_type,
                            "data": image.data,
                        },
                    }
                    for image in msg.images
                ]
                blocks.append({"type": "text", "text": msg.content})
                converted.append({"role": msg.role, "content": blocks})
            else:
                converted.append({"role": msg.role, "content": msg.content})
        return converted

    def _convert_rounds(self, tool_rounds: list[dict]) -> list[dict]:
        """Encode tool rounds as tool_use / tool_result blocks."""
        converted = []
        for rnd in tool_rounds:
            assistant_blocks = []
            if rnd.get("content"):
                assistant_blocks.append({"type": "text", "text": rnd["content"]})
            for tc in rnd.get("tool_calls", []):
                assistant_blocks.append({
                    "type": "tool_use",
                    "id": tc.id,
                    "name": tc.name,
                    "input": tc.arguments,
                })
            converted.append({"role": "assistant", "content": assistant_blocks})

            converted.append({
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.tool_id,
                        "content": result.content,
                        "is_error": result.is_error,
                    }
                    for result in rnd.get("results", [])
                ],
            })
        return converted

    def _create(self, anthropic_messages: list[dict], tools: list[dict], system: str) -> LLMResponse:
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": anthropic_messages,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools

        self._log_debug("REQUEST", {
            "model": self.model,
            "messages": len(anthropic_messages),
            "tools": len(tools) if tools else 0,
        })

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise _parse_anthropic_error(e, self.model) from e

        result = self._parse_response(response)
        self._log_debug("RESPONSE", {
            "content_length": len(result.content),
            "tool_calls": len(result.tool_calls),
            "stop_reason": result.stop_reason,
        })
        return result

    def chat(
        self,
        messages: list[Message],
        tools: list[dict] = None,
        system: str = None,
    ) -> LLMResponse:
        """Send a chat request to Claude."""
        return self._create(self._convert_messages(messages), tools, system)

    def continue_with_tool_results(
        self,
        messages: list[Message],
        tool_rounds: list[dict],
        tools: list[dict] = None,
        system: str = None,
    ) -> LLMResponse:
        """Continue chat after tool execution."""
        anthropic_messages = self._convert_messages(messages) + self._convert_rounds(tool_rounds)
        return self._create(anthropic_messages, tools, system)

    def _parse_response(self, response) -> LLMResponse:
        """Parse Anthropic response into LLMResponse."""
        content_parts = []
        tool_calls = []

        try:
            blocks = response.content
        except AttributeError as e:
            raise ResponseParseError("Anthropic", str(e)) from e

        for block in blocks:
            if block.type == "text":
                content_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=decode_arguments(block.input),
                ))

        return LLMResponse(
            content="\n".join(content_parts),
            tool_calls=tool_calls,
            stop_reason=response.stop_reason or "end_turn",
        )
