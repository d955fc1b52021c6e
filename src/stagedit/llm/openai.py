"""OpenAI implementation (chat-completion protocol)."""

import json
from typing import Optional

import httpx
import openai

from stagedit.llm.base import (
    LLMProvider, LLMResponse, Message, ToolCall,
    LLMError, APIKeyError, ConnectionError, RateLimitError,
    ModelError, ContextLengthError, ResponseParseError, UpstreamProviderError,
    decode_arguments,
)

DEFAULT_MODEL = "gpt-4o"


def _error_message(e: "openai.APIStatusError") -> str:
    body = getattr(e, "body", None)
    if isinstance(body, dict):
        # Some gateways nest the payload under "error"
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    return getattr(e, "message", "") or str(e)


def _parse_openai_error(e: Exception, model: str = "") -> LLMError:
    """Convert OpenAI exceptions to structured LLMError."""
    if isinstance(e, openai.AuthenticationError):
        return APIKeyError("OpenAI")

    if isinstance(e, openai.RateLimitError):
        return RateLimitError("OpenAI", message=_error_message(e))

    if isinstance(e, openai.NotFoundError):
        return ModelError("OpenAI", model)

    if isinstance(e, openai.BadRequestError):
        message = _error_message(e)
        lowered = message.lower()
        if "context_length" in lowered or "maximum context" in lowered:
            return ContextLengthError("OpenAI", message=message)
        return UpstreamProviderError("OpenAI", e.status_code, message, "Check your request format")

    if isinstance(e, openai.APIStatusError):
        return UpstreamProviderError("OpenAI", e.status_code, _error_message(e))

    if isinstance(e, openai.APIConnectionError):
        return ConnectionError("OpenAI", str(e))

    return LLMError(str(e), "OpenAI")


class OpenAIProvider(LLMProvider):
    """OpenAI LLM provider.

    Supports any chat-completion model: gpt-4o, gpt-4.1, o3-mini, etc.
    """

    name = "OpenAI"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        max_tokens: int = 4096,
        max_iterations: int = 25,
        max_retries: int = 3,
        debug: bool = False,
        ssl_verify: bool | str = True,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize the OpenAI provider.

        Args:
            api_key: OpenAI API key.
            model: Any OpenAI model name.
            base_url: Optional custom base URL (for Azure, proxies, etc.)
            max_tokens: Max output tokens per response.
            max_iterations: Tool-loop ceiling.
            max_retries: Attempts for transient failures.
            debug: Enable debug logging.
            ssl_verify: SSL verification (True, False, or path to CA bundle).
            http_client: Preconfigured httpx client.
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.max_iterations = max_iterations
        self.max_retries = max_retries
        self.debug = debug
        self.ssl_verify = ssl_verify
        self._http_client = http_client
        self._client = None

    @property
    def client(self) -> openai.OpenAI:
        """Lazy-load the OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise APIKeyError("OpenAI")

            kwargs = {"api_key": self.api_key, "max_retries": 0}
            if self.base_url:
                kwargs["base_url"] = self.base_url

            if self._http_client is not None:
                kwargs["http_client"] = self._http_client
            elif self.ssl_verify is not True:
                kwargs["http_client"] = httpx.Client(verify=self.ssl_verify)

            self._client = openai.OpenAI(**kwargs)
        return self._client

    def _convert_tools(self, anthropic_tools: list[dict]) -> list[dict]:
        """Convert Anthropic tool format to OpenAI function format."""
        openai_tools = []
        for tool in anthropic_tools:
            openai_tools.append({
                "type": "function",
                "function": {
                    "name": tool.get("name", ""),
                    "description": tool.get("description", ""),
                    "parameters": tool.get("input_schema", {}),
                }
            })
        return openai_tools

    def _convert_messages(self, messages: list[Message], system: str = None) -> list[dict]:
        openai_messages = []
        if system:
            openai_messages.append({"role": "system", "content": system})

        for msg in messages:
            if msg.role == "system":
                continue
            if msg.images:
                parts = [{"type": "text", "text": msg.content}]
                parts += [
                    {"type": "image_url", "image_url": {"url": image.data_url}}
                    for image in msg.images
                ]
                openai_messages.append({"role": msg.role, "content": parts})
            else:
                openai_messages.append({"role": msg.role, "content": msg.content})
        return openai_messages

    def _convert_rounds(self, tool_rounds: list[dict]) -> list[dict]:
        """Assistant message with tool_calls, then one tool message per result."""
        converted = []
        for rnd in tool_rounds:
            converted.append({
                "role": "assistant",
                "content": rnd.get("content") or None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        }
                    }
                    for tc in rnd.get("tool_calls", [])
                ],
            })
            for result in rnd.get("results", []):
                converted.append({
                    "role": "tool",
                    "tool_call_id": result.tool_id,
                    "content": result.content,
                })
        return converted

    def _create(self, openai_messages: list[dict], tools: list[dict]) -> LLMResponse:
        kwargs = {
            "model": self.model,
            "messages": openai_messages,
            "max_completion_tokens": self.max_tokens,
        }
        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        self._log_debug("REQUEST", {
            "model": self.model,
            "messages": len(openai_messages),
            "tools": len(kwargs.get("tools", [])),
        })

        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise _parse_openai_error(e, self.model) from e

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
        """Send a chat request to OpenAI."""
        return self._create(self._convert_messages(messages, system), tools)

    def continue_with_tool_results(
        self,
        messages: list[Message],
        tool_rounds: list[dict],
        tools: list[dict] = None,
        system: str = None,
    ) -> LLMResponse:
        """Continue chat after tool execution.

        OpenAI format:
        1. Previous messages
        2. For each tool round:
           - Assistant message with tool_calls
           - Tool messages with results for each tool call
        """
        openai_messages = self._convert_messages(messages, system) + self._convert_rounds(tool_rounds)
        return self._create(openai_messages, tools)

    def _parse_response(self, response) -> LLMResponse:
        """Parse OpenAI response into LLMResponse."""
        if not response.choices:
            raise ResponseParseError("OpenAI", "no choices in response")
        choice = response.choices[0]
        message = choice.message

        tool_calls = []
        for tc in message.tool_calls or []:
            tool_calls.append(ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=decode_arguments(tc.function.arguments),
            ))

        return LLMResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            stop_reason=choice.finish_reason or "stop",
        )
