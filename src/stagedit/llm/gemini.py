"""Google Gemini implementation (generative-chat protocol over REST)."""

import itertools
from typing import Any, Optional

import httpx

from stagedit.llm.base import (
    LLMProvider, LLMResponse, Message, ToolCall,
    LLMError, APIKeyError, ConnectionError, RateLimitError, ModelError,
    ContextLengthError, ResponseParseError, UpstreamProviderError,
    decode_arguments,
)

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def convert_schema(schema: Any) -> Any:
    """Upper-case JSON-schema type names the way Gemini expects them."""
    if isinstance(schema, dict):
        converted = {}
        for key, value in schema.items():
            if key == "type" and isinstance(value, str):
                converted[key] = value.upper()
            else:
                converted[key] = convert_schema(value)
        return converted
    if isinstance(schema, list):
        return [convert_schema(item) for item in schema]
    return schema


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return response.text[:500] or response.reason_phrase


def _parse_gemini_error(response: httpx.Response, model: str = "") -> LLMError:
    """Map a non-2xx response to a structured error."""
    message = _error_message(response)
    status = response.status_code

    if status in (401, 403) and "api key" in message.lower():
        return APIKeyError("Gemini", "GEMINI_API_KEY")
    if status == 429:
        try:
            retry_after = int(response.headers.get("retry-after", 0))
        except ValueError:
            retry_after = 0
        return RateLimitError("Gemini", retry_after, message)
    if status == 404:
        return ModelError("Gemini", model)
    if status == 400 and ("token" in message.lower() and "exceed" in message.lower()):
        return ContextLengthError("Gemini", message=message)
    return UpstreamProviderError("Gemini", status, message)


class GeminiProvider(LLMProvider):
    """Gemini provider talking to the generateContent REST endpoint.

    The wire format has no tool call ids, so ids are synthesised for the
    internal ToolCall and results are sent back as ``functionResponse``
    parts keyed by function name.
    """

    name = "Gemini"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        max_tokens: int = 4096,
        max_iterations: int = 25,
        max_retries: int = 3,
        debug: bool = False,
        ssl_verify: bool | str = True,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 120.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.max_tokens = max_tokens
        self.max_iterations = max_iterations
        self.max_retries = max_retries
        self.debug = debug
        self.ssl_verify = ssl_verify
        self.timeout = timeout
        self._client = http_client
        self._call_ids = itertools.count(1)

    @property
    def client(self) -> httpx.Client:
        """Lazy-load the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(verify=self.ssl_verify, timeout=self.timeout)
        return self._client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _convert_tools(self, anthropic_tools: list[dict]) -> list[dict]:
        """Convert Anthropic tool format to one functionDeclarations entry."""
        declarations = []
        for tool in anthropic_tools:
            declaration = {
                "name": tool.get("name", ""),
                "description": tool.get("description", ""),
            }
            parameters = tool.get("input_schema") or {}
            # Gemini rejects an OBJECT schema with no properties
            if parameters.get("properties"):
                declaration["parameters"] = convert_schema(parameters)
            declarations.append(declaration)
        return [{"functionDeclarations": declarations}]

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        contents = []
        for msg in messages:
            if msg.role == "system":
                continue
            parts = [
                {"inlineData": {"mimeType": image.media_type, "data": image.data}}
                for image in msg.images
            ]
            parts.append({"text": msg.content})
            contents.append({
                "role": "model" if msg.role == "assistant" else "user",
                "parts": parts,
            })
        return contents

    def _convert_rounds(self, tool_rounds: list[dict]) -> list[dict]:
        """Model turn with functionCall parts, then functionResponse parts."""
        contents = []
        for rnd in tool_rounds:
            parts = []
            if rnd.get("content"):
                parts.append({"text": rnd["content"]})
            for tc in rnd.get("tool_calls", []):
                parts.append({"functionCall": {"name": tc.name, "args": tc.arguments}})
            contents.append({"role": "model", "parts": parts})

            contents.append({
                "role": "user",
                "parts": [
                    {
                        "functionResponse": {
                            "name": result.name,
                            "response": {"content": result.payload},
                        }
                    }
                    for result in rnd.get("results", [])
                ],
            })
        return contents

    def _generate(self, contents: list[dict], tools: list[dict], system: str) -> LLMResponse:
        if not self.api_key:
            raise APIKeyError("Gemini", "GEMINI_API_KEY")

        payload = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": self.max_tokens},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if tools:
            payload["tools"] = self._convert_tools(tools)

        self._log_debug("REQUEST", {
            "model": self.model,
            "contents": len(contents),
            "tools": len(tools) if tools else 0,
        })

        try:
            response = self.client.post(
                self.endpoint,
                json=payload,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.TransportError as e:
            raise ConnectionError("Gemini", str(e)) from e

        if response.is_error:
            raise _parse_gemini_error(response, self.model)

        try:
            data = response.json()
        except ValueError as e:
            raise ResponseParseError("Gemini", "response body is not JSON") from e

        result = self._parse_response(data)
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
        """Send a generateContent request."""
        return self._generate(self._convert_messages(messages), tools, system)

    def continue_with_tool_results(
        self,
        messages: list[Message],
        tool_rounds: list[dict],
        tools: list[dict] = None,
        system: str = None,
    ) -> LLMResponse:
        """Continue after tool execution."""
        contents = self._convert_messages(messages) + self._convert_rounds(tool_rounds)
        return self._generate(contents, tools, system)

    def _parse_response(self, data: dict) -> LLMResponse:
        """Parse a generateContent body into LLMResponse."""
        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            feedback = (data or {}).get("promptFeedback", {}) if isinstance(data, dict) else {}
            reason = feedback.get("blockReason", "no candidates in response")
            raise ResponseParseError("Gemini", str(reason))

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []

        texts = []
        tool_calls = []
        for part in parts:
            if "text" in part:
                texts.append(part["text"])
            elif "functionCall" in part:
                call = part["functionCall"]
                tool_calls.append(ToolCall(
                    id=f"gemini-call-{next(self._call_ids)}",
                    name=call.get("name", ""),
                    arguments=decode_arguments(call.get("args")),
                ))

        return LLMResponse(
            content="".join(texts),
            tool_calls=tool_calls,
            stop_reason=candidate.get("finishReason", "STOP"),
        )
