"""Provider registry: model id -> provider adapter."""

from dataclasses import dataclass
from typing import Callable, Optional, TYPE_CHECKING

from stagedit.llm.anthropic import AnthropicProvider
from stagedit.llm.base import APIKeyError, LLMProvider, ModelError
from stagedit.llm.gemini import DEFAULT_BASE_URL, GeminiProvider
from stagedit.llm.openai import OpenAIProvider
from stagedit.style import debug_log

if TYPE_CHECKING:
    import httpx
    from stagedit.config import Config


# (config, api_key, model, max_tokens, http_client) -> provider
ProviderFactory = Callable[["Config", str, str, int, Optional["httpx.Client"]], LLMProvider]


@dataclass
class ProviderSpec:
    """One adapter and the model ids it serves."""
    name: str
    prefixes: tuple[str, ...]
    factory: ProviderFactory
    requires_key: bool = True

    def matches(self, model: str) -> bool:
        return model.lower().startswith(self.prefixes)


def _anthropic(config, api_key, model, max_tokens, http_client):
    return AnthropicProvider(
        api_key=api_key,
        model=model,
        max_tokens=max_tokens,
        max_iterations=config.max_iterations,
        max_retries=config.max_retries,
        debug=config.debug,
        ssl_verify=config.get_ssl_context(),
        http_client=http_client,
    )


def _openai(config, api_key, model, max_tokens, http_client):
    return OpenAIProvider(
        api_key=api_key,
        model=model,
        max_tokens=max_tokens,
        max_iterations=config.max_iterations,
        max_retries=config.max_retries,
        debug=config.debug,
        ssl_verify=config.get_ssl_context(),
        http_client=http_client,
    )


def _gemini(config, api_key, model, max_tokens, http_client):
    return GeminiProvider(
        api_key=api_key,
        model=model,
        base_url=config.gemini_base_url or DEFAULT_BASE_URL,
        max_tokens=max_tokens,
        max_iterations=config.max_iterations,
        max_retries=config.max_retries,
        debug=config.debug,
        ssl_verify=config.get_ssl_context(),
        http_client=http_client,
    )


class ProviderRegistry:
    """Selects and builds a provider adapter for a model id.

    Adding a provider means registering one more spec; nothing else
    branches on model names.
    """

    def __init__(self, http_client: Optional["httpx.Client"] = None):
        self._specs: list[ProviderSpec] = []
        self.http_client = http_client

    def register(
        self,
        name: str,
        prefixes: tuple[str, ...],
        factory: ProviderFactory,
        requires_key: bool = True,
    ) -> ProviderSpec:
        """Register an adapter. Earlier registrations win on overlapping prefixes."""
        spec = ProviderSpec(name=name, prefixes=tuple(p.lower() for p in prefixes),
                            factory=factory, requires_key=requires_key)
        self._specs.append(spec)
        return spec

    def names(self) -> list[str]:
        return [spec.name for spec in self._specs]

    def spec_for(self, model: str) -> ProviderSpec:
        """Find the adapter serving a model id.

        Raises:
            ModelError: If no adapter serves the model.
        """
        for spec in self._specs:
            if model and spec.matches(model):
                return spec
        raise ModelError("stagedit", model or "(empty)")

    def provider_name(self, model: str) -> str:
        return self.spec_for(model).name

    def create(
        self,
        model: str,
        config: "Config",
        api_keys: Optional[dict] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMProvider:
        """Build a provider for a model id.

        Raises:
            ModelError: Unknown model id.
            APIKeyError: The provider's key is not configured.
        """
        spec = self.spec_for(model)
        api_key = config.api_key_for(spec.name, api_keys)
        if spec.requires_key and not api_key:
            raise APIKeyError(spec.name)

        if config.debug:
            debug_log("provider", f"{spec.name} for {model}")
        return spec.factory(
            config,
            api_key,
            model,
            max_tokens or config.max_output_tokens,
            self.http_client,
        )

    def auto_select(self, config: "Config", api_keys: Optional[dict] = None) -> str:
        """First model in config.auto_models whose provider has a key.

        Raises:
            APIKeyError: If no listed model has a usable key.
        """
        for model in config.auto_models:
            try:
                spec = self.spec_for(model)
            except ModelError:
                continue
            if not spec.requires_key or config.api_key_for(spec.name, api_keys):
                return model
        raise APIKeyError("auto", "ANTHROPIC_API_KEY, OPENAI_API_KEY or GEMINI_API_KEY")

    @classmethod
    def create_default(cls, http_client: Optional["httpx.Client"] = None) -> "ProviderRegistry":
        """Registry with the three built-in adapters."""
        registry = cls(http_client=http_client)
        registry.register("anthropic", ("claude",), _anthropic)
        registry.register("openai", ("gpt", "o1", "o3", "o4", "chatgpt"), _openai)
        registry.register("gemini", ("gemini",), _gemini)
        return registry
