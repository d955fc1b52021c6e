"""Agent orchestration: one request in, one response out.

The orchestrator picks a provider adapter for the requested model, builds a
fresh ReviewState for the run, lets the adapter drive the tool loop against
it and finally reduces the overlay into a changeset. It never writes the
changeset to the store; that is the reviewer's accept step.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional

from stagedit.cache import TTLCache
from stagedit.changeset import PendingChange, build_changeset
from stagedit.config import Config
from stagedit.llm.base import LLMError, ToolCallHistoryItem, parse_images
from stagedit.llm.registry import ProviderRegistry
from stagedit.mode import Mode
from stagedit.prompts import build_system_prompt, build_user_prompt
from stagedit.store import ProjectStore, StoreTransportError
from stagedit.style import debug_log
from stagedit.tools.base import ToolContext
from stagedit.tools.executor import ToolExecutor
from stagedit.tools.registry import ToolRegistry, allowed_names


class ValidationError(Exception):
    """A required request field is missing or malformed."""
    pass


@dataclass
class AgentRequest:
    """Caller-facing request."""
    project_id: str
    prompt: str
    file_text: str = ""
    model: str = ""
    api_keys: dict[str, str] = field(default_factory=dict)
    mode: Any = Mode.AGENT
    images: list[str] = field(default_factory=list)
    auto_mode: bool = False
    max_mode: bool = False
    use_multiple_models: bool = False
    selected_models: list[str] = field(default_factory=list)
    review_mode: Optional[bool] = None  # None = configured default

    @classmethod
    def from_dict(cls, data: dict) -> "AgentRequest":
        """Build from the camelCase wire shape."""
        if not isinstance(data, dict):
            raise ValidationError("Request body must be an object")
        return cls(
            project_id=data.get("projectId") or "",
            prompt=data.get("prompt") or "",
            file_text=data.get("fileText") or "",
            model=data.get("model") or "",
            api_keys=dict(data.get("apiKeys") or {}),
            mode=data.get("mode") or Mode.AGENT,
            images=list(data.get("images") or []),
            auto_mode=bool(data.get("autoMode", False)),
            max_mode=bool(data.get("maxMode", False)),
            use_multiple_models=bool(data.get("useMultipleModels", False)),
            selected_models=list(data.get("selectedModels") or []),
            review_mode=data.get("reviewMode"),
        )


@dataclass
class ModelResult:
    """One slot of a fan-out response."""
    model: str
    content: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"model": self.model, "content": self.content, "error": self.error}


@dataclass
class AgentResponse:
    """Caller-facing response: a run result, fan-out results, or an error."""
    content: str = ""
    used_model: str = ""
    tool_calls: list[ToolCallHistoryItem] = field(default_factory=list)
    proposed_changes: list[PendingChange] = field(default_factory=list)
    multiple_results: Optional[list[ModelResult]] = None
    error: Optional[str] = None
    exhausted: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        if self.error is not None:
            return {"error": self.error}
        if self.multiple_results is not None:
            return {"multipleResults": [r.to_dict() for r in self.multiple_results]}
        return {
            "content": self.content,
            "usedModel": self.used_model,
            "toolCalls": [item.to_dict() for item in self.tool_calls],
            "proposedChanges": [change.to_dict() for change in self.proposed_changes],
        }


class Orchestrator:
    """Runs agent requests against a project store.

    Args:
        store: Persisted project store.
        config: Configuration (loaded from files/environment if omitted).
        providers: Provider registry (the three built-in adapters if omitted).
        tools: Tool registry (all built-in tools if omitted).
        cache: Process-wide cache handed to network-backed tools.
    """

    def __init__(
        self,
        store: ProjectStore,
        config: Optional[Config] = None,
        providers: Optional[ProviderRegistry] = None,
        tools: Optional[ToolRegistry] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.store = store
        self.config = config or Config.load()
        self.providers = providers or ProviderRegistry.create_default()
        if tools is None:
            cache = cache or TTLCache(
                ttl_seconds=self.config.cache_ttl_seconds,
                max_entries=self.config.cache_max_entries,
            )
            tools = ToolRegistry.create_default(cache=cache)
        self.tools = tools
        self.executor = ToolExecutor(self.tools, debug=self.config.debug)

    def handle(self, request: AgentRequest | dict) -> AgentResponse:
        """Run one request. Failures come back as AgentResponse(error=...)."""
        try:
            if isinstance(request, dict):
                request = AgentRequest.from_dict(request)
            mode = self._validate(request)
            if request.use_multiple_models:
                return self._fan_out(request, mode)
            return self._run(request, mode)
        except ValidationError as e:
            return AgentResponse(error=str(e))
        except LLMError as e:
            self._debug("run failed", e.format_message())
            return AgentResponse(error=e.format_message())
        except StoreTransportError as e:
            self._debug("store unavailable", str(e))
            return AgentResponse(error=f"Project store unavailable: {e}")

    def _validate(self, request: AgentRequest) -> Mode:
        if not isinstance(request.prompt, str) or not request.prompt.strip():
            raise ValidationError("prompt is required")
        if not request.project_id:
            raise ValidationError("projectId is required")
        if request.use_multiple_models and not request.selected_models:
            raise ValidationError("selectedModels is required when useMultipleModels is set")
        try:
            return Mode.parse(request.mode)
        except ValueError as e:
            raise ValidationError(str(e))

    def _review_mode(self, request: AgentRequest) -> bool:
        if request.review_mode is None:
            return self.config.review_enabled
        return bool(request.review_mode)

    def _max_tokens(self, request: AgentRequest) -> Optional[int]:
        return self.config.max_mode_output_tokens if request.max_mode else None

    def _run(self, request: AgentRequest, mode: Mode) -> AgentResponse:
        if request.auto_mode:
            model = self.providers.auto_select(self.config, request.api_keys)
        else:
            model = request.model or self.config.default_model

        # Key and model problems surface here, before any provider call
        provider = self.providers.create(
            model, self.config, request.api_keys, self._max_tokens(request)
        )

        review_mode = self._review_mode(request)
        context = ToolContext(
            project_id=request.project_id,
            store=self.store,
            mode=mode,
            review_mode=review_mode,
        )

        allowed = allowed_names(mode)
        self._debug("run", {"model": model, "mode": mode.value, "review": review_mode})

        result = provider.run(
            system_prompt=build_system_prompt(mode, self.tools.get_tool_descriptions(mode), review_mode),
            user_prompt=build_user_prompt(request.prompt, request.file_text),
            executor=self.executor,
            context=context,
            tools=self.tools.get_anthropic_tools(allowed),
            allowed_tool_names=allowed,
            images=parse_images(request.images),
        )
        self._debug("run finished", {"turns": result.turns, "exhausted": result.exhausted})

        changes = build_changeset(context.review_state) if review_mode else []
        return AgentResponse(
            content=result.content,
            used_model=model,
            tool_calls=result.tool_calls,
            proposed_changes=changes,
            exhausted=result.exhausted,
        )

    def _fan_out(self, request: AgentRequest, mode: Mode) -> AgentResponse:
        """Ask every selected model once, concurrently, without tools."""
        system_prompt = build_system_prompt(mode, "", self._review_mode(request))
        user_prompt = build_user_prompt(request.prompt, request.file_text)
        images = parse_images(request.images)
        models = list(request.selected_models)

        def ask(model: str) -> ModelResult:
            try:
                provider = self.providers.create(
                    model, self.config, request.api_keys, self._max_tokens(request)
                )
                return ModelResult(model=model, content=provider.complete(system_prompt, user_prompt, images))
            except LLMError as e:
                return ModelResult(model=model, error=e.format_message())
            except Exception as e:
                # A failing slot must not take its siblings down
                return ModelResult(model=model, error=f"{type(e).__name__}: {e}")

        self._debug("fan-out", models)
        with ThreadPoolExecutor(max_workers=len(models)) as pool:
            results = list(pool.map(ask, models))
        return AgentResponse(multiple_results=results)

    def _debug(self, label: str, data: Any = None) -> None:
        if self.config.debug:
            debug_log(label, data)
