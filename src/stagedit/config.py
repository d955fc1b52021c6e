"""User configuration management."""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from stagedit.style import debug_log

# Python 3.11+ has tomllib built-in, older versions need tomli
if sys.version_info >= (3, 11):
    import tomllib as tomli
else:
    import tomli


DEFAULT_MODEL = "claude-sonnet-4-20250514"

DEFAULT_AUTO_MODELS = [
    "claude-sonnet-4-20250514",
    "gpt-4o",
    "gemini-2.0-flash",
]

# Environment variables checked for each provider, in order
KEY_ENV_VARS = {
    "anthropic": ("ANTHROPIC_API_KEY",),
    "openai": ("OPENAI_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}

_TRUE = ("1", "true", "yes", "on")


@dataclass
class ConfigSource:
    """Track where a config value came from."""
    global_config: Optional[Path] = None
    local_config: Optional[Path] = None
    loaded_from: str = "default"  # "default", "global", "local", "env"
    env_overrides: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        parts = []
        if self.global_config:
            parts.append(f"Global: {self.global_config}")
        if self.local_config:
            parts.append(f"Local: {self.local_config}")
        parts.append(f"Active: {self.loaded_from}")
        if self.errors:
            parts.append(f"Errors: {', '.join(self.errors)}")
        return " | ".join(parts)


@dataclass
class Config:
    """stagedit configuration."""

    # LLM settings
    default_model: str = DEFAULT_MODEL
    auto_models: list[str] = field(default_factory=lambda: list(DEFAULT_AUTO_MODELS))
    max_output_tokens: int = 4096
    max_mode_output_tokens: int = 8192
    max_iterations: int = 25
    max_retries: int = 3
    gemini_base_url: str = ""

    # Provider keys; environment variables are usually preferred
    api_keys: dict[str, str] = field(default_factory=dict)

    # SSL/TLS settings (for enterprise environments)
    ssl_cert_path: str = ""
    ssl_verify: bool = True

    # Review settings
    review_enabled: bool = True

    # Shared cache for network-backed tools
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 128

    # Checkpoint pruning
    checkpoint_max_count: int = 20
    checkpoint_max_age_hours: float = 48.0

    # Debug settings
    debug: bool = False

    # Config source tracking (not loaded from file)
    _source: ConfigSource = field(default_factory=ConfigSource)

    @property
    def source(self) -> ConfigSource:
        return self._source

    def api_key_for(self, provider: str, overrides: Optional[dict] = None) -> str:
        """Key for a provider; per-request overrides win over configuration."""
        provider = provider.lower()
        if overrides:
            key = overrides.get(provider)
            if key:
                return key
        return self.api_keys.get(provider, "")

    def get_ssl_context(self) -> str | bool:
        """Get SSL verification setting for HTTP clients.

        Returns:
            - Path to cert file if ssl_cert_path is set
            - False if ssl_verify is False
            - True (default verification) otherwise
        """
        if self.ssl_cert_path:
            # Resolve path (support ~ and paths relative to config files)
            cert_path = Path(self.ssl_cert_path).expanduser()
            if cert_path.exists():
                return str(cert_path)
            for source in (self._source.global_config, self._source.local_config):
                if source:
                    alt_path = source.parent / self.ssl_cert_path
                    if alt_path.exists():
                        return str(alt_path)
        if not self.ssl_verify:
            return False
        return True

    @classmethod
    def load(cls, project_dir: Optional[Path] = None, debug: bool = False) -> "Config":
        """Load configuration from files and environment.

        Load order (later overrides earlier):
        1. Global config (~/.stagedit/config.toml or %APPDATA%/stagedit/config.toml)
        2. Local config (<project>/.stagedit/config.toml)
        3. Environment variables

        Args:
            project_dir: Optional project directory for local config lookup.
            debug: Print debug info about config loading.
        """
        config = cls()
        config._source = ConfigSource()

        global_config = cls.get_global_config_path()
        config._load_layer(global_config, "global", debug)

        if project_dir is not None:
            config._load_layer(cls.get_local_config_path(project_dir), "local", debug)

        env_overrides = config._load_from_env()
        if env_overrides:
            config._source.loaded_from = "env"
            config._source.env_overrides = env_overrides
            if debug:
                debug_log("Config env overrides", ", ".join(env_overrides))

        if debug:
            config.debug = True
            debug_log("Config model", config.default_model)
            debug_log("Config keys", ", ".join(sorted(config.api_keys)) or "NONE SET")

        return config

    def _load_layer(self, path: Path, name: str, debug: bool) -> None:
        if not path.exists():
            if debug:
                debug_log(f"Config no {name} config at", str(path))
            return

        success, error = self._load_from_file(path)
        if success:
            if name == "global":
                self._source.global_config = path
            else:
                self._source.local_config = path
            self._source.loaded_from = name
            if debug:
                debug_log(f"Config loaded {name}", str(path))
        elif error:
            self._source.errors.append(f"{name}: {error}")
            if debug:
                debug_log(f"Config error loading {name}", error)

    @classmethod
    def get_global_config_path(cls) -> Path:
        """Get the global config path for the current platform."""
        if os.name == 'nt':  # Windows
            appdata = os.environ.get('APPDATA')
            if appdata:
                return Path(appdata) / "stagedit" / "config.toml"
        return Path.home() / ".stagedit" / "config.toml"

    @classmethod
    def get_local_config_path(cls, project_dir: Path) -> Path:
        return Path(project_dir) / ".stagedit" / "config.toml"

    def show_config_info(self) -> str:
        """Return a summary of current config and sources."""
        lines = [
            "Configuration:",
            f"  Default model: {self.default_model}",
            f"  Auto models: {', '.join(self.auto_models) or '(none)'}",
            f"  Max output tokens: {self.max_output_tokens} (max mode: {self.max_mode_output_tokens})",
            f"  Max iterations: {self.max_iterations}",
            f"  Review mode: {self.review_enabled}",
            f"  SSL Cert: {self.ssl_cert_path or '(system default)'}",
            f"  SSL Verify: {self.ssl_verify}",
            "",
            "API keys:",
        ]
        for provider in KEY_ENV_VARS:
            lines.append(f"  {provider}: {'configured' if self.api_keys.get(provider) else 'NOT SET'}")
        lines += ["", "Sources:"]
        if self._source.global_config:
            lines.append(f"  Global: {self._source.global_config}")
        else:
            lines.append(f"  Global: (not found at {self.get_global_config_path()})")
        if self._source.local_config:
            lines.append(f"  Local: {self._source.local_config}")
        else:
            lines.append("  Local: (none)")
        if self._source.env_overrides:
            lines.append(f"  Environment: {', '.join(self._source.env_overrides)}")
        lines.append(f"  Active source: {self._source.loaded_from}")
        if self._source.errors:
            lines.append(f"  Errors: {', '.join(self._source.errors)}")
        return "\n".join(lines)

    def _load_from_file(self, path: Path) -> tuple[bool, str]:
        """Load configuration from a TOML file.

        Returns:
            Tuple of (success: bool, error_message: str)
        """
        try:
            with open(path, "rb") as f:
                data = tomli.load(f)

            # LLM settings - only override if value is non-empty
            if "llm" in data:
                llm = data["llm"]
                if llm.get("default_model"):
                    self.default_model = llm["default_model"]
                if llm.get("auto_models"):
                    self.auto_models = [str(m) for m in llm["auto_models"]]
                if "max_output_tokens" in llm:
                    self.max_output_tokens = int(llm["max_output_tokens"])
                if "max_mode_output_tokens" in llm:
                    self.max_mode_output_tokens = int(llm["max_mode_output_tokens"])
                if "max_iterations" in llm:
                    self.max_iterations = int(llm["max_iterations"])
                if "max_retries" in llm:
                    self.max_retries = int(llm["max_retries"])
                if llm.get("gemini_base_url"):
                    self.gemini_base_url = llm["gemini_base_url"]

            if "keys" in data:
                for provider, key in data["keys"].items():
                    if key:
                        self.api_keys[provider.lower()] = str(key)

            # SSL/TLS settings
            if "ssl" in data:
                ssl = data["ssl"]
                if ssl.get("cert_path"):
                    self.ssl_cert_path = ssl["cert_path"]
                if "verify" in ssl:
                    self.ssl_verify = bool(ssl["verify"])

            if "review" in data and "enabled" in data["review"]:
                self.review_enabled = bool(data["review"]["enabled"])

            if "cache" in data:
                cache = data["cache"]
                if "ttl_seconds" in cache:
                    self.cache_ttl_seconds = float(cache["ttl_seconds"])
                if "max_entries" in cache:
                    self.cache_max_entries = int(cache["max_entries"])

            if "checkpoints" in data:
                checkpoints = data["checkpoints"]
                if "max_count" in checkpoints:
                    self.checkpoint_max_count = int(checkpoints["max_count"])
                if "max_age_hours" in checkpoints:
                    self.checkpoint_max_age_hours = float(checkpoints["max_age_hours"])

            # Debug settings
            if "debug" in data:
                self.debug = bool(data["debug"])

            return True, ""

        except FileNotFoundError:
            return False, f"File not found: {path}"
        except tomli.TOMLDecodeError as e:
            return False, f"Invalid TOML: {e}"
        except (OSError, TypeError, ValueError, AttributeError) as e:
            return False, str(e)

    def _load_from_env(self) -> list[str]:
        """Load configuration from environment variables.

        Returns:
            List of environment variables that were applied.
        """
        overrides = []

        for provider, env_vars in KEY_ENV_VARS.items():
            for env_var in env_vars:
                if key := os.environ.get(env_var):
                    self.api_keys[provider] = key
                    overrides.append(env_var)
                    break

        if model := os.environ.get("STAGEDIT_MODEL"):
            self.default_model = model
            overrides.append("STAGEDIT_MODEL")

        if iterations := os.environ.get("STAGEDIT_MAX_ITERATIONS"):
            try:
                self.max_iterations = int(iterations)
                overrides.append("STAGEDIT_MAX_ITERATIONS")
            except ValueError:
                self._source.errors.append(f"env: STAGEDIT_MAX_ITERATIONS is not an integer: {iterations}")

        if debug := os.environ.get("STAGEDIT_DEBUG"):
            self.debug = debug.lower() in _TRUE
            overrides.append("STAGEDIT_DEBUG")

        # SSL settings from environment
        if ssl_cert := os.environ.get("STAGEDIT_SSL_CERT_PATH"):
            self.ssl_cert_path = ssl_cert
            overrides.append("STAGEDIT_SSL_CERT_PATH")
        elif ssl_cert := os.environ.get("SSL_CERT_FILE"):
            # Standard env var used by many tools
            self.ssl_cert_path = ssl_cert
            overrides.append("SSL_CERT_FILE")

        if ssl_verify := os.environ.get("STAGEDIT_SSL_VERIFY"):
            self.ssl_verify = ssl_verify.lower() not in ("0", "false", "no", "off")
            overrides.append("STAGEDIT_SSL_VERIFY")

        return overrides
