"""Tests for configuration loading."""

from pathlib import Path

from stagedit.config import DEFAULT_MODEL, Config


def write_config(directory: Path, content: str) -> Path:
    path = directory / ".stagedit" / "config.toml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


# ============================================================================
# Defaults
# ============================================================================

class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = Config()

        assert config.default_model == DEFAULT_MODEL
        assert config.max_iterations == 25
        assert config.review_enabled is True
        assert config.api_keys == {}
        assert config.checkpoint_max_count == 20
        assert config.checkpoint_max_age_hours == 48.0

    def test_load_without_files(self, temp_dir):
        config = Config.load(temp_dir)

        assert config.default_model == DEFAULT_MODEL
        assert config.source.loaded_from == "default"


# ============================================================================
# File layering
# ============================================================================

class TestFileLoading:
    """Tests for global and local TOML files."""

    def test_global_config(self):
        write_config(Path.home(), """
[llm]
default_model = "gpt-4o"
max_iterations = 10

[keys]
openai = "sk-global"
""")
        config = Config.load()

        assert config.default_model == "gpt-4o"
        assert config.max_iterations == 10
        assert config.api_key_for("openai") == "sk-global"
        assert config.source.loaded_from == "global"

    def test_local_overrides_global(self, temp_dir):
        write_config(Path.home(), """
[llm]
default_model = "gpt-4o"
max_output_tokens = 1000
""")
        write_config(temp_dir, """
[llm]
default_model = "gemini-2.0-flash"

[review]
enabled = false

[cache]
ttl_seconds = 30
max_entries = 4

[checkpoints]
max_count = 5
max_age_hours = 1.5
""")
        config = Config.load(temp_dir)

        assert config.default_model == "gemini-2.0-flash"
        assert config.max_output_tokens == 1000
        assert config.review_enabled is False
        assert config.cache_ttl_seconds == 30.0
        assert config.cache_max_entries == 4
        assert config.checkpoint_max_count == 5
        assert config.checkpoint_max_age_hours == 1.5
        assert config.source.loaded_from == "local"

    def test_invalid_toml_is_reported(self, temp_dir):
        write_config(temp_dir, "[llm\nbroken = ")
        config = Config.load(temp_dir)

        assert config.default_model == DEFAULT_MODEL
        assert any("Invalid TOML" in error for error in config.source.errors)


# ============================================================================
# Environment
# ============================================================================

class TestEnvironment:
    """Tests for environment variable overrides."""

    def test_env_keys(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
        config = Config.load()

        assert config.api_key_for("anthropic") == "sk-ant"
        assert config.api_key_for("gemini") == "g-key"
        assert "GOOGLE_API_KEY" in config.source.env_overrides

    def test_gemini_key_preferred_over_google(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "gem")
        monkeypatch.setenv("GOOGLE_API_KEY", "goo")

        assert Config.load().api_key_for("gemini") == "gem"

    def test_env_overrides_files(self, monkeypatch, temp_dir):
        write_config(temp_dir, '[llm]\ndefault_model = "gpt-4o"\n')
        monkeypatch.setenv("STAGEDIT_MODEL", "claude-test")
        monkeypatch.setenv("STAGEDIT_MAX_ITERATIONS", "7")
        monkeypatch.setenv("STAGEDIT_DEBUG", "yes")
        config = Config.load(temp_dir)

        assert config.default_model == "claude-test"
        assert config.max_iterations == 7
        assert config.debug is True
        assert config.source.loaded_from == "env"

    def test_bad_iterations(self, monkeypatch):
        monkeypatch.setenv("STAGEDIT_MAX_ITERATIONS", "many")
        config = Config.load()

        assert config.max_iterations == 25
        assert config.source.errors

    def test_request_keys_win(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "from-env")
        config = Config.load()

        assert config.api_key_for("OpenAI", {"openai": "from-request"}) == "from-request"
        assert config.api_key_for("openai", {"openai": ""}) == "from-env"


# ============================================================================
# SSL
# ============================================================================

class TestSSL:
    """Tests for SSL verification settings."""

    def test_default_verifies(self):
        assert Config().get_ssl_context() is True

    def test_verify_disabled(self, monkeypatch):
        monkeypatch.setenv("STAGEDIT_SSL_VERIFY", "false")
        assert Config.load().get_ssl_context() is False

    def test_cert_path(self, monkeypatch, temp_dir):
        cert = temp_dir / "ca.pem"
        cert.write_text("cert")
        monkeypatch.setenv("SSL_CERT_FILE", str(cert))

        assert Config.load().get_ssl_context() == str(cert)

    def test_show_config_info(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        info = Config.load().show_config_info()

        assert "anthropic: configured" in info
        assert "openai: NOT SET" in info
        assert "ANTHROPIC_API_KEY" in info
