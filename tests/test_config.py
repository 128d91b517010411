import json

import pytest

from summarizer import ConfigError, PipelineConfig, resolve_api_key, save_api_key


@pytest.fixture
def user_config(monkeypatch, tmp_path):
    """Point the user config file at a temp dir and clear key variables."""
    config_dir = tmp_path / "home"
    monkeypatch.setattr("summarizer.config.USER_CONFIG_DIR", config_dir)
    monkeypatch.setattr("summarizer.config.USER_CONFIG_FILE", config_dir / "config.yaml")
    for name in ("LLM_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    return config_dir / "config.yaml"


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "RESTAPI_CONCURRENCY", "RESTAPI_RUN_TIMEOUT", "RESTAPI_REQUEST_TIMEOUT", "RESTAPI_MAX_ATTEMPTS",
        "RESTAPI_CACHE_DIR", "RESTAPI_CACHE_TTL", "RESTAPI_NO_CACHE", "RESTAPI_UNKNOWN_METHODS",
        "RESTAPI_MAX_FAILURE_RATIO", "RESTAPI_PROVIDER", "LLM_PROVIDER", "RESTAPI_MODEL", "LLM_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = PipelineConfig()
    assert config.concurrency == 4
    assert config.max_attempts == 3
    assert config.use_cache
    assert config.cache_ttl_seconds is None
    assert config.unknown_methods == "warn"


@pytest.mark.parametrize("kwargs", [
    {"concurrency": 0},
    {"max_attempts": 0},
    {"run_timeout": 0},
    {"request_timeout": -1},
    {"backoff_jitter": -0.1},
    {"unknown_methods": "ignore"},
    {"max_failure_ratio": 0},
    {"max_failure_ratio": 1.5},
])
def test_invalid_values(kwargs):
    with pytest.raises(ConfigError):
        PipelineConfig(**kwargs)


def test_from_env_overlays_base(monkeypatch, clean_env):
    monkeypatch.setenv("RESTAPI_CONCURRENCY", "8")
    monkeypatch.setenv("RESTAPI_NO_CACHE", "true")
    monkeypatch.setenv("LLM_PROVIDER", "OpenAI")
    monkeypatch.setenv("RESTAPI_MAX_FAILURE_RATIO", "0.25")

    config = PipelineConfig.from_env(PipelineConfig(max_attempts=5, ignore_dirs={"fixtures"}))

    assert config.concurrency == 8
    assert not config.use_cache
    assert config.llm_provider == "openai"
    assert config.max_failure_ratio == 0.25
    assert config.max_attempts == 5
    assert config.ignore_dirs == {"fixtures"}


def test_from_env_rejects_garbage(monkeypatch, clean_env):
    monkeypatch.setenv("RESTAPI_CONCURRENCY", "many")
    with pytest.raises(ConfigError):
        PipelineConfig.from_env()


def test_from_yaml_file(tmp_path):
    path = tmp_path / "restapi.yaml"
    path.write_text("concurrency: 2\nignore_dirs: [fixtures, generated]\nunused_key: 1\n")
    config = PipelineConfig.from_file(str(path))
    assert config.concurrency == 2
    assert config.ignore_dirs == {"fixtures", "generated"}


def test_from_json_file_and_to_dict(tmp_path):
    path = tmp_path / "restapi.json"
    path.write_text(json.dumps({"llm_provider": "mock", "run_timeout": None}))
    config = PipelineConfig.from_file(str(path))
    assert config.llm_provider == "mock"
    assert config.run_timeout is None
    assert PipelineConfig(**{**config.to_dict(), "ignore_dirs": set()}) == config


@pytest.mark.parametrize("content,name", [
    ("{broken", "bad.json"),
    ("- a\n- b\n", "list.yaml"),
    ("concurrency: 0\n", "zero.yaml"),
])
def test_bad_files(tmp_path, content, name):
    path = tmp_path / name
    path.write_text(content)
    with pytest.raises(ConfigError):
        PipelineConfig.from_file(str(path))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        PipelineConfig.from_file(str(tmp_path / "missing.yaml"))


class TestApiKey:

    def test_save_and_resolve(self, user_config):
        assert resolve_api_key("gemini") is None
        path = save_api_key("AIza-test-key", "gemini")
        assert path == user_config
        assert resolve_api_key("gemini") == "AIza-test-key"
        assert resolve_api_key("openai") is None

    def test_save_keeps_other_providers(self, user_config):
        save_api_key("gem", "gemini")
        save_api_key("oai", "openai")
        assert resolve_api_key("gemini") == "gem"
        assert resolve_api_key("openai") == "oai"

    def test_environment_wins(self, user_config, monkeypatch):
        save_api_key("from-file", "gemini")
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")
        assert resolve_api_key("gemini") == "from-env"

    def test_broken_user_config_is_empty(self, user_config):
        user_config.parent.mkdir(parents=True)
        user_config.write_text("key: [unclosed\n")
        assert resolve_api_key("gemini") is None
