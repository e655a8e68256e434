import pytest

from engram_mcp.config import BackendConfig, load_config
from engram_mcp.errors import ConfigError


def test_loads_valid_config_from_env():
    config = load_config({
        "ENGRAM_API_KEY": "test-key",
        "ENGRAM_USER_ID": "test-user",
        "ENGRAM_BASE_URL": "http://localhost:3001/",
    })

    assert config.api_key == "test-key"
    assert config.user_id == "test-user"
    assert config.base_url == "http://localhost:3001"
    assert config.timeout_ms == 10000
    assert config.timeout_seconds == 10.0
    assert config.max_retries == 2


def test_uses_defaults():
    config = load_config({"ENGRAM_API_KEY": "key"})

    assert config.base_url == "http://localhost:3001"
    assert config.log_level == "warn"
    assert config.user_id == "default"
    assert config.transport == "stdio"
    assert config.default_layer is None


def test_api_url_takes_precedence_over_base_url():
    config = load_config({
        "ENGRAM_API_KEY": "key",
        "ENGRAM_API_URL": "https://api.example.com",
        "ENGRAM_BASE_URL": "https://other.example.com",
    })
    assert config.base_url == "https://api.example.com"


def test_rejects_missing_api_key():
    with pytest.raises(ConfigError, match="ENGRAM_API_KEY"):
        load_config({"ENGRAM_USER_ID": "user"})


@pytest.mark.parametrize("url", ["http://localhost:3001", "http://127.0.0.1:8080", "http://[::1]:3001"])
def test_allows_loopback_http(url):
    assert load_config({"ENGRAM_API_KEY": "key", "ENGRAM_BASE_URL": url}).base_url == url


def test_rejects_non_localhost_http():
    with pytest.raises(ConfigError, match="HTTPS required"):
        load_config({"ENGRAM_API_KEY": "key", "ENGRAM_BASE_URL": "http://example.com"})


def test_allow_http_override():
    config = load_config({
        "ENGRAM_API_KEY": "key",
        "ENGRAM_BASE_URL": "http://example.com",
        "ENGRAM_ALLOW_HTTP": "true",
    })
    assert config.allow_http is True


def test_reports_every_problem_at_once():
    with pytest.raises(ConfigError) as excinfo:
        load_config({
            "ENGRAM_LOG_LEVEL": "verbose",
            "ENGRAM_TIMEOUT_MS": "soon",
            "ENGRAM_MAX_RETRIES": "-1",
            "ENGRAM_DEFAULT_LAYER": "attic",
            "ENGRAM_TRANSPORT": "carrier-pigeon",
        })
    message = str(excinfo.value)
    for fragment in [
        "ENGRAM_API_KEY",
        "ENGRAM_LOG_LEVEL",
        "ENGRAM_TIMEOUT_MS",
        "ENGRAM_MAX_RETRIES",
        "ENGRAM_DEFAULT_LAYER",
        "ENGRAM_TRANSPORT",
    ]:
        assert fragment in message


def test_optional_settings():
    config = load_config({
        "ENGRAM_API_KEY": "key",
        "ENGRAM_DEFAULT_LAYER": "semantic",
        "ENGRAM_PROJECT_ID": "proj-1",
        "ENGRAM_TLS_SKIP_VERIFY": "true",
        "ENGRAM_TRANSPORT": "http",
        "ENGRAM_HTTP_PORT": "9000",
        "ENGRAM_LOG_LEVEL": "DEBUG",
    })
    assert config.default_layer == "SEMANTIC"
    assert config.default_project_id == "proj-1"
    assert config.tls_skip_verify is True
    assert config.transport == "http"
    assert config.http_port == 9000
    assert config.log_level == "debug"


def test_config_is_immutable():
    config = BackendConfig(api_key="key")
    with pytest.raises(AttributeError):
        config.api_key = "other"
