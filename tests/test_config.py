import pytest

from cloudbot.config import DEFAULT_API_BASE, ServerConfig, load_config, viewport
from cloudbot.errors import ConfigError


def test_defaults_from_empty_environment() -> None:
    config = load_config({})

    assert config.api_key is None
    assert config.persist_context is True
    assert config.proxies is False
    assert viewport(config) == {"width": 1024, "height": 768}
    assert config.api_base == DEFAULT_API_BASE
    assert config.cookies == ()


def test_values_are_read_and_trimmed() -> None:
    config = load_config(
        {
            "BROWSERBASE_API_KEY": " key ",
            "BROWSERBASE_PROJECT_ID": "proj",
            "BROWSERBASE_PROXIES": "yes",
            "BROWSERBASE_ADVANCED_STEALTH": "TRUE",
            "BROWSERBASE_PERSIST_CONTEXT": "off",
            "BROWSERBASE_CONTEXT_ID": "ctx-1",
            "BROWSER_WIDTH": "1280",
            "BROWSER_HEIGHT": "720",
            "BROWSERBASE_COOKIES": '[{"name": "sid", "value": "1", "url": "https://example.com"}]',
        }
    )

    assert config.api_key == "key"
    assert config.proxies is True
    assert config.advanced_stealth is True
    assert config.persist_context is False
    assert config.context_id == "ctx-1"
    assert viewport(config) == {"width": 1280, "height": 720}
    assert config.cookies[0]["name"] == "sid"
    config.require_credentials()


@pytest.mark.parametrize(
    "env",
    [
        {"BROWSERBASE_PROXIES": "maybe"},
        {"BROWSER_WIDTH": "wide"},
        {"BROWSER_HEIGHT": "0"},
        {"BROWSERBASE_COOKIES": "not json"},
        {"BROWSERBASE_COOKIES": '{"name": "sid"}'},
    ],
)
def test_invalid_values_raise_config_error(env) -> None:
    with pytest.raises(ConfigError):
        load_config(env)


def test_require_credentials_names_missing_variables() -> None:
    with pytest.raises(ConfigError, match="BROWSERBASE_API_KEY, BROWSERBASE_PROJECT_ID"):
        ServerConfig().require_credentials()
    with pytest.raises(ConfigError, match="BROWSERBASE_PROJECT_ID"):
        ServerConfig(api_key="key").require_credentials()


def test_with_overrides_returns_new_config() -> None:
    base = ServerConfig(api_key="key")
    changed = base.with_overrides(keep_alive=True)

    assert changed.keep_alive is True
    assert base.keep_alive is False
    assert changed.api_key == "key"
