from __future__ import annotations

import pytest

from jira_cache.config import load_config_from_env


def test_load_config_requires_base_url() -> None:
    with pytest.raises(ValueError):
        load_config_from_env(environ={})


def test_load_config_rejects_empty_base_url() -> None:
    with pytest.raises(ValueError):
        load_config_from_env(environ={"JIRA_BASE_URL": ""})


def test_load_config_defaults() -> None:
    cfg = load_config_from_env(environ={"JIRA_BASE_URL": "https://jira.example.com"})
    assert str(cfg.jira.base_url).startswith("https://jira.example.com")
    assert cfg.jira.max_requests == 100
    assert cfg.jira.page_size == 100
    assert cfg.jira.request_timeout == 30.0
    assert cfg.store.dsn is None


def test_load_config_overrides() -> None:
    environ = {
        "JIRA_BASE_URL": "https://jira.example.com",
        "JIRA_MAX_REQUESTS": "8",
        "JIRA_PAGE_SIZE": "50",
        "JIRA_REQUEST_TIMEOUT": "5.5",
        "JIRA_CACHE_DSN": "postgresql://cache@localhost/jira",
    }
    cfg = load_config_from_env(environ=environ)
    assert cfg.jira.max_requests == 8
    assert cfg.jira.page_size == 50
    assert cfg.jira.request_timeout == 5.5
    assert cfg.store.dsn == "postgresql://cache@localhost/jira"


@pytest.mark.parametrize(
    "key,value",
    [
        ("JIRA_MAX_REQUESTS", "0"),
        ("JIRA_PAGE_SIZE", "5000"),
        ("JIRA_REQUEST_TIMEOUT", "-1"),
        ("JIRA_MAX_REQUESTS", "many"),
    ],
)
def test_load_config_rejects_invalid_values(key: str, value: str) -> None:
    with pytest.raises(ValueError):
        load_config_from_env(environ={"JIRA_BASE_URL": "https://jira.example.com", key: value})


def test_load_config_rejects_invalid_url() -> None:
    with pytest.raises(ValueError):
        load_config_from_env(environ={"JIRA_BASE_URL": "not a url"})


def test_load_config_normalizes_expand() -> None:
    environ = {"JIRA_BASE_URL": "https://jira.example.com", "JIRA_EXPAND": " changelog, renderedFields ,"}
    cfg = load_config_from_env(environ=environ)
    assert cfg.jira.expand == ("changelog", "renderedFields")


def test_load_config_expand_defaults_to_empty() -> None:
    cfg = load_config_from_env(environ={"JIRA_BASE_URL": "https://jira.example.com"})
    assert cfg.jira.expand == ()
