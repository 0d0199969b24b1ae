from __future__ import annotations

import httpx
import pytest

from jira_cache.jira.client import JiraClient
from jira_cache.jira.client import TransportError

pytestmark = pytest.mark.anyio


def _client(handler: httpx.MockTransport) -> JiraClient:
    return JiraClient(base_url="https://jira.example.com/", http_client=httpx.AsyncClient(transport=handler))


def test_urls_are_built_from_base_url() -> None:
    client = JiraClient(base_url="https://jira.example.com///", http_client=httpx.AsyncClient())
    assert client.issue_url("10001") == "https://jira.example.com/rest/api/latest/issue/10001"
    assert client.changelog_url("10001") == "https://jira.example.com/rest/api/latest/issue/10001/changelog"
    assert client.search_url() == "https://jira.example.com/rest/api/latest/search"


def test_default_relative_base_url() -> None:
    client = JiraClient(base_url="/", http_client=httpx.AsyncClient())
    assert client.issue_url("1") == "/rest/api/latest/issue/1"


async def test_get_json_returns_body_and_sends_params() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "1"})

    client = _client(httpx.MockTransport(handler))
    body = await client.get_json(client.search_url(), params={"jql": "project = DEMO", "startAt": 100})

    assert body == {"id": "1"}
    assert seen[0].url.params["jql"] == "project = DEMO"
    assert seen[0].url.params["startAt"] == "100"


async def test_http_error_status_raises_transport_error() -> None:
    client = _client(httpx.MockTransport(lambda request: httpx.Response(429, text="slow down")))

    with pytest.raises(TransportError) as excinfo:
        await client.get_json(client.issue_url("1"))
    assert excinfo.value.status_code == 429
    assert excinfo.value.url.endswith("/issue/1")


async def test_network_error_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(httpx.MockTransport(handler))

    with pytest.raises(TransportError) as excinfo:
        await client.get_json(client.issue_url("1"))
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


async def test_non_json_body_raises_transport_error() -> None:
    client = _client(httpx.MockTransport(lambda request: httpx.Response(200, text="<html>login</html>")))

    with pytest.raises(TransportError):
        await client.get_json(client.issue_url("1"))
