from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import anyio
import anyio.lowlevel
import pytest

from jira_cache.jira.client import JiraClient
from jira_cache.jira.client import TransportError

BASE_URL = "https://jira.example.com"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_ref(issue_id: str, updated: str = "2024-01-31T10:00:00.000+0000") -> dict[str, Any]:
    return {
        "id": issue_id,
        "self": f"{BASE_URL}/rest/api/latest/issue/{issue_id}",
        "fields": {"updated": updated},
    }


def make_issue_body(issue_id: str, updated: str = "2024-01-31T10:00:00.000+0000") -> dict[str, Any]:
    body = make_ref(issue_id, updated)
    body["key"] = f"DEMO-{issue_id}"
    body["fields"]["summary"] = f"Issue {issue_id}"
    return body


class FakeJiraClient(JiraClient):
    """
    脚本化的 transport：按 (url, startAt) 返回预设 body。

    - `calls`：按发出顺序记录 (url, params)
    - `gate`：设置后每次请求都先等它（用于构造“卡住的请求”）
    - `active` / `max_active`：同时在 transport 里的请求数
    """

    def __init__(self) -> None:
        super().__init__(base_url=BASE_URL, http_client=None)  # type: ignore[arg-type]
        self.responses: dict[tuple[str, int | None], Any] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.gate: anyio.Event | None = None
        self.active = 0
        self.max_active = 0

    def add(self, url: str, body: Any, start_at: int | None = None) -> None:
        self.responses[(url, start_at)] = body

    async def get_json(self, url: str, params: Mapping[str, str | int] | None = None) -> Any:
        params = dict(params or {})
        self.calls.append((url, params))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await anyio.lowlevel.checkpoint()
            start_at = params.get("startAt")
            key = (url, int(start_at) if start_at is not None else None)
            if key not in self.responses:
                raise TransportError(f"Jira API error 404: {url}", url=url, status_code=404)
            body = self.responses[key]
            if isinstance(body, Exception):
                raise body
            return body
        finally:
            self.active -= 1


@pytest.fixture
def fake_client() -> FakeJiraClient:
    return FakeJiraClient()
