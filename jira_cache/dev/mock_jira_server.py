"""
本地 Mock Jira API server（只覆盖缓存用到的三个接口）。

用途：
- 在没有真实 Jira 的情况下，本地跑通：
  JQL search（分页） -> issue -> issue changelog（分页）
- 测试里通过 `httpx.ASGITransport` 直接挂载，不需要起端口

启动：
  python -m jira_cache.dev.mock_jira_server
"""

from __future__ import annotations

from collections import Counter
from typing import cast

import uvicorn
from fastapi import FastAPI, HTTPException, Query

BASE_URL = "http://127.0.0.1:9003"
MAX_PAGE_SIZE = 100


def make_issue(issue_id: int, updated: str = "2024-01-31T10:00:00.000+0000", changes: int = 3) -> dict[str, object]:
    """生成一条 Jira 风格的 issue（`changelog` 单独存放，不在 issue body 里）。"""
    return {
        "id": str(issue_id),
        "key": f"DEMO-{issue_id}",
        "self": f"{BASE_URL}/rest/api/latest/issue/{issue_id}",
        "fields": {
            "summary": f"Demo issue {issue_id}",
            "status": {"name": "Open"},
            "updated": updated,
        },
        "_changelog": [
            {
                "id": f"{issue_id}-{n}",
                "created": updated,
                "items": [{"field": "status", "fromString": "Open", "toString": "In Progress"}],
            }
            for n in range(changes)
        ],
    }


def _page(items: list[dict[str, object]], field: str, start_at: int, max_results: int) -> dict[str, object]:
    size = min(max_results, MAX_PAGE_SIZE)
    return {
        "startAt": start_at,
        "maxResults": size,
        "total": len(items),
        field: items[start_at : start_at + size],
    }


def build_mock_jira_app(issues: list[dict[str, object]] | None = None) -> FastAPI:
    """创建 mock app；`issues` 为空时生成 5 条默认数据。"""
    app = FastAPI(title="Mock Jira API", version="0.1.0")
    by_id: dict[str, dict[str, object]] = {
        str(issue["id"]): issue for issue in (issues if issues is not None else [make_issue(n) for n in range(1, 6)])
    }
    requests: Counter[str] = Counter()

    def _public(issue: dict[str, object]) -> dict[str, object]:
        return {k: v for k, v in issue.items() if not k.startswith("_")}

    def _get(issue_id: str) -> dict[str, object]:
        issue = by_id.get(issue_id)
        if issue is None:
            raise HTTPException(status_code=404, detail=f"Issue does not exist: {issue_id}")
        return issue

    @app.get("/rest/api/latest/search")
    async def search(
        jql: str = "",
        fields: str = "",
        start_at: int = Query(default=0, alias="startAt", ge=0),
        max_results: int = Query(default=50, alias="maxResults", gt=0),
    ) -> dict[str, object]:
        _ = jql
        requests["search"] += 1
        wanted = [f for f in fields.split(",") if f]
        hits = []
        for issue in by_id.values():
            hit = {k: v for k, v in _public(issue).items() if k != "fields"}
            all_fields = cast(dict[str, object], issue["fields"])
            hit["fields"] = {k: v for k, v in all_fields.items() if not wanted or k in wanted}
            hits.append(hit)
        return _page(hits, "issues", start_at, max_results)

    @app.get("/rest/api/latest/issue/{issue_id}")
    async def get_issue(issue_id: str, expand: str = "") -> dict[str, object]:
        requests["issue"] += 1
        body = _public(_get(issue_id))
        if expand:
            body["expand"] = expand
        return body

    @app.get("/rest/api/latest/issue/{issue_id}/changelog")
    async def get_changelog(
        issue_id: str,
        start_at: int = Query(default=0, alias="startAt", ge=0),
        max_results: int = Query(default=100, alias="maxResults", gt=0),
    ) -> dict[str, object]:
        requests["changelog"] += 1
        histories = cast(list[dict[str, object]], _get(issue_id)["_changelog"])
        page = _page(histories, "values", start_at, max_results)
        page["isLast"] = start_at + page["maxResults"] >= len(histories)
        return page

    @app.get("/__debug__/requests")
    async def debug_requests() -> dict[str, int]:
        return dict(requests)

    return app


app = build_mock_jira_app()


def main() -> None:
    uvicorn.run(app, host="127.0.0.1", port=9003)


if __name__ == "__main__":
    main()
