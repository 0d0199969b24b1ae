"""
Jira 缓存门面（JiraCachedDB）。

职责：
- `issue()`：准入控制 -> 查缓存 -> 有效性判断 -> （失效时）拉取 base issue + expansions -> 覆盖写缓存
- `jql_query()`：直接走分页拉取，不缓存搜索结果（只缓存解析过的 issue）
- `flush()`：等待所有在途操作结束（同步屏障）

约定：
- 单次 transport 失败直接让整个调用失败，不重试、不返回残缺结果
- 在途计数在任何退出路径上都会释放（见 `AdmissionGate`）
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import ValidationError

from jira_cache.cache.freshness import Expand
from jira_cache.cache.freshness import is_cache_valid
from jira_cache.cache.freshness import parse_expansions
from jira_cache.infra.cache import EntityStore
from jira_cache.infra.cache import StoreError
from jira_cache.infra.rate_limit import AdmissionGate
from jira_cache.jira.client import JiraClient
from jira_cache.jira.client import ResponseSchemaError
from jira_cache.jira.paging import PAGE_SIZE
from jira_cache.jira.paging import StatusFunction
from jira_cache.jira.paging import fetch_all_pages
from jira_cache.jira.schemas import Issue
from jira_cache.jira.schemas import IssueRef

logger = logging.getLogger(__name__)

ISSUES_PARTITION = "issues"
CHANGELOG_EXPANSION = "changelog"
SEARCH_FIELDS = "id,updated"

IssueCallback = Callable[[Issue], None]


class JiraCachedDB:
    """带缓存与并发上限的 Jira 访问入口。"""

    def __init__(
        self,
        client: JiraClient,
        store: EntityStore,
        max_requests: int = 100,
        page_size: int = PAGE_SIZE,
    ) -> None:
        """
        - client: Jira API client（同时作为 transport 与 URL 构造器）
        - store: 缓存存储（必须先 `open()`）
        - max_requests: 同时在途的 `issue()` 上限
        - page_size: 分页接口每页条数
        """
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self._client = client
        self._store = store
        self._gate = AdmissionGate(limit=max_requests)
        self._page_size = page_size
        self._opened = False

    @property
    def in_flight(self) -> int:
        return self._gate.in_flight

    async def open(self) -> None:
        """打开存储并创建需要的 partition；其它操作之前必须先调用。"""
        await self._store.open([ISSUES_PARTITION])
        self._opened = True

    async def close(self) -> None:
        await self._store.close()
        self._opened = False

    async def jql_query(
        self,
        jql: str,
        status: StatusFunction | None = None,
        label: str | None = None,
        result_field: str = "issues",
    ) -> dict[str, Any]:
        """
        执行 JQL 搜索并返回拼装好的全部结果。

        只请求 `id,updated` 字段：每条结果都可以直接作为 `issue()` 的输入。
        """
        self._require_open()
        async with self._gate.track():
            return await fetch_all_pages(
                transport=self._client,
                query_url=self._client.search_url(),
                result_field=result_field,
                page_size=self._page_size,
                params={"fields": SEARCH_FIELDS, "jql": jql},
                status=status,
                label=label,
            )

    async def issue(
        self,
        issue_ref: IssueRef | dict[str, Any],
        expand: Expand = None,
        callback: IssueCallback | None = None,
    ) -> Issue:
        """
        获取单个 issue（带缓存）。

        - issue_ref：调用方手里的 issue（至少有 id/self/fields.updated），`fields.updated` 作为新鲜度下界
        - expand：需要内嵌的 expansion（`"changelog"` 走分页 changelog 接口，其他交给 issue 接口的 `expand` 参数）
        - callback：拿到结果后、释放名额前调用
        """
        self._require_open()
        ref = _coerce_ref(issue_ref)
        expansions = parse_expansions(expand)

        async with self._gate.admit():
            cached = await self._load_cached(ref.self_url)
            if is_cache_valid(cached=cached, candidate_updated=ref.updated, required_expansions=expansions):
                logger.debug(f"Cache hit: {ref.self_url}")
                result = cached
            else:
                logger.info(f"Cache {'miss' if cached is None else 'stale'}: {ref.self_url} expand={list(expansions)}")
                result = await self._fetch_issue(ref=ref, expansions=expansions)
                await self._store.put(ref.self_url, result.to_record(), ISSUES_PARTITION)

            if callback:
                callback(result)
            return result

    async def changelog(self, issue_ref: IssueRef | dict[str, Any]) -> dict[str, Any] | None:
        """兼容接口：等价于 `issue(ref, expand="changelog").changelog`。"""
        return (await self.issue(issue_ref, expand=CHANGELOG_EXPANSION)).changelog

    async def flush(self, timeout: float | None = None) -> None:
        """等待所有在途的 `issue()`/`jql_query()` 结束（成功或失败）。"""
        await self._gate.wait_idle(timeout=timeout)

    async def _load_cached(self, key: str) -> Issue | None:
        record = await self._store.get(key, ISSUES_PARTITION)
        if record is None:
            return None
        try:
            return Issue.model_validate(record)
        except ValidationError as exc:
            # 无法解析的旧记录按未命中处理，随后会被覆盖
            logger.warning(f"Discarding unreadable cache record {key}: {exc}")
            return None

    async def _fetch_issue(self, ref: IssueRef, expansions: Sequence[str]) -> Issue:
        inline = [name for name in expansions if name != CHANGELOG_EXPANSION]
        url = self._client.issue_url(ref.id)
        body = await self._client.get_json(url, params={"expand": ",".join(inline)} if inline else None)
        if not isinstance(body, dict):
            raise ResponseSchemaError(f"Expected a JSON object issue, got {type(body).__name__}", url=url)
        try:
            issue = Issue.model_validate(body)
        except ValidationError as exc:
            raise ResponseSchemaError(f"Invalid issue body: {exc}", url=url) from exc

        embedded = list(inline)
        if CHANGELOG_EXPANSION in expansions:
            issue.changelog = await fetch_all_pages(
                transport=self._client,
                query_url=self._client.changelog_url(ref.id),
                result_field="values",
                page_size=self._page_size,
            )
            embedded.append(CHANGELOG_EXPANSION)
        issue.expanded = embedded
        return issue

    def _require_open(self) -> None:
        if not self._opened:
            raise StoreError("JiraCachedDB.open() must be awaited before use")


def _coerce_ref(issue_ref: IssueRef | dict[str, Any]) -> IssueRef:
    if isinstance(issue_ref, IssueRef):
        return issue_ref
    try:
        return IssueRef.model_validate(issue_ref)
    except ValidationError as exc:
        raise ValueError(f"issue_ref must carry id, self and fields.updated: {exc}") from exc
