"""
命令行入口 / 依赖装配。

这里做三件事：
- 加载配置（严格校验环境变量）
- 组装外部依赖（HTTP Client / Jira Client / 缓存存储）
- 跑一次 JQL 查询，并把每条结果通过缓存解析一遍

用法：
  JIRA_BASE_URL=https://myinstance.atlassian.net python -m jira_cache.main "project = DEMO"

注意：缓存策略不写在这里（由 `cache/entity_cache.py` 负责）
"""

from __future__ import annotations

import logging
import os
import sys

import anyio
import httpx

from jira_cache.cache.entity_cache import JiraCachedDB
from jira_cache.cache.freshness import Expand
from jira_cache.config import AppConfig
from jira_cache.config import load_config_from_env
from jira_cache.infra.cache import EntityStore
from jira_cache.infra.cache import InMemoryEntityStore
from jira_cache.jira.client import JiraClient
from jira_cache.storage.pg import PgEntityStore
from jira_cache.storage.pg import PgStorageClient

logger = logging.getLogger(__name__)


def build_store(config: AppConfig) -> EntityStore:
    """有 DSN 用 Postgres，否则用内存存储。"""
    if config.store.dsn:
        return PgEntityStore(client=PgStorageClient(dsn=config.store.dsn))
    return InMemoryEntityStore()


def build_jira_cache(config: AppConfig, http_client: httpx.AsyncClient) -> JiraCachedDB:
    """创建 JiraCachedDB（调用方负责 `await cache.open()`）。"""
    client = JiraClient(base_url=str(config.jira.base_url), http_client=http_client)
    return JiraCachedDB(
        client=client,
        store=build_store(config),
        max_requests=config.jira.max_requests,
        page_size=config.jira.page_size,
    )


def _log_status(done: int, total: int, label: str | None) -> None:
    logger.info(f"{label or 'query'}: {done}/{total} page(s)")


async def resolve_query(cache: JiraCachedDB, jql: str, expand: Expand = None) -> int:
    """跑 JQL，并发解析每条结果；返回解析的 issue 数量。"""
    result = await cache.jql_query(jql, status=_log_status, label=jql)
    refs = result.get("issues", [])
    async with anyio.create_task_group() as tg:
        for ref in refs:
            tg.start_soon(cache.issue, ref, expand)
    await cache.flush()
    return len(refs)


async def run(jql: str, environ: dict[str, str]) -> int:
    config = load_config_from_env(environ)
    async with httpx.AsyncClient(timeout=httpx.Timeout(config.jira.request_timeout)) as http_client:
        cache = build_jira_cache(config=config, http_client=http_client)
        await cache.open()
        try:
            return await resolve_query(cache=cache, jql=jql, expand=config.jira.expand)
        finally:
            await cache.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    jql = " ".join(sys.argv[1:])
    if not jql:
        raise SystemExit("usage: python -m jira_cache.main <JQL>")
    count = anyio.run(run, jql, dict(os.environ))
    print(f"Resolved {count} issue(s)")


if __name__ == "__main__":
    main()
