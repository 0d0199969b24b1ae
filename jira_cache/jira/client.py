"""
Jira REST API 客户端（外部系统连接器）。

约定：
- 这里只做“HTTP 调用 + 错误处理 + URL 拼接”，不做缓存决策。
- 发生错误时**直接抛错**，不要吞异常（便于定位与告警）。
- 只发 GET（幂等读），鉴权/重试交给注入的 `httpx.AsyncClient` 配置。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

QueryParams = Mapping[str, str | int]

API_PREFIX = "rest/api/latest"


class TransportError(RuntimeError):
    """请求失败（HTTP 非 2xx / 网络错误 / 非 JSON body）。不重试，直接让上层失败。"""

    def __init__(self, message: str, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ResponseSchemaError(TransportError):
    """body 是合法 JSON，但缺少缓存依赖的字段（或分页信息自相矛盾）。"""


class Transport(Protocol):
    """请求原语协议：给一个 URL，返回解析后的 JSON body（失败抛 `TransportError`）。"""

    async def get_json(self, url: str, params: QueryParams | None = None) -> Any: ...


class JiraClient:
    """最小 Jira API client：实现 `Transport`，并负责拼接 issue/changelog/search URL。"""

    def __init__(self, base_url: str, http_client: httpx.AsyncClient) -> None:
        """
        - base_url: Jira 实例地址（例如 https://myinstance.atlassian.net），默认可以是相对路径 `/`
        - http_client: 复用的 httpx.AsyncClient（超时/鉴权头在这里统一配置）
        """
        self._base_url = base_url.rstrip("/") + "/"
        self._http_client = http_client

    @property
    def base_url(self) -> str:
        return self._base_url

    def issue_url(self, issue_id: str) -> str:
        return f"{self._base_url}{API_PREFIX}/issue/{issue_id}"

    def changelog_url(self, issue_id: str) -> str:
        return f"{self.issue_url(issue_id)}/changelog"

    def search_url(self) -> str:
        return f"{self._base_url}{API_PREFIX}/search"

    async def get_json(self, url: str, params: QueryParams | None = None) -> Any:
        """
        发一次 GET，返回 JSON body。

        - HTTP >= 400：抛 `TransportError`（带 status_code）
        - 网络/超时错误：包装成 `TransportError`（保留原始异常链）
        - body 不是 JSON：抛 `TransportError`
        """
        logger.info(f"Jira request: GET {url} params={dict(params) if params else {}}")
        try:
            response = await self._http_client.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.error(f"Jira HTTP error: {url}: {exc}")
            raise TransportError(f"Jira request failed: {exc}", url=url) from exc

        if response.status_code >= 400:
            logger.error(f"Jira API error {response.status_code}: {url}")
            raise TransportError(
                f"Jira API error {response.status_code}: {response.text}",
                url=url,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            logger.error(f"Jira returned non-JSON body: {url}")
            raise TransportError(
                f"Jira returned a non-JSON body: {response.text[:200]}",
                url=url,
                status_code=response.status_code,
            ) from exc
