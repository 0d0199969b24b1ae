"""
应用配置加载。

设计目标：
- **严格**：缺少必要环境变量就直接报错（避免“看起来跑了其实没配置好”）
- **类型安全**：使用 Pydantic 校验 URL/数值范围，减少运行时踩坑
- **可测试**：核心加载函数接收 `environ` 显式输入，便于单元测试
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, Field, HttpUrl, ValidationError

from jira_cache.cache.freshness import parse_expansions


class JiraConfig(BaseModel):
    """Jira 访问相关配置。"""

    base_url: HttpUrl
    max_requests: int = Field(default=100, gt=0)
    page_size: int = Field(default=100, gt=0, le=1000)
    request_timeout: float = Field(default=30.0, gt=0)
    expand: Annotated[tuple[str, ...], BeforeValidator(parse_expansions)] = ()


class StoreConfig(BaseModel):
    """缓存存储配置：没有 DSN 时使用内存存储（进程退出即丢失）。"""

    dsn: str | None = None


class AppConfig(BaseModel):
    jira: JiraConfig
    store: StoreConfig


def load_config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """
    从环境变量加载并校验配置。

    - **必填**：`JIRA_BASE_URL`
    - **可选**：`JIRA_MAX_REQUESTS` / `JIRA_PAGE_SIZE` / `JIRA_REQUEST_TIMEOUT` / `JIRA_EXPAND` / `JIRA_CACHE_DSN`
    - **失败**：缺失/为空/非法值统一抛 `ValueError`
    """

    if not environ.get("JIRA_BASE_URL"):
        raise ValueError("Missing required env vars: JIRA_BASE_URL")

    optional_keys: dict[str, str] = {
        "JIRA_MAX_REQUESTS": "max_requests",
        "JIRA_PAGE_SIZE": "page_size",
        "JIRA_REQUEST_TIMEOUT": "request_timeout",
        "JIRA_EXPAND": "expand",
    }
    jira_values: dict[str, str] = {"base_url": environ["JIRA_BASE_URL"]}
    for env_key, field_name in optional_keys.items():
        if environ.get(env_key):
            jira_values[field_name] = environ[env_key]

    # 交给 Pydantic 做类型校验（URL 合法性、数值范围）
    try:
        return AppConfig(
            jira=JiraConfig.model_validate(jira_values),
            store=StoreConfig(dsn=environ.get("JIRA_CACHE_DSN") or None),
        )
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
