"""
Jira REST API response schemas（Pydantic）。

为什么要单独放 schema：
- Jira 的 payload 字段很多，这里只校验缓存真正依赖的子集（id/self/fields.updated/分页信息）
- 其他字段通过 `extra="allow"` 原样保留，写入缓存时不丢数据
- schema 校验失败会立刻暴露问题（比“默默 None”再写进缓存安全）
"""

from __future__ import annotations

from datetime import datetime
from datetime import timezone
from typing import Annotated
from typing import Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

_JIRA_TIMESTAMP_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)


def parse_jira_timestamp(value: object) -> datetime:
    """
    解析 Jira 的 `updated` 时间戳，统一成带时区的 datetime。

    - Jira 原生格式：`2024-01-31T10:00:00.000+0000`
    - 也接受 ISO-8601（`+00:00` / `Z`）
    - 无时区的值按 UTC 处理，保证所有 freshness token 之间可比较
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        parsed = _parse_timestamp_text(value)
    else:
        raise ValueError(f"Invalid Jira timestamp: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_timestamp_text(text: str) -> datetime:
    for fmt in _JIRA_TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"Invalid Jira timestamp: {text!r}") from exc


def _check_jira_timestamp(value: str) -> str:
    parse_jira_timestamp(value)
    return value


# 原样保留服务端字符串（缓存不改写 payload），只校验可解析
JiraTimestamp = Annotated[str, AfterValidator(_check_jira_timestamp)]


class IssueFields(BaseModel):
    """issue.fields 子结构：只强制 `updated`，其它字段原样保留。"""

    model_config = ConfigDict(extra="allow")

    updated: JiraTimestamp


class IssueRef(BaseModel):
    """
    调用方手里的 issue 视图（例如 JQL 搜索结果中的一条）。

    - `self_url`（JSON 里的 `self`）是缓存 key
    - `id` 用来拼接请求 URL
    - `fields.updated` 是调用方看到的 freshness token（下界）
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    self_url: str = Field(alias="self", min_length=1)
    fields: IssueFields

    @property
    def updated(self) -> datetime:
        """可比较的 freshness token（由 `fields.updated` 原始字符串解析而来）。"""
        return parse_jira_timestamp(self.fields.updated)


class Issue(IssueRef):
    """
    已解析（可缓存）的 issue。

    `expanded` 的语义：
    - `None`：从未做过 expansion（老数据/外部写入）
    - `[]`：抓取过，但没有任何 expansion
    """

    changelog: dict[str, Any] | None = None
    expanded: list[str] | None = None

    def to_record(self) -> dict[str, Any]:
        """序列化为可写入 store 的 JSON 结构（保留 Jira 原始 key，例如 `self`）。"""
        return self.model_dump(mode="json", by_alias=True)


class PageEnvelope(BaseModel):
    """分页接口（search / changelog）的公共外层结构；结果数组字段名由调用方指定。"""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    total: int = Field(ge=0)
    start_at: int = Field(alias="startAt", ge=0)
    max_results: int | None = Field(default=None, alias="maxResults")
