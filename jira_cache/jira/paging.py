"""
分页拉取与结果拼装（Page Assembler）。

流程：
- 先拉第 0 页（startAt=0），从 `total` 算出总页数
- 其余页在 task group 里并发发出（到达顺序不确定）
- 每页按 `startAt / page_size` 放进对应槽位；全部到齐后按页号顺序拼接结果数组

失败策略：任何一页失败 -> 取消其它页，原样抛出该页的 `TransportError`（不返回残缺结果）。
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Any

import anyio
from pydantic import ValidationError

from jira_cache.jira.client import QueryParams
from jira_cache.jira.client import ResponseSchemaError
from jira_cache.jira.client import Transport
from jira_cache.jira.client import TransportError
from jira_cache.jira.schemas import PageEnvelope

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

StatusFunction = Callable[[int, int, str | None], None]


async def fetch_all_pages(
    transport: Transport,
    query_url: str,
    result_field: str,
    page_size: int = PAGE_SIZE,
    params: QueryParams | None = None,
    status: StatusFunction | None = None,
    label: str | None = None,
) -> dict[str, Any]:
    """
    拉取一个分页接口的全部页，返回拼装后的结果。

    - 返回值：第 0 页的 envelope（拷贝），其中 `result_field` 被替换为所有页按顺序拼接的数组
    - status：每到达一页调用一次 `status(已完成页数, 总页数, label)`
    - params：额外查询参数（例如 jql/fields），会与 `startAt`/`maxResults` 合并
    """
    if page_size <= 0:
        raise ValueError("page_size must be > 0")

    base_params: dict[str, str | int] = dict(params or {})

    async def fetch_page(page_index: int) -> tuple[int, dict[str, Any]]:
        page_params = {**base_params, "maxResults": page_size, "startAt": page_index * page_size}
        body = await transport.get_json(query_url, params=page_params)
        return _validate_page(body=body, url=query_url, result_field=result_field, page_size=page_size)

    # 1) 第 0 页必须先到：总页数由它的 total 决定
    first_index, first_page = await fetch_page(0)
    if first_index != 0:
        raise ResponseSchemaError(f"First page reports startAt={first_page['startAt']}, expected 0", url=query_url)
    page_count = max(1, math.ceil(first_page["total"] / page_size))

    pages: list[dict[str, Any] | None] = [None] * page_count
    pages[0] = first_page
    downloaded = 1
    if status:
        status(downloaded, page_count, label)

    # 2) 其余页并发拉取；第一处失败取消兄弟任务，失败原样抛出（不包成 ExceptionGroup）
    failures: list[TransportError] = []

    async def fetch_into_slot(page_index: int, cancel_scope: anyio.CancelScope) -> None:
        nonlocal downloaded
        try:
            slot, page = await fetch_page(page_index)
            if slot >= page_count or pages[slot] is not None:
                raise ResponseSchemaError(
                    f"Page startAt={page['startAt']} does not map to a free slot of {page_count} pages",
                    url=query_url,
                )
        except TransportError as exc:
            failures.append(exc)
            cancel_scope.cancel()
            return
        pages[slot] = page
        downloaded += 1
        if status:
            status(downloaded, page_count, label)

    if page_count > 1:
        logger.info(f"Fetching {page_count - 1} more page(s) from {query_url} (total={first_page['total']})")
        async with anyio.create_task_group() as tg:
            for page_index in range(1, page_count):
                tg.start_soon(fetch_into_slot, page_index, tg.cancel_scope)

    if failures:
        raise failures[0]
    if downloaded != page_count:
        raise ResponseSchemaError(f"Downloaded {downloaded}/{page_count} pages", url=query_url)

    # 3) 按页号顺序拼接
    result = dict(first_page)
    items: list[Any] = list(result.get(result_field) or [])
    for page in pages[1:]:
        if page is not None:
            items.extend(page.get(result_field) or [])
    result[result_field] = items
    return result


def _validate_page(body: object, url: str, result_field: str, page_size: int) -> tuple[int, dict[str, Any]]:
    """校验单页结构，返回 (页号, body)。"""
    if not isinstance(body, dict):
        raise ResponseSchemaError(f"Expected a JSON object page, got {type(body).__name__}", url=url)
    try:
        envelope = PageEnvelope.model_validate(body)
    except ValidationError as exc:
        raise ResponseSchemaError(f"Invalid page envelope: {exc}", url=url) from exc
    if envelope.start_at % page_size != 0:
        raise ResponseSchemaError(f"startAt={envelope.start_at} is not a multiple of page size {page_size}", url=url)
    field_value = body.get(result_field)
    if field_value is not None and not isinstance(field_value, list):
        raise ResponseSchemaError(f"Page field '{result_field}' is not a list", url=url)
    return envelope.start_at // page_size, body
