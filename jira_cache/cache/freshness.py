"""
缓存有效性判断（纯函数，不碰 store/transport）。

规则按顺序执行，任意一条不满足即判定失效：
1. 没有缓存记录
2. 缓存的 `updated` 早于调用方给出的 token（严格小于；相等或更新都算有效，token 只是下界）
3. 需要 expansion，但记录从未做过 expansion（`expanded is None`）
4. 需要的 expansion 里有任意一个不在记录中

注意：部分 expansion 缺失时直接整条丢弃重拉，不做“只补缺失部分再合并”。
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from jira_cache.jira.schemas import Issue

Expand = str | Sequence[str] | None


def is_cache_valid(cached: Issue | None, candidate_updated: datetime, required_expansions: Sequence[str]) -> bool:
    if cached is None:
        return False
    if cached.updated < candidate_updated:
        return False
    if not required_expansions:
        return True
    if cached.expanded is None:
        return False
    return all(name in cached.expanded for name in required_expansions)


def parse_expansions(expand: Expand) -> tuple[str, ...]:
    """
    归一化 expansion 参数。

    - `None` -> `()`
    - `"changelog, renderedFields"` -> `("changelog", "renderedFields")`（忽略空白与空项）
    - 序列：去重并保持顺序
    """
    if expand is None:
        return ()
    if isinstance(expand, str):
        names = "".join(expand.split()).split(",")
    else:
        names = ["".join(name.split()) for name in expand]
    return tuple(dict.fromkeys(name for name in names if name))
