from __future__ import annotations

"""
缓存存储抽象。

当前提供：
- `EntityStore` Protocol：定义 open/get/put/close 接口（按 partition 分命名空间）
- `InMemoryEntityStore`：便于本地运行/单元测试

PostgreSQL 实现见 `jira_cache.storage.pg`。
不提供过期/淘汰：记录只会被覆盖，不会被主动清理。
"""

import copy
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import anyio.lowlevel

Record = dict[str, Any]


class StoreError(RuntimeError):
    """存储层错误（未 open、未知 partition、后端失败）。核心逻辑不做恢复，直接上抛。"""

    pass


class EntityStore(Protocol):
    """缓存存储接口协议（用于依赖倒置，方便替换 Postgres/Memory）。"""

    async def open(self, partitions: Sequence[str]) -> None: ...

    async def get(self, key: str, partition: str) -> Record | None: ...

    async def put(self, key: str, record: Record, partition: str) -> None: ...

    async def close(self) -> None: ...


@dataclass
class InMemoryEntityStore:
    """内存存储：只用于开发/测试。读写都做深拷贝，行为接近浏览器里的 KV 存储。"""

    partitions: dict[str, dict[str, Record]] = field(default_factory=dict)
    opened: bool = False

    async def open(self, partitions: Sequence[str]) -> None:
        for name in partitions:
            self.partitions.setdefault(name, {})
        self.opened = True
        await anyio.lowlevel.checkpoint()

    async def get(self, key: str, partition: str) -> Record | None:
        await anyio.lowlevel.checkpoint()
        record = self._partition(partition).get(key)
        return copy.deepcopy(record) if record is not None else None

    async def put(self, key: str, record: Record, partition: str) -> None:
        await anyio.lowlevel.checkpoint()
        self._partition(partition)[key] = copy.deepcopy(record)

    async def close(self) -> None:
        self.opened = False

    def _partition(self, partition: str) -> dict[str, Record]:
        if not self.opened:
            raise StoreError("Store is not open")
        if partition not in self.partitions:
            raise StoreError(f"Unknown partition: {partition}")
        return self.partitions[partition]
