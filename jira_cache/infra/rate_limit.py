from __future__ import annotations

"""
并发准入控制（Admission Gate）。

为什么需要这个模块：
- Jira 有限流，批量解析 issue 时很容易一次性打出几百个请求
- 必须有明确的在途上限：超过上限的调用**协作式等待**（不是失败），名额释放后再进入

语义：
- 计数器是实例级的（每个 cache 一份），外部只读
- 等待者之间不保证顺序（Condition 唤醒后重新竞争）
- 退出时无论成功/失败/取消都会释放名额，否则准入会被永久卡死
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio

logger = logging.getLogger(__name__)


class AdmissionGate:
    """在途请求计数器 + 上限。`admit()` 受上限约束；`track()` 只计入空闲判断。"""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._in_flight = 0
        self._tracked = 0
        self._condition = anyio.Condition()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def tracked(self) -> int:
        return self._tracked

    @asynccontextmanager
    async def admit(self) -> AsyncIterator[None]:
        """等到 `in_flight < limit` 再登记为在途；退出时释放。"""
        async with self._condition:
            while self._in_flight >= self._limit:
                await self._condition.wait()
            self._in_flight += 1
        try:
            yield
        finally:
            with anyio.CancelScope(shield=True):
                async with self._condition:
                    self._in_flight -= 1
                    self._condition.notify_all()

    @asynccontextmanager
    async def track(self) -> AsyncIterator[None]:
        """登记一个不受上限约束的操作（例如 JQL 查询），只影响 `wait_idle()`。"""
        async with self._condition:
            self._tracked += 1
        try:
            yield
        finally:
            with anyio.CancelScope(shield=True):
                async with self._condition:
                    self._tracked -= 1
                    self._condition.notify_all()

    async def wait_idle(self, timeout: float | None = None) -> None:
        """
        等到没有任何在途操作。

        - timeout：秒；超时抛 `TimeoutError`（不设则可能无限等待被卡住的请求）
        """
        with anyio.fail_after(timeout):
            async with self._condition:
                while self._in_flight > 0 or self._tracked > 0:
                    logger.debug(f"Waiting for idle: in_flight={self._in_flight}, tracked={self._tracked}")
                    await self._condition.wait()
