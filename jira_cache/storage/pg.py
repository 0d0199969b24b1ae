from __future__ import annotations

import functools
import logging
import re
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

import anyio
import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from jira_cache.infra.cache import Record
from jira_cache.infra.cache import StoreError

logger = logging.getLogger(__name__)

TABLE_PREFIX = "jira_cache_"

_PARTITION_NAME = re.compile(r"^[a-z][a-z0-9_]{0,39}$")

T = TypeVar("T")


class PgStorageClient:
    """Postgres 连接器（每个 partition 一张 JSONB 表）。"""

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def connect(self) -> psycopg.Connection:
        return psycopg.connect(self._dsn)


def partition_table(partition: str) -> sql.Identifier:
    if not _PARTITION_NAME.match(partition):
        raise StoreError(f"Invalid partition name: {partition!r}")
    return sql.Identifier(f"{TABLE_PREFIX}{partition}")


def create_table_sql(partition: str) -> sql.Composed:
    return sql.SQL(
        """
        CREATE TABLE IF NOT EXISTS {} (
            key TEXT PRIMARY KEY,
            record JSONB NOT NULL,
            stored_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    ).format(partition_table(partition))


def select_record_sql(partition: str) -> sql.Composed:
    return sql.SQL("SELECT record FROM {} WHERE key = %s").format(partition_table(partition))


def upsert_record_sql(partition: str) -> sql.Composed:
    return sql.SQL(
        """
        INSERT INTO {} (key, record, stored_at)
        VALUES (%s, %s, now())
        ON CONFLICT (key)
        DO UPDATE SET record = EXCLUDED.record, stored_at = EXCLUDED.stored_at
        """
    ).format(partition_table(partition))


def ensure_partitions(client: PgStorageClient, partitions: Sequence[str]) -> None:
    if not partitions:
        raise ValueError("partitions must not be empty")
    with client.connect() as conn:
        with conn.cursor() as cur:
            for partition in partitions:
                cur.execute(create_table_sql(partition))
        conn.commit()


def get_record(client: PgStorageClient, key: str, partition: str) -> Record | None:
    with client.connect() as conn:
        with conn.cursor() as cur:
            cur.execute(select_record_sql(partition), (key,))
            row = cur.fetchone()
    if row is None:
        return None
    return row[0]


def put_record(client: PgStorageClient, key: str, record: Record, partition: str) -> None:
    with client.connect() as conn:
        with conn.cursor() as cur:
            cur.execute(upsert_record_sql(partition), (key, Jsonb(record)))
        conn.commit()


class PgEntityStore:
    """
    `EntityStore` 的 Postgres 实现。

    psycopg 同步调用放到 worker thread（`anyio.to_thread.run_sync`），不阻塞事件循环。
    psycopg 的异常统一包装成 `StoreError`。
    """

    def __init__(self, client: PgStorageClient) -> None:
        self._client = client
        self._partitions: set[str] = set()

    async def open(self, partitions: Sequence[str]) -> None:
        await self._run(ensure_partitions, self._client, list(partitions))
        self._partitions.update(partitions)
        logger.info(f"Postgres cache store ready: partitions={sorted(self._partitions)}")

    async def get(self, key: str, partition: str) -> Record | None:
        self._check_partition(partition)
        return await self._run(get_record, self._client, key, partition)

    async def put(self, key: str, record: Record, partition: str) -> None:
        self._check_partition(partition)
        await self._run(put_record, self._client, key, record, partition)

    async def close(self) -> None:
        self._partitions.clear()

    def _check_partition(self, partition: str) -> None:
        if partition not in self._partitions:
            raise StoreError(f"Unknown or unopened partition: {partition}")

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await anyio.to_thread.run_sync(functools.partial(func, *args))
        except psycopg.Error as exc:
            logger.error(f"Postgres store error: {exc}")
            raise StoreError(f"Postgres store error: {exc}") from exc
