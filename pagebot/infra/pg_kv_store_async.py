# pagebot/infra/pg_kv_store_async.py
from __future__ import annotations
import inspect
import json
from typing import Any, Optional

from pagebot.core.ports import AsyncKVStore, UpdateFn
from pagebot.infra.db_async import db_conn
from pagebot.infra.metrics import AppMetrics
from pagebot.infra.logging_config import get_logger

logger = get_logger(__name__)


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class AsyncPostgresKVStore(AsyncKVStore):
    """
    Key-value store on the kv_store table (see sql/001_kv_store.sql).

    Prefix scans are ordered by the row's seq, so they return values in
    first-insertion order like the in-memory backend.
    """

    async def get(self, key: str) -> Optional[Any]:
        try:
            async with db_conn() as conn:
                raw = await conn.fetchval("SELECT value::text FROM kv_store WHERE key = $1", key)
        except Exception:
            logger.error(f"Failed to get key: {key}", exc_info=True)
            AppMetrics.store_error("get")
            raise
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        try:
            async with db_conn() as conn:
                await conn.execute(
                    """
                    INSERT INTO kv_store(key, value)
                    VALUES ($1, $2::jsonb)
                    ON CONFLICT (key)
                    DO UPDATE SET
                      value = EXCLUDED.value,
                      updated_at = now()
                    """,
                    key, json.dumps(value, ensure_ascii=False)
                )
        except Exception:
            logger.error(f"Failed to set key: {key}", exc_info=True)
            AppMetrics.store_error("set")
            raise

    async def delete(self, key: str) -> None:
        try:
            async with db_conn() as conn:
                await conn.execute("DELETE FROM kv_store WHERE key = $1", key)
        except Exception:
            logger.error(f"Failed to delete key: {key}", exc_info=True)
            AppMetrics.store_error("delete")
            raise

    async def get_by_prefix(self, prefix: str) -> list[Any]:
        try:
            async with db_conn() as conn:
                rows = await conn.fetch(
                    "SELECT value::text AS value FROM kv_store WHERE key LIKE $1 ESCAPE '\\' ORDER BY seq",
                    _escape_like(prefix) + "%"
                )
        except Exception:
            logger.error(f"Failed to scan prefix: {prefix}", exc_info=True)
            AppMetrics.store_error("get_by_prefix")
            raise
        return [json.loads(row['value']) for row in rows]

    async def update(self, key: str, fn: UpdateFn) -> Optional[Any]:
        try:
            async with db_conn(autocommit=False) as conn:
                raw = await conn.fetchval(
                    "SELECT value::text FROM kv_store WHERE key = $1 FOR UPDATE", key
                )
                current = json.loads(raw) if raw is not None else None

                new_value = fn(current)
                if inspect.isawaitable(new_value):
                    new_value = await new_value
                if new_value is None:
                    return None

                await conn.execute(
                    """
                    INSERT INTO kv_store(key, value)
                    VALUES ($1, $2::jsonb)
                    ON CONFLICT (key)
                    DO UPDATE SET
                      value = EXCLUDED.value,
                      updated_at = now()
                    """,
                    key, json.dumps(new_value, ensure_ascii=False)
                )
                return new_value
        except Exception:
            logger.error(f"Failed to update key: {key}", exc_info=True)
            AppMetrics.store_error("update")
            raise

    async def ping(self) -> bool:
        try:
            async with db_conn() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as exc:
            logger.warning(f"Store ping failed: {exc}")
            return False
