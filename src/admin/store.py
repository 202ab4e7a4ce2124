from __future__ import annotations

from typing import Any

import aiosqlite
from fastapi import HTTPException

import storage.db_config as db_config
from logger import logger


def _require_conn() -> aiosqlite.Connection:
    if db_config.conn is None:
        raise HTTPException(status_code=503, detail="数据库尚未就绪")
    return db_config.conn


async def fetch_all(sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
    """只读查询, 每行转成 {列名: 值}"""
    conn = _require_conn()
    try:
        async with conn.execute(sql, params) as cursor:
            col_names = [c[0] for c in cursor.description]
            return [dict(zip(col_names, row)) async for row in cursor]
    except aiosqlite.Error as e:
        logger.error(f"Admin 查询失败: sql={sql}, error={e}")
        raise HTTPException(status_code=503, detail="数据库查询失败") from e


async def count(table: str, where_sql: str = "", params: tuple[Any, ...] = ()) -> int:
    rows = await fetch_all(f"SELECT COUNT(*) AS total FROM {table} {where_sql}", params)
    return int(rows[0]["total"]) if rows else 0
