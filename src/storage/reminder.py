"""提醒存储

提醒记录以本模块为唯一可信来源, 调度器只持有临时引用。
时间列统一存 UTC, 格式见 utils.to_db_str。
"""

from datetime import datetime

import aiosqlite
from ulid import ULID

import storage.db_config as db_config
from datamodel import Reminder, ReminderStatus
from errors import StoreError
from events import bus, E
from logger import logger
from utils import from_db_str, now_utc, to_db_str

__all__ = [
    "create_reminder",
    "mark_sent",
    "get_pending_reminders",
    "get_pending_reminders_by_user_id",
    "get_reminder_by_id",
]

_COLUMNS = "reminder_id, user_id, text, deliver_at_utc, status, created_at_utc"


def _ensure_conn() -> aiosqlite.Connection:
    if db_config.conn is None:
        raise StoreError("数据库未初始化，请先调用 init_db()")
    return db_config.conn


def _row_to_reminder(row) -> Reminder:
    return Reminder(
        reminder_id=row[0],
        user_id=row[1],
        text=row[2],
        deliver_at_utc=from_db_str(row[3]),
        status=ReminderStatus(row[4]),
        created_at_utc=from_db_str(row[5]) if row[5] else None,
    )


async def create_reminder(user_id: int, text: str, deliver_at_utc: datetime) -> Reminder:
    """创建提醒, 返回带 ID 的记录"""
    conn = _ensure_conn()
    reminder_id = str(ULID())
    created_at = now_utc()
    try:
        await conn.execute(
            "INSERT INTO reminders (reminder_id, user_id, text, deliver_at_utc, status, created_at_utc) VALUES (?, ?, ?, ?, ?, ?)",
            (reminder_id, user_id, text, to_db_str(deliver_at_utc), ReminderStatus.PENDING.value, to_db_str(created_at)),
        )
        await conn.commit()
    except aiosqlite.Error as e:
        raise StoreError(f"创建提醒失败: {e}") from e

    reminder = Reminder(
        reminder_id=reminder_id,
        user_id=user_id,
        text=text,
        deliver_at_utc=from_db_str(to_db_str(deliver_at_utc)),
        status=ReminderStatus.PENDING,
        created_at_utc=created_at,
    )
    logger.trace(f"创建提醒: reminder_id={reminder_id}, user_id={user_id}, text={text}, deliver_at_utc={reminder.deliver_at_utc}")
    bus.emit(E.REMINDER_CREATED, reminder)
    return reminder


async def mark_sent(reminder_id: str) -> bool:
    """pending -> sent, 返回是否真的发生了状态转换"""
    conn = _ensure_conn()
    try:
        cursor = await conn.execute(
            "UPDATE reminders SET status = ?, sent_at_utc = ? WHERE reminder_id = ? AND status = ?",
            (ReminderStatus.SENT.value, to_db_str(now_utc()), reminder_id, ReminderStatus.PENDING.value),
        )
        await conn.commit()
    except aiosqlite.Error as e:
        raise StoreError(f"更新提醒状态失败: reminder_id={reminder_id}, error={e}") from e

    changed = cursor.rowcount > 0
    logger.trace(f"标记提醒已发送: reminder_id={reminder_id}, changed={changed}")
    return changed


async def get_pending_reminders() -> list[Reminder]:
    """获取所有未发送的提醒, 按送达时间排序"""
    conn = _ensure_conn()
    try:
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM reminders WHERE status = ? ORDER BY deliver_at_utc",
            (ReminderStatus.PENDING.value,),
        ) as cursor:
            rows = await cursor.fetchall()
    except aiosqlite.Error as e:
        raise StoreError(f"读取未发送提醒失败: {e}") from e
    return [_row_to_reminder(row) for row in rows]


async def get_pending_reminders_by_user_id(user_id: int) -> list[Reminder]:
    conn = _ensure_conn()
    try:
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM reminders WHERE status = ? AND user_id = ? ORDER BY deliver_at_utc",
            (ReminderStatus.PENDING.value, user_id),
        ) as cursor:
            rows = await cursor.fetchall()
    except aiosqlite.Error as e:
        raise StoreError(f"读取用户 {user_id} 的未发送提醒失败: {e}") from e
    return [_row_to_reminder(row) for row in rows]


async def get_reminder_by_id(reminder_id: str) -> Reminder | None:
    conn = _ensure_conn()
    try:
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM reminders WHERE reminder_id = ?",
            (reminder_id,),
        ) as cursor:
            row = await cursor.fetchone()
    except aiosqlite.Error as e:
        raise StoreError(f"读取提醒失败: reminder_id={reminder_id}, error={e}") from e
    return _row_to_reminder(row) if row else None
