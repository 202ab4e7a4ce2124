import aiosqlite
from ulid import ULID

import storage.db_config as db_config
from errors import StoreError
from logger import logger

__all__ = [
    "create_message",
    "get_recent_messages_by_user_id",
]

_ROLES = ("user", "kairos")


def _ensure_conn() -> aiosqlite.Connection:
    if db_config.conn is None:
        raise StoreError("数据库未初始化，请先调用 init_db()")
    return db_config.conn


async def create_message(user_id: int, channel: str, role: str, content: str) -> str:
    """创建新消息记录，返回消息 ID"""
    conn = _ensure_conn()
    if role not in _ROLES:
        logger.error(f"无效的消息角色: {role}, 该消息不会存入数据库")
        return ""

    message_id = str(ULID())
    try:
        await conn.execute(
            "INSERT INTO messages (message_id, user_id, channel, role, content) VALUES (?, ?, ?, ?, ?)",
            (message_id, user_id, channel, role, content),
        )
        await conn.commit()
    except aiosqlite.Error as e:
        raise StoreError(f"保存消息失败: {e}") from e
    return message_id


async def get_recent_messages_by_user_id(user_id: int, limit: int = 50) -> list[dict]:
    """获取某用户最近的消息记录，按 ULID 倒序"""
    conn = _ensure_conn()
    messages = []
    try:
        async with conn.execute(
            (
                "SELECT message_id, channel, role, content, created_at_utc "
                "FROM messages WHERE user_id = ? ORDER BY message_id DESC LIMIT ?"
            ),
            (user_id, limit),
        ) as cursor:
            async for row in cursor:
                messages.append({
                    "message_id": row[0],
                    "channel": row[1],
                    "role": row[2],
                    "content": row[3],
                    "created_at_utc": row[4],
                })
    except aiosqlite.Error as e:
        raise StoreError(f"读取消息失败: {e}") from e
    return messages
