from datetime import datetime, timezone
from zoneinfo import ZoneInfo

__all__ = ["now_utc", "ensure_utc", "parse_iso_to_utc", "to_db_str", "from_db_str", "utc_to_user_local_display"]

_DB_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def now_utc() -> datetime:
    """获取当前 UTC 时间"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """无时区信息的时间一律视为 UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_to_utc(raw: str) -> datetime:
    """解析 ISO-8601 时间字符串并归一化到 UTC, 失败时抛出 ValueError"""
    raw = raw.strip()
    if not raw:
        raise ValueError("empty datetime string")
    dt = datetime.fromisoformat(raw)
    try:
        return ensure_utc(dt)
    except OverflowError as e:
        # 例如 0001-01-01T00:00:00+05:00, 换算到 UTC 后超出 datetime 范围
        raise ValueError(f"datetime out of range after UTC conversion: {raw}") from e


def to_db_str(dt: datetime) -> str:
    # 数据库中统一存无时区的 UTC 字符串，可以直接按字典序比较
    return ensure_utc(dt).strftime(_DB_FORMAT)


def from_db_str(raw: str) -> datetime:
    try:
        dt = datetime.strptime(raw, _DB_FORMAT)
    except ValueError:
        # CURRENT_TIMESTAMP 写入的格式没有微秒
        dt = datetime.strptime(raw, "%Y-%m-%d %H:%M:%S")
    return dt.replace(tzinfo=timezone.utc)


def utc_to_user_local_display(utc_dt: datetime, user_tz: str) -> str:
    """格式化为用户本地时间, 例如 '14:05, 30 October'"""
    local_dt = ensure_utc(utc_dt).astimezone(ZoneInfo(user_tz))
    return f"{local_dt.strftime('%H:%M')}, {local_dt.day} {local_dt.strftime('%B')}"
