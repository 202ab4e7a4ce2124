import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from logger import logger
load_dotenv()

__all__ = [
    "TELEGRAM_BOT_TOKEN", "ALLOWED_TELEGRAM_USER_IDS",
    "LLM_PROVIDER", "OPENAI_PRIMARY_API_KEY", "OPENAI_PRIMARY_BASE_URL", "GEMINI_API_KEY", "GEMINI_BASE_URL",
    "LLM_MODEL", "LLM_TEMPERATURE", "LLM_TOP_P", "LLM_MAX_OUTPUT_TOKENS",
    "USER_TIMEZONE", "FOLLOW_UP_DELAYS_SECONDS",
    "DB_PATH", "LOG_FILE",
    "ENABLE_ADMIN_HTTP", "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN",
    "validate_settings",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw!r}, 已回退到 {default}")
        return default


def _parse_int_list(name: str) -> list[int]:
    raw = os.getenv(name, "")
    result: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            result.append(int(part))
        except ValueError:
            logger.warning(f"{name} 中存在非法的用户 ID: {part!r}, 已忽略")
    return result


def _parse_float_list(name: str, default: tuple[float, ...]) -> tuple[float, ...]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        values = tuple(float(part) for part in raw.split(",") if part.strip())
    except ValueError:
        logger.warning(f"{name} 非法: {raw!r}, 已回退到 {default}")
        return default
    if not values or any(v < 0 for v in values):
        logger.warning(f"{name} 必须是非负数列表: {raw!r}, 已回退到 {default}")
        return default
    return values


# Telegram Bot
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
ALLOWED_TELEGRAM_USER_IDS = _parse_int_list("ALLOWED_TELEGRAM_USER_IDS")  # 为空表示不限制


# LLM 设置
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "gemini").strip().lower()

OPENAI_PRIMARY_API_KEY = os.getenv("OPENAI_PRIMARY_API_KEY")
OPENAI_PRIMARY_BASE_URL = os.getenv("OPENAI_PRIMARY_BASE_URL", "https://api.openai.com/v1")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL")

LLM_MODEL = os.getenv("LLM_MODEL", "gemini-2.0-flash")
LLM_TEMPERATURE = _parse_float("LLM_TEMPERATURE", 0.5)
LLM_TOP_P = _parse_float("LLM_TOP_P", 0.9)
LLM_MAX_OUTPUT_TOKENS = int(_parse_float("LLM_MAX_OUTPUT_TOKENS", 300))


# 用户与提醒
USER_TIMEZONE = os.getenv("USER_TIMEZONE", "Asia/Almaty")
# 提醒送达后的追问节奏(秒)，相对于送达时刻：7 分钟、25 分钟、60 分钟
FOLLOW_UP_DELAYS_SECONDS = _parse_float_list("FOLLOW_UP_DELAYS_SECONDS", (7 * 60.0, 25 * 60.0, 60 * 60.0))


# 存储与日志
DB_PATH = os.getenv("DB_PATH", "data/kairos.db")
LOG_FILE = os.getenv("LOG_FILE", "logs/kairos.log")


# Admin API
ENABLE_ADMIN_HTTP = _parse_bool("ENABLE_ADMIN_HTTP", False)
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = int(_parse_float("ADMIN_HTTP_PORT", 18080))
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")


def validate_settings() -> None:
    """启动前检查致命配置错误, 任何一项不满足都直接退出进程"""
    if TELEGRAM_BOT_TOKEN == "":
        logger.critical("TELEGRAM_BOT_TOKEN 未设置")
        exit(1)

    if LLM_PROVIDER not in ("openai", "gemini"):
        logger.critical(f"LLM_PROVIDER 非法: {LLM_PROVIDER}, 仅支持 openai 或 gemini")
        exit(1)

    if LLM_PROVIDER == "openai" and OPENAI_PRIMARY_API_KEY is None:
        logger.critical("当前 LLM_PROVIDER=openai, 但 OPENAI_PRIMARY_API_KEY 未设置")
        exit(1)

    if LLM_PROVIDER == "gemini" and GEMINI_API_KEY is None:
        logger.critical("当前 LLM_PROVIDER=gemini, 但 GEMINI_API_KEY 未设置")
        exit(1)

    try:
        ZoneInfo(USER_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.critical(f"USER_TIMEZONE 非法: {USER_TIMEZONE!r}, 需要 IANA 时区名, 例如 Asia/Almaty")
        exit(1)

    if ENABLE_ADMIN_HTTP and not ADMIN_AUTH_TOKEN:
        logger.warning("已启用 Admin HTTP, 但 ADMIN_AUTH_TOKEN 未设置, 管理 API 将不可访问")

    if not ALLOWED_TELEGRAM_USER_IDS:
        logger.warning("未设置 ALLOWED_TELEGRAM_USER_IDS, 任何 Telegram 用户都可以使用 Bot")
