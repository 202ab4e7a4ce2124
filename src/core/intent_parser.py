"""意图解析

把语言理解服务返回的原始文本转换为 ReminderIntent / ChatReply / ParseError。
模型输出经常带有代码块标记或前置说明文字, 这里尽量宽容地找出第一个 JSON 对象。
纯函数, 没有任何副作用; 时间统一归一化为 UTC, 转成用户本地时间由调用方负责。
"""

import json
import re
from typing import Any

from config.prompts import DEFAULT_CHAT_REPLY
from datamodel import ChatReply, ParseError, ParseErrorKind, ParseResult, ReminderIntent
from utils import parse_iso_to_utc

__all__ = ["parse", "strip_wrapping"]

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)
_decoder = json.JSONDecoder()


def strip_wrapping(raw: str) -> str:
    return _FENCE_PATTERN.sub("", raw).strip()


def _decode_first_object(text: str) -> dict[str, Any] | None:
    start = text.find("{")
    if start < 0:
        return None
    try:
        obj, _ = _decoder.raw_decode(text[start:])
    except json.JSONDecodeError:
        return None
    return obj if isinstance(obj, dict) else None


def _parse_reminder(payload: Any) -> ParseResult:
    if not isinstance(payload, dict):
        return ParseError(ParseErrorKind.INVALID_DATETIME, "missing reminder object")

    raw_dt = payload.get("datetime")
    if not isinstance(raw_dt, str):
        return ParseError(ParseErrorKind.INVALID_DATETIME, f"datetime is not a string: {raw_dt!r}")
    try:
        deliver_at = parse_iso_to_utc(raw_dt)
    except ValueError:
        return ParseError(ParseErrorKind.INVALID_DATETIME, f"unparseable datetime: {raw_dt!r}")

    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        return ParseError(ParseErrorKind.INVALID_DATETIME, "empty reminder text")

    return ReminderIntent(text=text.strip(), deliver_at=deliver_at)


def parse(raw: str) -> ParseResult:
    obj = _decode_first_object(strip_wrapping(raw or ""))
    if obj is None:
        return ParseError(ParseErrorKind.MALFORMED_JSON, (raw or "")[:200])

    if obj.get("action") == "reminder":
        return _parse_reminder(obj.get("reminder"))

    message = obj.get("message")
    if isinstance(message, str) and message.strip():
        return ChatReply(message.strip())
    return ChatReply(DEFAULT_CHAT_REPLY)
