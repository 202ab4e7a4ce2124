from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
from enum import Enum
from datetime import datetime

__all__ = [
    "ReminderStatus", "Reminder",
    "ReminderIntent", "ChatReply", "ParseErrorKind", "ParseError", "ParseResult",
    "AckPhase", "AcknowledgementState",
    "ChannelType", "IncomingMessage",
]

# ----------------- Reminder 数据模型 ----------------
class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"  # 单向转换, 不会回到 pending


@dataclass
class Reminder:
    reminder_id: str  # 由存储层分配的 ULID
    user_id: int
    text: str
    deliver_at_utc: datetime  # 带 tzinfo 的 UTC 时间
    status: ReminderStatus = ReminderStatus.PENDING
    created_at_utc: Optional[datetime] = None


# ----------------- 意图解析结果 ----------------
@dataclass(frozen=True)
class ReminderIntent:
    text: str
    deliver_at: datetime  # 已归一化为 UTC


@dataclass(frozen=True)
class ChatReply:
    message: str


class ParseErrorKind(str, Enum):
    MALFORMED_JSON = "malformed_json"
    INVALID_DATETIME = "invalid_datetime"


@dataclass(frozen=True)
class ParseError:
    kind: ParseErrorKind
    detail: str = ""


ParseResult = Union[ReminderIntent, ChatReply, ParseError]


# ----------------- 确认(追问)状态 ----------------
class AckPhase(str, Enum):
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"


@dataclass
class AcknowledgementState:
    user_id: int
    last_prompt: str = ""
    active: bool = False
    generation: int = 0  # 每次 arm 递增, 旧一轮的追问据此失效

    @property
    def phase(self) -> AckPhase:
        return AckPhase.AWAITING_REPLY if self.active else AckPhase.IDLE


# ----------------- Channel 数据模型 ----------------
class ChannelType(str, Enum):
    TELEGRAM_BOT_POLLING = "telegram_bot_polling"


@dataclass
class IncomingMessage:
    channel_type: ChannelType
    user_id: int  # Telegram 用户 ID, 跨会话稳定
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)  # 平台特定元数据
    timestamp: Optional[datetime] = None
