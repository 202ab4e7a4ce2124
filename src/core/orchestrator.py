"""入站消息编排

所有用户消息的唯一入口 handle_incoming_text:
1. 先交给确认状态机, 处于等待确认状态时这条消息被当作确认消费掉;
2. 否则调用 LLM 并解析意图;
3. 提醒意图 => 写库 + 调度投递 + 回复本地时间; 闲聊 => 直接回复; 解析失败 => 提示用户换个说法。

这条链路上的任何异常都在入口处转换为用户可见的回复, 不会让进程退出。
"""

import time

import storage.message as message_storage
import storage.reminder as reminder_storage
from channels.base import MessageGateway
from config.prompts import *
from config.settings import USER_TIMEZONE
from core import intent_parser
from core.acknowledgement import AcknowledgementStateMachine
from core.delivery import DeliveryScheduler
from datamodel import ChatReply, IncomingMessage, ParseError, ParseErrorKind, ReminderIntent
from errors import LLMError, StoreError
from events import bus, E
from llm.base import LLMClient
from logger import logger
from metrics import runtime_metrics
from utils import now_utc, utc_to_user_local_display

__all__ = ["Orchestrator", "configure_orchestrator", "require_orchestrator"]


class Orchestrator:
    def __init__(
        self,
        llm_client: LLMClient,
        gateway: MessageGateway,
        scheduler: DeliveryScheduler,
        ack: AcknowledgementStateMachine,
        store=reminder_storage,
        message_store=message_storage,
        user_timezone: str = USER_TIMEZONE,
    ) -> None:
        self.llm_client = llm_client
        self.gateway = gateway
        self.scheduler = scheduler
        self.ack = ack
        self.store = store
        self.message_store = message_store
        self.user_timezone = user_timezone

    def build_prompt(self, text: str) -> str:
        return INTENT_PROMPT_TEMPLATE.format(
            now_utc=now_utc().isoformat(timespec="seconds"),
            user_timezone=self.user_timezone,
            user_text=text,
        )

    async def handle_incoming_text(self, user_id: int, text: str) -> str:
        """处理一条用户消息, 返回发给用户的回复文本"""
        text = (text or "").strip()
        await self._save_history(user_id, "user", text)

        try:
            if await self.ack.on_user_message(user_id, text):
                # 收尾回复已由状态机发出
                await self._save_history(user_id, "kairos", self.ack.closing_reply)
                return self.ack.closing_reply
            reply = await self._route(user_id, text)
        except Exception as e:
            logger.opt(exception=e).error(f"处理用户 {user_id} 的消息失败: {e}")
            reply = INTERNAL_ERROR_REPLY

        try:
            await self.gateway.send(user_id, reply)
        except Exception as e:
            logger.opt(exception=e).error(f"向用户 {user_id} 发送回复失败: {e}")
        await self._save_history(user_id, "kairos", reply)
        return reply

    async def _route(self, user_id: int, text: str) -> str:
        if not text:
            return NOT_UNDERSTOOD_REPLY

        start_time = time.perf_counter()
        llm_call_error = False
        try:
            raw = await self.llm_client.complete(self.build_prompt(text))
        except LLMError as e:
            llm_call_error = True
            logger.error(f"LLM 调用失败: user_id={user_id}, error={e}")
            return LLM_ERROR_REPLY
        finally:
            latency_seconds = time.perf_counter() - start_time
            runtime_metrics.record_llm_call(latency_ms=latency_seconds * 1000, error=llm_call_error)
            logger.debug(f"LLM API 响应时间: {latency_seconds:.2f} 秒")

        if not raw.strip():
            logger.warning(f"LLM 返回空文本: user_id={user_id}")
            return NOT_UNDERSTOOD_REPLY

        result = intent_parser.parse(raw)
        logger.debug(f"意图解析结果: user_id={user_id}, result={result}")

        if isinstance(result, ParseError):
            logger.warning(f"意图解析失败: user_id={user_id}, kind={result.kind.value}, detail={result.detail}")
            if result.kind == ParseErrorKind.MALFORMED_JSON:
                return NOT_UNDERSTOOD_REPLY
            return INVALID_DATETIME_REPLY

        if isinstance(result, ChatReply):
            return result.message

        return await self._create_reminder(user_id, result)

    async def _create_reminder(self, user_id: int, intent: ReminderIntent) -> str:
        try:
            reminder = await self.store.create_reminder(user_id, intent.text, intent.deliver_at)
        except StoreError as e:
            logger.error(f"保存提醒失败: user_id={user_id}, text={intent.text}, error={e}")
            return STORE_ERROR_REPLY

        self.scheduler.schedule(reminder)
        logger.info(f"提醒已创建: reminder_id={reminder.reminder_id}, text={reminder.text}, deliver_at_utc={reminder.deliver_at_utc.isoformat()}")
        return REMINDER_CONFIRMATION.format(
            text=reminder.text,
            local_time=utc_to_user_local_display(reminder.deliver_at_utc, self.user_timezone),
        )

    async def _save_history(self, user_id: int, role: str, content: str) -> None:
        if self.message_store is None or not content:
            return
        try:
            await self.message_store.create_message(user_id, "telegram", role, content)
        except StoreError as e:
            logger.warning(f"保存对话记录失败: user_id={user_id}, error={e}")


_orchestrator: Orchestrator | None = None


def configure_orchestrator(orchestrator: Orchestrator | None) -> None:
    global _orchestrator
    _orchestrator = orchestrator


def require_orchestrator() -> Orchestrator:
    if _orchestrator is None:
        raise RuntimeError("Orchestrator 尚未配置，请先调用 configure_orchestrator()")
    return _orchestrator


@bus.on(E.IO_MESSAGE_RECEIVED)
async def handle_incoming_message(msg: IncomingMessage) -> None:
    logger.info(f"收到来自用户 {msg.user_id} 的消息: {msg.content}")
    await require_orchestrator().handle_incoming_text(msg.user_id, msg.content)
