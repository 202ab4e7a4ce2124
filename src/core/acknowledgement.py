"""确认状态机

提醒送达后，用户进入 AwaitingReply 状态, 同时按固定节奏排好若干条追问:
- 用户在此期间发来任何消息 => 视为确认, 回到 Idle 并回复一句收尾, 这条消息不再交给 LLM;
- 追问触发时先检查状态, 已经不是 AwaitingReply 就什么都不做;
- 最后一条追问发出后无论是否有回复都回到 Idle, 不会永久卡在 AwaitingReply。

同一用户的所有读写(arm / 追问检查 / 用户回复)都在该用户的锁内进行, 不同用户互不影响。
状态只在内存中, 进程重启后丢失。
"""

import asyncio
from typing import Sequence

from channels.base import MessageGateway
from config.prompts import ACK_CLOSING_REPLY, FOLLOW_UP_MESSAGES
from config.settings import FOLLOW_UP_DELAYS_SECONDS
from datamodel import AckPhase, AcknowledgementState
from events import bus, E
from logger import logger

__all__ = ["AcknowledgementStateMachine"]


class AcknowledgementStateMachine:
    def __init__(
        self,
        gateway: MessageGateway,
        follow_up_delays: Sequence[float] = FOLLOW_UP_DELAYS_SECONDS,
        follow_up_messages: Sequence[str] = FOLLOW_UP_MESSAGES,
        closing_reply: str = ACK_CLOSING_REPLY,
    ) -> None:
        if len(follow_up_delays) != len(follow_up_messages):
            raise ValueError(
                f"追问节奏与追问文案数量不一致: delays={len(follow_up_delays)}, messages={len(follow_up_messages)}"
            )
        if not follow_up_delays:
            raise ValueError("至少需要一条追问, 否则无法保证状态最终回到 Idle")

        self._gateway = gateway
        self._delays = tuple(follow_up_delays)
        self._messages = tuple(follow_up_messages)
        self._closing_reply = closing_reply

        self._states: dict[int, AcknowledgementState] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._tasks: dict[int, list[asyncio.Task[None]]] = {}

    @property
    def closing_reply(self) -> str:
        return self._closing_reply

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def get_phase(self, user_id: int) -> AckPhase:
        state = self._states.get(user_id)
        return state.phase if state is not None else AckPhase.IDLE

    def get_state(self, user_id: int) -> AcknowledgementState | None:
        state = self._states.get(user_id)
        if state is None:
            return None
        # 返回副本, 状态只能由状态机自己修改
        return AcknowledgementState(
            user_id=state.user_id,
            last_prompt=state.last_prompt,
            active=state.active,
            generation=state.generation,
        )

    def get_status(self) -> dict[str, object]:
        return {
            "awaiting_users": sum(1 for s in self._states.values() if s.active),
            "pending_escalations": sum(
                1 for tasks in self._tasks.values() for t in tasks if not t.done()
            ),
        }

    def _cancel_escalations(self, user_id: int) -> None:
        current = asyncio.current_task()
        for task in self._tasks.pop(user_id, []):
            if task is not current and not task.done():
                task.cancel()

    async def arm(self, user_id: int, prompt_text: str) -> None:
        """提醒送达后调用: Idle -> AwaitingReply, 并排好整轮追问"""
        async with self._lock_for(user_id):
            state = self._states.get(user_id)
            if state is None:
                state = AcknowledgementState(user_id=user_id)
                self._states[user_id] = state

            # 上一轮还没结束就又来了新提醒: 旧追问作废, 以新提醒为准
            self._cancel_escalations(user_id)
            state.generation += 1
            state.last_prompt = prompt_text
            state.active = True

            generation = state.generation
            self._tasks[user_id] = [
                asyncio.create_task(
                    self._escalate(user_id, generation, step, delay),
                    name=f"ack-{user_id}-{generation}-{step}",
                )
                for step, delay in enumerate(self._delays)
            ]

        logger.info(f"用户 {user_id} 进入等待确认状态: prompt={prompt_text}, escalations={len(self._delays)}")
        bus.emit(E.ACK_ARMED, user_id, prompt_text)

    async def _escalate(self, user_id: int, generation: int, step: int, delay: float) -> None:
        await asyncio.sleep(delay)

        is_final = step == len(self._delays) - 1
        async with self._lock_for(user_id):
            state = self._states.get(user_id)
            if state is None or not state.active or state.generation != generation:
                logger.debug(f"用户 {user_id} 的第 {step + 1} 条追问已失效, 跳过")
                return

            text = self._messages[step]
            try:
                sent = await self._gateway.send(user_id, text)
            except Exception as e:
                sent = False
                logger.opt(exception=e).error(f"向用户 {user_id} 发送第 {step + 1} 条追问时发生异常: {e}")

            if is_final:
                state.active = False
                self._tasks.pop(user_id, None)

        if sent:
            logger.info(f"已向用户 {user_id} 发送第 {step + 1}/{len(self._delays)} 条追问")
            bus.emit(E.ACK_ESCALATION_SENT, user_id, step)
        else:
            logger.warning(f"用户 {user_id} 的第 {step + 1} 条追问发送失败")

        if is_final:
            logger.info(f"用户 {user_id} 未回复, 追问结束, 回到 Idle")
            bus.emit(E.ACK_CLOSED, user_id, "exhausted")

    async def on_user_message(self, user_id: int, text: str) -> bool:
        """用户发来消息时调用; 返回 True 表示该消息已作为确认被消费, 不应再做意图解析"""
        async with self._lock_for(user_id):
            state = self._states.get(user_id)
            if state is None or not state.active:
                return False

            state.active = False
            self._cancel_escalations(user_id)
            try:
                await self._gateway.send(user_id, self._closing_reply)
            except Exception as e:
                logger.opt(exception=e).error(f"向用户 {user_id} 发送确认收尾消息失败: {e}")

        logger.info(f"用户 {user_id} 已确认提醒: prompt={state.last_prompt}, reply={text}")
        bus.emit(E.ACK_CLOSED, user_id, "acknowledged")
        return True

    async def shutdown(self) -> None:
        tasks = [t for user_tasks in self._tasks.values() for t in user_tasks if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
