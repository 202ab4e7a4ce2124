"""提醒投递调度

每条提醒对应一个一次性的 asyncio 定时任务, 延迟 = deliver_at - now, 已过期的提醒立即触发而不是丢弃。
触发顺序: 发送 -> 标记已发送 -> 进入确认状态机, 三步在同一个任务里串行执行。

发送失败时只记录日志, 记录保持 pending, 本进程内不会再次尝试(至多一次投递)。
每个提醒 ID 在本进程生命周期内只会被调度一次, 重复 schedule 不会产生第二个定时器。
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import storage.reminder as reminder_storage
from channels.base import MessageGateway
from config.prompts import REMINDER_NOTIFICATION
from core.acknowledgement import AcknowledgementStateMachine
from datamodel import Reminder, ReminderStatus
from errors import DeliveryFailure, StoreError
from events import bus, E
from logger import logger
from utils import now_utc

__all__ = ["DeliveryScheduler", "ScheduleHandle"]


@dataclass
class ScheduleHandle:
    reminder_id: str
    user_id: int
    deliver_at_utc: datetime
    delay_seconds: float
    task: asyncio.Task[None]

    @property
    def done(self) -> bool:
        return self.task.done()


class DeliveryScheduler:
    def __init__(
        self,
        gateway: MessageGateway,
        ack: AcknowledgementStateMachine | None = None,
        store=reminder_storage,
        clock: Callable[[], datetime] = now_utc,
        notification_template: str = REMINDER_NOTIFICATION,
    ) -> None:
        self._gateway = gateway
        self._ack = ack
        self._store = store
        self._clock = clock
        self._template = notification_template

        self._armed: dict[str, ScheduleHandle] = {}
        self._scheduled_ids: set[str] = set()  # 本进程内已经调度过(包括已触发)的提醒

    def is_scheduled(self, reminder_id: str) -> bool:
        return reminder_id in self._scheduled_ids

    def is_armed(self, reminder_id: str) -> bool:
        handle = self._armed.get(reminder_id)
        return handle is not None and not handle.done

    def get_status(self) -> dict[str, object]:
        return {
            "armed": len(self._armed),
            "scheduled_total": len(self._scheduled_ids),
            "next_delivery_at_utc": min(
                (h.deliver_at_utc for h in self._armed.values()), default=None
            ),
        }

    def schedule(self, record: Reminder) -> ScheduleHandle | None:
        """为提醒挂上一次性定时器; 已发送或本进程已调度过的提醒返回已有句柄或 None"""
        if record.status != ReminderStatus.PENDING:
            logger.debug(f"提醒 {record.reminder_id} 状态为 {record.status.value}, 不再调度")
            return None

        existing = self._armed.get(record.reminder_id)
        if existing is not None:
            return existing

        if record.reminder_id in self._scheduled_ids:
            logger.debug(f"提醒 {record.reminder_id} 在本进程内已经触发过, 不再重复调度")
            return None

        delay = max((record.deliver_at_utc - self._clock()).total_seconds(), 0.0)
        task = asyncio.create_task(self._run(record, delay), name=f"reminder-{record.reminder_id}")
        handle = ScheduleHandle(
            reminder_id=record.reminder_id,
            user_id=record.user_id,
            deliver_at_utc=record.deliver_at_utc,
            delay_seconds=delay,
            task=task,
        )
        self._armed[record.reminder_id] = handle
        self._scheduled_ids.add(record.reminder_id)

        if delay == 0:
            logger.info(f"提醒 {record.reminder_id} 已到期(deliver_at_utc={record.deliver_at_utc}), 立即投递")
        else:
            logger.debug(f"已调度提醒 {record.reminder_id}: user_id={record.user_id}, delay={delay:.1f}s")
        return handle

    def cancel(self, handle: ScheduleHandle) -> bool:
        """取消尚未触发的定时器; 取消后该提醒可以被重新调度"""
        if self._armed.get(handle.reminder_id) is not handle or handle.done:
            return False
        handle.task.cancel()
        self._armed.pop(handle.reminder_id, None)
        self._scheduled_ids.discard(handle.reminder_id)
        logger.info(f"已取消提醒 {handle.reminder_id} 的定时器")
        return True

    async def _run(self, record: Reminder, delay: float) -> None:
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            await self._deliver(record)
        except asyncio.CancelledError:
            logger.debug(f"提醒 {record.reminder_id} 的定时器被取消")
            raise
        except Exception as e:
            logger.opt(exception=e).error(f"投递提醒 {record.reminder_id} 时发生未预期的异常: {e}")
        finally:
            handle = self._armed.get(record.reminder_id)
            if handle is not None and handle.task is asyncio.current_task():
                self._armed.pop(record.reminder_id, None)

    async def _deliver(self, record: Reminder) -> None:
        text = self._template.format(text=record.text)
        reason = ""
        try:
            sent = await self._gateway.send(record.user_id, text)
        except Exception as e:
            sent = False
            reason = str(e)

        if not sent:
            failure = DeliveryFailure(record.user_id, reason or "gateway returned failure")
            logger.error(f"提醒 {record.reminder_id} 投递失败, 保持 pending 且不重试: {failure}")
            bus.emit(E.REMINDER_DELIVERY_FAILED, record, failure)
            return

        try:
            if await self._store.mark_sent(record.reminder_id):
                record.status = ReminderStatus.SENT
        except StoreError as e:
            # 消息已经发出去了, 这里失败只会导致重启后重复提醒一次
            logger.opt(exception=e).error(f"提醒 {record.reminder_id} 已发送但标记失败: {e}")

        logger.info(f"已向用户 {record.user_id} 投递提醒 {record.reminder_id}: {record.text}")
        bus.emit(E.REMINDER_DELIVERED, record)

        if self._ack is not None:
            await self._ack.arm(record.user_id, record.text)

    async def shutdown(self) -> None:
        """取消所有未触发的定时器, 记录仍为 pending, 下次启动时恢复"""
        handles = list(self._armed.values())
        for handle in handles:
            handle.task.cancel()
        await asyncio.gather(*(h.task for h in handles), return_exceptions=True)
        self._armed.clear()
        logger.info(f"投递调度器已关闭, 取消了 {len(handles)} 个定时器")
