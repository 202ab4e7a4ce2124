"""启动恢复: 把所有 pending 的提醒重新挂到调度器上

必须在开始接收消息之前调用。读库失败是致命的, StoreError 原样抛给启动流程。
deliver_at_utc 已经是绝对 UTC 时间, 剩余延迟由调度器按当前时间重新计算。
"""

import storage.reminder as reminder_storage
from core.delivery import DeliveryScheduler
from events import bus, E
from logger import logger
from utils import now_utc

__all__ = ["recover_all"]


async def recover_all(scheduler: DeliveryScheduler, store=reminder_storage) -> int:
    pending = await store.get_pending_reminders()

    now = now_utc()
    rescheduled = 0
    overdue = 0
    for reminder in pending:
        if scheduler.is_scheduled(reminder.reminder_id):
            continue
        if scheduler.schedule(reminder) is None:
            continue
        rescheduled += 1
        if reminder.deliver_at_utc <= now:
            overdue += 1

    logger.info(f"已恢复 {rescheduled} 条未发送的提醒(其中 {overdue} 条已过期, 将立即投递), pending 总数 {len(pending)}")
    bus.emit(E.REMINDER_RECOVERED, rescheduled)
    return rescheduled
