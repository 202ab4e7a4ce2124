"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

总线只用于"通知"：入站消息分发、提醒生命周期与追问状态的变化(供指标统计等旁路订阅)。
需要拿到结果的调用(发送消息、写库)不走总线，直接调用对应接口。
协程处理器由 pyee 在当前事件循环中以 Task 方式调度, emit 本身不会阻塞。
"""

from __future__ import annotations
from pyee.asyncio import AsyncIOEventEmitter
from typing import Awaitable, Callable

from logger import logger

AsyncHandler = Callable[..., Awaitable[None]]

# 事件名集中定义
class E:
    IO_MESSAGE_RECEIVED = "io.message_received"
    IO_MESSAGE_SENT = "io.message_sent"
    REMINDER_CREATED = "reminder.created"
    REMINDER_DELIVERED = "reminder.delivered"
    REMINDER_DELIVERY_FAILED = "reminder.delivery_failed"
    REMINDER_RECOVERED = "reminder.recovered"
    ACK_ARMED = "ack.armed"
    ACK_ESCALATION_SENT = "ack.escalation_sent"
    ACK_CLOSED = "ack.closed"


class Bus(AsyncIOEventEmitter):
    def on(self, event: str) -> Callable[[AsyncHandler], AsyncHandler]:
        """注册事件处理器装饰器"""
        def decorator(handler: AsyncHandler) -> AsyncHandler:
            logger.debug(f"注册事件处理器: {event} -> {handler.__name__}")
            super(Bus, self).on(event, handler)
            return handler

        return decorator


bus = Bus()

__all__ = ["bus", "E", "Bus"]
