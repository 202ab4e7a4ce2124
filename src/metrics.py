"""
一个简单的运行时指标收集类，统计 LLM 调用、消息流量、提醒投递与追问情况，供 Admin API 查看。
提醒与追问相关的计数通过订阅事件总线更新。
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from events import bus, E


@dataclass
class RuntimeMetrics:
    llm_call_count: int = 0
    llm_total_latency_ms: float = 0.0
    llm_error_count: int = 0
    msg_in_count: int = 0
    msg_out_count: int = 0
    reminder_created_count: int = 0
    reminder_delivered_count: int = 0
    reminder_failed_count: int = 0
    reminder_recovered_count: int = 0
    escalation_sent_count: int = 0
    ack_received_count: int = 0
    ack_exhausted_count: int = 0
    last_llm_call_at: float | None = None

    def record_llm_call(self, latency_ms: float, error: bool = False) -> None:
        self.llm_call_count += 1
        self.llm_total_latency_ms += max(0.0, latency_ms)
        self.last_llm_call_at = time.time()
        if error:
            self.llm_error_count += 1

    def reset(self) -> None:
        for name, default in RuntimeMetrics.__dataclass_fields__.items():
            setattr(self, name, default.default)

    def snapshot(self) -> dict:
        avg_latency_ms = 0.0
        if self.llm_call_count > 0:
            avg_latency_ms = self.llm_total_latency_ms / self.llm_call_count

        return {
            "llm_call_count": self.llm_call_count,
            "llm_error_count": self.llm_error_count,
            "llm_total_latency_ms": round(self.llm_total_latency_ms, 2),
            "llm_avg_latency_ms": round(avg_latency_ms, 2),
            "msg_in_count": self.msg_in_count,
            "msg_out_count": self.msg_out_count,
            "reminder_created_count": self.reminder_created_count,
            "reminder_delivered_count": self.reminder_delivered_count,
            "reminder_failed_count": self.reminder_failed_count,
            "reminder_recovered_count": self.reminder_recovered_count,
            "escalation_sent_count": self.escalation_sent_count,
            "ack_received_count": self.ack_received_count,
            "ack_exhausted_count": self.ack_exhausted_count,
            "last_llm_call_at_epoch": self.last_llm_call_at,
            "last_llm_call_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_llm_call_at))
                if self.last_llm_call_at is not None
                else None
            ),
        }


runtime_metrics = RuntimeMetrics()


@bus.on(E.IO_MESSAGE_RECEIVED)
async def _on_message_received(*_args) -> None:
    runtime_metrics.msg_in_count += 1


@bus.on(E.IO_MESSAGE_SENT)
async def _on_message_sent(*_args) -> None:
    runtime_metrics.msg_out_count += 1


@bus.on(E.REMINDER_CREATED)
async def _on_reminder_created(*_args) -> None:
    runtime_metrics.reminder_created_count += 1


@bus.on(E.REMINDER_DELIVERED)
async def _on_reminder_delivered(*_args) -> None:
    runtime_metrics.reminder_delivered_count += 1


@bus.on(E.REMINDER_DELIVERY_FAILED)
async def _on_reminder_failed(*_args) -> None:
    runtime_metrics.reminder_failed_count += 1


@bus.on(E.REMINDER_RECOVERED)
async def _on_reminder_recovered(count: int) -> None:
    runtime_metrics.reminder_recovered_count += count


@bus.on(E.ACK_ESCALATION_SENT)
async def _on_escalation_sent(*_args) -> None:
    runtime_metrics.escalation_sent_count += 1


@bus.on(E.ACK_CLOSED)
async def _on_ack_closed(_user_id: int, reason: str) -> None:
    if reason == "acknowledged":
        runtime_metrics.ack_received_count += 1
    else:
        runtime_metrics.ack_exhausted_count += 1


__all__ = ["RuntimeMetrics", "runtime_metrics"]
