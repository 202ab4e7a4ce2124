import asyncio

import pytest

from events import bus, E
from metrics import runtime_metrics


@pytest.fixture(autouse=True)
def clean_metrics():
    runtime_metrics.reset()
    yield
    runtime_metrics.reset()


def test_record_llm_call():
    runtime_metrics.record_llm_call(latency_ms=100)
    runtime_metrics.record_llm_call(latency_ms=300, error=True)

    snapshot = runtime_metrics.snapshot()
    assert snapshot["llm_call_count"] == 2
    assert snapshot["llm_error_count"] == 1
    assert snapshot["llm_avg_latency_ms"] == 200.0
    assert snapshot["last_llm_call_at_utc"] is not None


def test_reset():
    runtime_metrics.record_llm_call(latency_ms=10)
    runtime_metrics.escalation_sent_count = 3

    runtime_metrics.reset()

    snapshot = runtime_metrics.snapshot()
    assert snapshot["llm_call_count"] == 0
    assert snapshot["escalation_sent_count"] == 0
    assert snapshot["last_llm_call_at_utc"] is None


@pytest.mark.asyncio
async def test_bus_events_update_counters():
    bus.emit(E.REMINDER_RECOVERED, 3)
    bus.emit(E.ACK_CLOSED, 1, "acknowledged")
    bus.emit(E.ACK_CLOSED, 2, "exhausted")
    # 协程处理器以 Task 方式调度
    await asyncio.sleep(0.01)

    assert runtime_metrics.reminder_recovered_count == 3
    assert runtime_metrics.ack_received_count == 1
    assert runtime_metrics.ack_exhausted_count == 1
