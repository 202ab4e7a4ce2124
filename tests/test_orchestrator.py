"""Tests for inbound message routing."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

import storage.message as message_storage
import storage.reminder as reminder_storage
from config.prompts import (
    INTERNAL_ERROR_REPLY,
    INVALID_DATETIME_REPLY,
    LLM_ERROR_REPLY,
    NOT_UNDERSTOOD_REPLY,
    STORE_ERROR_REPLY,
)
from conftest import CLOSING_REPLY
from core.orchestrator import Orchestrator, configure_orchestrator, require_orchestrator
from errors import LLMError, StoreError
from utils import now_utc


def _make_orchestrator(gateway, scheduler, ack, raw_reply="", side_effect=None):
    llm = AsyncMock()
    llm.complete.return_value = raw_reply
    if side_effect is not None:
        llm.complete.side_effect = side_effect
    return Orchestrator(
        llm_client=llm,
        gateway=gateway,
        scheduler=scheduler,
        ack=ack,
        user_timezone="Asia/Tokyo",
    )


@pytest.mark.asyncio
async def test_reminder_intent_creates_and_schedules(gateway, scheduler, ack):
    deliver_at = (now_utc() + timedelta(hours=1)).replace(microsecond=0)
    raw = (
        '{"action": "reminder", "message": "ok", '
        f'"reminder": {{"text": "call mom", "datetime": "{deliver_at.isoformat()}"}}}}'
    )
    orchestrator = _make_orchestrator(gateway, scheduler, ack, raw_reply=raw)

    reply = await orchestrator.handle_incoming_text(1, "remind me in an hour to call mom")

    assert reply.startswith("✅")
    assert "call mom" in reply
    assert gateway.texts_for(1) == [reply]

    pending = await reminder_storage.get_pending_reminders_by_user_id(1)
    assert len(pending) == 1
    assert pending[0].text == "call mom"
    assert pending[0].deliver_at_utc == deliver_at
    assert scheduler.is_armed(pending[0].reminder_id)

    prompt = orchestrator.llm_client.complete.await_args.args[0]
    assert "remind me in an hour to call mom" in prompt
    assert "Asia/Tokyo" in prompt


@pytest.mark.asyncio
async def test_confirmation_uses_local_time(gateway, scheduler, ack):
    raw = '{"action": "reminder", "reminder": {"text": "stretch", "datetime": "2099-10-30T03:25:00Z"}}'
    orchestrator = _make_orchestrator(gateway, scheduler, ack, raw_reply=raw)

    reply = await orchestrator.handle_incoming_text(1, "stretch later")

    # Asia/Tokyo = UTC+9
    assert "12:25, 30 October" in reply


@pytest.mark.asyncio
async def test_chat_reply(gateway, scheduler, ack):
    orchestrator = _make_orchestrator(gateway, scheduler, ack, raw_reply='{"action": "chat", "message": "Hello there"}')

    assert await orchestrator.handle_incoming_text(1, "hi") == "Hello there"
    assert await reminder_storage.get_pending_reminders() == []


@pytest.mark.asyncio
async def test_malformed_llm_output(gateway, scheduler, ack):
    orchestrator = _make_orchestrator(gateway, scheduler, ack, raw_reply="I am not JSON")
    assert await orchestrator.handle_incoming_text(1, "hi") == NOT_UNDERSTOOD_REPLY


@pytest.mark.asyncio
async def test_invalid_datetime(gateway, scheduler, ack):
    raw = '{"action": "reminder", "reminder": {"text": "x", "datetime": "someday"}}'
    orchestrator = _make_orchestrator(gateway, scheduler, ack, raw_reply=raw)

    assert await orchestrator.handle_incoming_text(1, "remind me someday") == INVALID_DATETIME_REPLY
    assert await reminder_storage.get_pending_reminders() == []


@pytest.mark.asyncio
async def test_llm_error(gateway, scheduler, ack):
    orchestrator = _make_orchestrator(gateway, scheduler, ack, side_effect=LLMError("quota"))
    assert await orchestrator.handle_incoming_text(1, "hi") == LLM_ERROR_REPLY
    assert gateway.texts_for(1) == [LLM_ERROR_REPLY]


@pytest.mark.asyncio
async def test_unexpected_error_becomes_internal_reply(gateway, scheduler, ack):
    orchestrator = _make_orchestrator(gateway, scheduler, ack, side_effect=RuntimeError("boom"))
    assert await orchestrator.handle_incoming_text(1, "hi") == INTERNAL_ERROR_REPLY


@pytest.mark.asyncio
async def test_empty_text_skips_llm(gateway, scheduler, ack):
    orchestrator = _make_orchestrator(gateway, scheduler, ack)
    assert await orchestrator.handle_incoming_text(1, "   ") == NOT_UNDERSTOOD_REPLY
    orchestrator.llm_client.complete.assert_not_awaited()


@pytest.mark.asyncio
async def test_acknowledgement_consumes_message(gateway, scheduler, ack):
    orchestrator = _make_orchestrator(gateway, scheduler, ack, raw_reply='{"action": "chat", "message": "x"}')
    await ack.arm(1, "drink water")

    reply = await orchestrator.handle_incoming_text(1, "done!")

    assert reply == CLOSING_REPLY
    # 收尾回复只由状态机发送一次
    assert gateway.texts_for(1) == [CLOSING_REPLY]
    orchestrator.llm_client.complete.assert_not_awaited()

    # 回到 Idle 之后的消息正常走 LLM
    assert await orchestrator.handle_incoming_text(1, "hi") == "x"


@pytest.mark.asyncio
async def test_history_is_saved(gateway, scheduler, ack):
    orchestrator = _make_orchestrator(gateway, scheduler, ack, raw_reply='{"action": "chat", "message": "Hello"}')
    await orchestrator.handle_incoming_text(9, "hi")

    history = await message_storage.get_recent_messages_by_user_id(9)
    assert sorted((m["role"], m["content"]) for m in history) == [("kairos", "Hello"), ("user", "hi")]


def test_require_orchestrator_when_not_configured():
    configure_orchestrator(None)
    with pytest.raises(RuntimeError):
        require_orchestrator()


@pytest.mark.asyncio
async def test_error_text_with_braces_becomes_internal_reply(gateway, scheduler, ack):
    orchestrator = _make_orchestrator(gateway, scheduler, ack, side_effect=RuntimeError("unexpected payload {candidates}"))
    assert await orchestrator.handle_incoming_text(1, "hi") == INTERNAL_ERROR_REPLY
    assert gateway.texts_for(1) == [INTERNAL_ERROR_REPLY]


@pytest.mark.asyncio
async def test_out_of_range_datetime_asks_to_be_more_specific(gateway, scheduler, ack):
    raw = '{"action": "reminder", "reminder": {"text": "x", "datetime": "0001-01-01T00:00:00+05:00"}}'
    orchestrator = _make_orchestrator(gateway, scheduler, ack, raw_reply=raw)
    assert await orchestrator.handle_incoming_text(1, "remind me long ago") == INVALID_DATETIME_REPLY


class _FailingReminderStore:
    async def create_reminder(self, user_id, text, deliver_at_utc):
        raise StoreError("database is locked")


@pytest.mark.asyncio
async def test_store_failure_on_create(gateway, scheduler, ack):
    raw = '{"action": "reminder", "reminder": {"text": "x", "datetime": "2099-01-01T00:00:00Z"}}'
    orchestrator = _make_orchestrator(gateway, scheduler, ack, raw_reply=raw)
    orchestrator.store = _FailingReminderStore()

    assert await orchestrator.handle_incoming_text(1, "remind me") == STORE_ERROR_REPLY
    status = scheduler.get_status()
    assert status["armed"] == 0
    assert status["scheduled_total"] == 0
