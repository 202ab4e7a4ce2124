"""Pytest configuration and fixtures."""

import asyncio
import os
import sys

import pytest
import pytest_asyncio

# 源码是 src/ 下的扁平模块
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from channels.base import MessageGateway  # noqa: E402
from core.acknowledgement import AcknowledgementStateMachine  # noqa: E402
from core.delivery import DeliveryScheduler  # noqa: E402
from datamodel import ChannelType  # noqa: E402
import storage.db_config as db_config  # noqa: E402

FOLLOW_UP_DELAYS = (0.05, 0.1, 0.15)
FOLLOW_UP_MESSAGES = ("nudge-1", "nudge-2", "nudge-3 final")
CLOSING_REPLY = "closing"


class FakeGateway(MessageGateway):
    """记录所有发送的消息; fail=True 时模拟网关发送失败"""

    channel_type = ChannelType.TELEGRAM_BOT_POLLING

    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []
        self.fail = False

    async def send(self, user_id: int, text: str) -> bool:
        if self.fail:
            return False
        self.sent.append((user_id, text))
        return True

    def texts_for(self, user_id: int) -> list[str]:
        return [text for uid, text in self.sent if uid == user_id]


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest_asyncio.fixture
async def temp_db(tmp_path):
    """每个测试一个全新的 sqlite 数据库"""
    await db_config.init_db(str(tmp_path / "kairos_test.db"))
    yield db_config
    await db_config.close_db()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def ack(gateway):
    machine = AcknowledgementStateMachine(
        gateway,
        follow_up_delays=FOLLOW_UP_DELAYS,
        follow_up_messages=FOLLOW_UP_MESSAGES,
        closing_reply=CLOSING_REPLY,
    )
    yield machine
    await machine.shutdown()


@pytest_asyncio.fixture
async def scheduler(gateway, ack, temp_db):
    delivery = DeliveryScheduler(gateway, ack)
    yield delivery
    await delivery.shutdown()
