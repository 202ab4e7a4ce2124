from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic import BaseModel, Field

from core.acknowledgement import AcknowledgementStateMachine
from core.delivery import DeliveryScheduler


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float
    scheduler: DeliveryScheduler | None = None
    ack: AcknowledgementStateMachine | None = None


class ShutdownRequest(BaseModel):
    reason: str = Field(default="manual")


class ReminderItem(BaseModel):
    reminder_id: str
    user_id: int
    text: str
    deliver_at_utc: str
    status: str
    created_at_utc: str
    sent_at_utc: str | None = None
    armed: bool = False
