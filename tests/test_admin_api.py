"""Tests for the admin HTTP API."""

import asyncio
import time
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from fastapi import Request

import config.settings as settings
import storage.reminder as reminder_storage
from admin.app import create_app
from admin.auth import extract_token
from admin.schemas import RuntimeControl
from utils import now_utc

TOKEN = "test-admin-token"


@pytest_asyncio.fixture
async def control(scheduler, ack):
    return RuntimeControl(
        shutdown_event=asyncio.Event(),
        started_at=time.time(),
        scheduler=scheduler,
        ack=ack,
    )


@pytest_asyncio.fixture
async def client(control, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_AUTH_TOKEN", TOKEN)
    transport = httpx.ASGITransport(app=create_app(control))
    async with httpx.AsyncClient(transport=transport, base_url="http://admin") as c:
        yield c


def _auth() -> dict[str, str]:
    return {"Authorization": f"Bearer {TOKEN}"}


@pytest.mark.asyncio
async def test_health_is_public(client):
    resp = await client.get("/healthz")
    assert resp.status_code == 200
    assert resp.text == "ok"

    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["db_connected"] is True
    assert body["shutdown_requested"] is False


@pytest.mark.asyncio
async def test_metrics_requires_token(client):
    resp = await client.get("/api/v1/metrics")
    assert resp.status_code == 401

    resp = await client.get("/api/v1/metrics", headers={"Authorization": "Bearer wrong"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_admin_disabled_without_token(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_AUTH_TOKEN", "")
    resp = await client.get("/api/v1/metrics", headers=_auth())
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_metrics(client):
    resp = await client.get("/api/v1/metrics", headers={"X-Kairos-Token": TOKEN})
    assert resp.status_code == 200
    body = resp.json()
    assert "llm_call_count" in body["runtime"]
    assert body["components"]["db"]["connected"] is True
    assert body["components"]["scheduler"]["configured"] is True
    assert body["components"]["scheduler"]["armed"] == 0
    assert body["components"]["acknowledgement"]["awaiting_users"] == 0


@pytest.mark.asyncio
async def test_list_reminders(client, scheduler):
    armed = await reminder_storage.create_reminder(1, "armed one", now_utc() + timedelta(hours=1))
    idle = await reminder_storage.create_reminder(2, "not armed", now_utc() + timedelta(hours=2))
    scheduler.schedule(armed)

    resp = await client.get("/api/v1/reminders", headers=_auth())
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    by_id = {item["reminder_id"]: item for item in body["items"]}
    assert by_id[armed.reminder_id]["armed"] is True
    assert by_id[idle.reminder_id]["armed"] is False
    assert by_id[idle.reminder_id]["status"] == "pending"

    resp = await client.get("/api/v1/reminders", params={"user_id": 2}, headers=_auth())
    body = resp.json()
    assert body["total"] == 1
    assert body["items"][0]["text"] == "not armed"

    resp = await client.get("/api/v1/reminders", params={"status": "sent"}, headers=_auth())
    assert resp.json()["total"] == 0

    resp = await client.get("/api/v1/reminders", params={"status": "bogus"}, headers=_auth())
    assert resp.status_code == 400

    resp = await client.get("/api/v1/health")
    assert resp.json()["armed_reminders"] == 1


@pytest.mark.asyncio
async def test_shutdown_sets_event(client, control):
    resp = await client.post("/api/v1/admin/shutdown", json={"reason": "maintenance"}, headers=_auth())
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    assert control.shutdown_event.is_set()


def _request(headers: dict[str, str]) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    })


def test_extract_token():
    assert extract_token(_request({"Authorization": "Bearer abc"})) == "abc"
    assert extract_token(_request({"X-Kairos-Token": "xyz"})) == "xyz"
    assert extract_token(_request({})) is None
