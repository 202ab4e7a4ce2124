from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

import storage.db_config as db_config
from datamodel import ReminderStatus
from logger import logger
from metrics import runtime_metrics

from .auth import require_admin_auth
from .schemas import ReminderItem, RuntimeControl, ShutdownRequest
from .store import count, fetch_all

_STATUSES = tuple(s.value for s in ReminderStatus)


def create_app(control: RuntimeControl) -> FastAPI:
    app = FastAPI(title="Kairos Admin API", version="1.0.0")

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": db_config.conn is not None,
            "shutdown_requested": control.shutdown_event.is_set(),
            "armed_reminders": control.scheduler.get_status()["armed"] if control.scheduler else None,
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.get("/api/v1/metrics")
    async def get_metrics(request: Request) -> dict[str, Any]:
        await require_admin_auth(request)

        scheduler_status: dict[str, Any] = {"configured": control.scheduler is not None}
        if control.scheduler is not None:
            scheduler_status.update(control.scheduler.get_status())

        ack_status: dict[str, Any] = {"configured": control.ack is not None}
        if control.ack is not None:
            ack_status.update(control.ack.get_status())

        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {
                "db": {"connected": db_config.conn is not None},
                "scheduler": scheduler_status,
                "acknowledgement": ack_status,
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    @app.get("/api/v1/reminders")
    async def get_reminders(
        request: Request,
        status: str | None = None,
        user_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        await require_admin_auth(request)
        limit = max(1, min(limit, 500))
        offset = max(0, offset)

        where_clauses: list[str] = []
        params: list[Any] = []

        if status:
            if status not in _STATUSES:
                raise HTTPException(status_code=400, detail=f"status 只能是 {', '.join(_STATUSES)}")
            where_clauses.append("status = ?")
            params.append(status)
        if user_id is not None:
            where_clauses.append("user_id = ?")
            params.append(user_id)

        where_sql = ""
        if where_clauses:
            where_sql = "WHERE " + " AND ".join(where_clauses)

        total = await count("reminders", where_sql, tuple(params))

        sql = (
            "SELECT reminder_id, user_id, text, deliver_at_utc, status, created_at_utc, sent_at_utc "
            f"FROM reminders {where_sql} ORDER BY deliver_at_utc DESC LIMIT ? OFFSET ?"
        )
        params.extend([limit, offset])
        rows = await fetch_all(sql, tuple(params))

        items = []
        for row in rows:
            item = ReminderItem(**row)
            if control.scheduler is not None:
                item.armed = control.scheduler.is_armed(item.reminder_id)
            items.append(item.model_dump())

        return {
            "items": items,
            "limit": limit,
            "offset": offset,
            "status": status,
            "user_id": user_id,
            "total": total,
        }

    @app.post("/api/v1/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest, request: Request) -> dict[str, Any]:
        auth_info = await require_admin_auth(request)
        logger.warning(f"收到远程关闭请求: by={auth_info['user']}, reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return app
