"""Observability API routes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import Application
from ...models import Topic


class BusMessageResponse(BaseModel):
    """Response model for a persisted bus message."""

    id: str
    topic: str
    source: str
    payload: dict[str, Any]
    timestamp: datetime


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


def create_observability_router(app: Application) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: str | None = Query(None, description="ISO timestamp filter"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: list[str] | None = Query(None, description="Filter by event type"),
        actor: str | None = Query(None, description="Filter by actor"),
    ) -> list[dict]:
        """Trace events, newest first."""
        after_dt = None
        if after:
            try:
                after_dt = datetime.fromisoformat(after)
            except ValueError:
                raise HTTPException(status_code=400, detail="Invalid after timestamp format")

        try:
            events = await app.storage.get_trace_events(
                after=after_dt,
                event_types=event_type or None,
                actor=actor,
                limit=limit,
            )
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return [
            {
                "id": e.id,
                "event_type": e.event_type,
                "actor": e.actor,
                "data": e.data,
                "timestamp": e.timestamp,
            }
            for e in events
        ]

    @router.get("/bus-messages", response_model=list[BusMessageResponse])
    async def get_bus_messages(
        limit: int = Query(100, ge=1, le=1000),
        topic: Topic | None = Query(None, description="Filter by topic"),
    ) -> list[dict]:
        """Recent bus messages, newest first."""
        try:
            messages = await app.storage.get_bus_messages(limit=limit, topic=topic)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return [
            {
                "id": m.id,
                "topic": m.topic.value,
                "source": m.source,
                "payload": m.payload,
                "timestamp": m.timestamp,
            }
            for m in messages
        ]

    return router
