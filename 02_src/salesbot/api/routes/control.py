"""Control API routes."""

from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException

from ...app import Application


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class SessionResponse(BaseModel):
    """Connection state as seen by the ConnectionManager."""

    state: str
    ready: bool
    identity: str | None
    reconnect_attempts: int
    max_reconnect_attempts: int
    pairing_code: str | None


# Global SIM instance (will be set by main app)
_sim_instance: Any = None


def set_sim_instance(sim: Any) -> None:
    """Set the global SIM instance."""
    global _sim_instance
    _sim_instance = sim


def get_sim_instance() -> Any:
    """Get the global SIM instance."""
    return _sim_instance


def create_control_router(app: Application) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.get("/session", response_model=SessionResponse)
    async def get_session() -> dict:
        connection = app.connection
        session = connection.session
        user = session.user if session is not None else None
        return {
            "state": connection.state.value,
            "ready": connection.is_ready,
            "identity": user.id if user is not None else None,
            "reconnect_attempts": connection.reconnect_attempts,
            "max_reconnect_attempts": connection.max_reconnect_attempts,
            "pairing_code": connection.pairing_code,
        }

    @router.post("/logout", response_model=StatusResponse)
    async def logout() -> dict:
        """Log the session out and erase its stored credentials."""
        try:
            await app.connection.logout()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/reset", response_model=StatusResponse)
    async def reset_system() -> dict:
        """Reset system data between test runs."""
        try:
            await app.reset()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/sim/start", response_model=StatusResponse)
    async def start_sim() -> dict:
        """Start SIM simulation."""
        if not _sim_instance:
            raise HTTPException(status_code=404, detail="SIM not configured")
        try:
            await _sim_instance.start()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/sim/stop", response_model=StatusResponse)
    async def stop_sim() -> dict:
        """Stop SIM simulation."""
        if not _sim_instance:
            raise HTTPException(status_code=404, detail="SIM not configured")
        try:
            await _sim_instance.stop()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
