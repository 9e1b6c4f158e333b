"""Messaging API routes."""

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from ...app import Application
from ...logging_config import get_logger
from ...transport import LoopbackTransport

logger = get_logger(__name__)


class MessageRequest(BaseModel):
    """Inbound customer message."""

    conversation_id: str = Field(min_length=1)
    text: str


class MessageResponse(BaseModel):
    """Replies the bot sent to the conversation while handling the message."""

    conversation_id: str
    replies: list[str]


def create_messaging_router(app: Application) -> APIRouter:
    """Create messaging router."""
    router = APIRouter(prefix="/api", tags=["messaging"])

    @router.post("/messages", response_model=MessageResponse)
    async def send_message(request: MessageRequest) -> dict:
        """Deliver a message through the loopback session, as if a customer sent it."""
        session = app.connection.session
        if session is None:
            raise HTTPException(status_code=503, detail="Session not ready")
        if not isinstance(session, LoopbackTransport):
            raise HTTPException(
                status_code=409, detail="Messages can only be injected into a loopback session"
            )

        already_sent = len(session.sent_texts(request.conversation_id))
        try:
            await session.receive(request.conversation_id, request.text)
        except Exception as e:
            logger.error("Failed to inject message: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "conversation_id": request.conversation_id,
            "replies": session.sent_texts(request.conversation_id)[already_sent:],
        }

    return router
