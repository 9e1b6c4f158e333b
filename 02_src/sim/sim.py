"""SIM implementation - scripted shoppers for manual testing."""

import asyncio
import random
from typing import Protocol

import httpx

from salesbot.logging_config import get_logger
from salesbot.tracker import ITracker

logger = get_logger(__name__)

# Each shopper walks the menu, places an order, asks about it and closes it.
DEFAULT_SCRIPTS: dict[str, list[str]] = {
    "233200000001@s.whatsapp.net": ["hi", "1", "1", "order", "Is delivery free?", "close"],
    "233200000002@s.whatsapp.net": ["menu", "2", "9", "1", "order", "done"],
    "233200000003@s.whatsapp.net": ["hello", "1", "2", "menu", "1", "1", "order", "thanks"],
}


class ISim(Protocol):
    """Generate customer traffic against the HTTP inlet."""

    async def start(self) -> None:
        """Start the scripted shoppers."""
        ...

    async def stop(self) -> None:
        """Stop the shoppers."""
        ...


class Sim:
    """Replays customer scripts through POST /api/messages."""

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        tracker: ITracker | None = None,
        scripts: dict[str, list[str]] | None = None,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
    ):
        self._api_url = api_url
        self._tracker = tracker
        self._scripts = scripts or DEFAULT_SCRIPTS
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._running = False
        self._task: asyncio.Task | None = None
        self._client: httpx.AsyncClient | None = None

    def set_tracker(self, tracker: ITracker) -> None:
        """Inject tracker for SIM trace events."""
        self._tracker = tracker

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._client = httpx.AsyncClient(base_url=self._api_url)
        self._task = asyncio.create_task(self._run_scenario())

    async def stop(self) -> None:
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client:
            await self._client.aclose()
            self._client = None

    async def _run_scenario(self) -> None:
        summary = {
            "shopper_count": len(self._scripts),
            "message_count": sum(len(s) for s in self._scripts.values()),
        }
        try:
            if self._tracker:
                await self._tracker.track("sim_started", "sim", summary)

            # Interleave shoppers: one message from each per round
            rounds = max(len(s) for s in self._scripts.values())
            for i in range(rounds):
                for conversation_id, script in self._scripts.items():
                    if not self._running:
                        return
                    if i < len(script):
                        await self._send_message(conversation_id, script[i])
                        await asyncio.sleep(random.uniform(self._min_delay, self._max_delay))

        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            self._running = False
            if self._tracker:
                await self._tracker.track("sim_completed", "sim", summary)

    async def _send_message(self, conversation_id: str, text: str) -> list[str]:
        """Send one customer message and return the bot's replies."""
        if not self._client:
            return []

        try:
            response = await self._client.post(
                "/api/messages",
                json={"conversation_id": conversation_id, "text": text},
                timeout=10.0,
            )
        except httpx.HTTPError as e:
            logger.error("SIM: Failed to send message: %s", e)
            return []

        if response.status_code != 200:
            logger.error("SIM: Error sending message: %s", response.status_code)
            return []

        replies = response.json().get("replies", [])
        logger.info("SIM: %s -> %s", conversation_id, text)
        for reply in replies:
            logger.info("SIM: Reply: %s", reply.splitlines()[0] if reply else "")
        return replies
