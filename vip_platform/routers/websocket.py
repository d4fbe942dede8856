"""WebSocket feed of ranked leaderboard updates."""

import logging
from typing import Dict, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from vip_platform.core.constants import EVENT_LEADERBOARD_UPDATE
from vip_platform.services.leaderboard_service import leaderboard_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


class LeaderboardConnectionManager:
    """Tracks subscribers of the leaderboard feed."""

    def __init__(self):
        self.subscribers: Set[WebSocket] = set()

    @property
    def listener_count(self) -> int:
        return len(self.subscribers)

    async def subscribe(self, websocket: WebSocket):
        await websocket.accept()
        self.subscribers.add(websocket)
        logger.info(f"Leaderboard subscriber joined ({self.listener_count} listening)")

    def unsubscribe(self, websocket: WebSocket):
        if websocket in self.subscribers:
            self.subscribers.discard(websocket)
            logger.info(f"Leaderboard subscriber left ({self.listener_count} listening)")

    async def broadcast(self, message: Dict) -> int:
        """Send message to every subscriber, dropping the ones that fail. Returns deliveries."""
        delivered = 0
        for websocket in list(self.subscribers):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"⚠️ Dropping leaderboard subscriber after send failure: {e}")
                self.unsubscribe(websocket)
        return delivered


manager = LeaderboardConnectionManager()


@router.websocket("/ws/leaderboard")
async def leaderboard_websocket(websocket: WebSocket):
    """
    Leaderboard feed.

    New clients receive the latest ranked leaderboard (when one exists),
    then a LEADERBOARD_UPDATE event after every successful sync.
    Sending "ping" gets a "pong" back.
    """
    await manager.subscribe(websocket)
    try:
        await websocket.send_json({"type": "connected", "message": "Connected to leaderboard feed"})
        if leaderboard_service.latest is not None:
            await websocket.send_json({
                "type": EVENT_LEADERBOARD_UPDATE,
                "data": leaderboard_service.latest.model_dump(),
            })

        while True:
            if await websocket.receive_text() == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        manager.unsubscribe(websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.unsubscribe(websocket)
