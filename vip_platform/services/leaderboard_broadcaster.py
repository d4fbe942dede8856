"""Publishes ranked leaderboard updates to WebSocket subscribers."""

import logging
from datetime import datetime

from vip_platform.core.constants import EVENT_LEADERBOARD_UPDATE
from vip_platform.routers.websocket import manager
from vip_platform.schemas.leaderboard import LeaderboardResponse

logger = logging.getLogger(__name__)


async def publish_leaderboard_update(leaderboard: LeaderboardResponse) -> int:
    """Broadcast a LEADERBOARD_UPDATE event. Returns the number of clients reached."""
    if not manager.listener_count:
        return 0

    delivered = await manager.broadcast({
        "type": EVENT_LEADERBOARD_UPDATE,
        "data": leaderboard.model_dump(),
        "timestamp": datetime.utcnow().isoformat(),
    })
    logger.info(f"📡 Broadcast {EVENT_LEADERBOARD_UPDATE} to {delivered} listener(s)")
    return delivered
