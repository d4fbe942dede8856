"""
CLI entry point for the VIP Wager Rewards Platform.

    python main.py --server         run the API server
    python main.py --sync           run one leaderboard sync cycle
    python main.py --complete-race  run the month-end race transition
"""

import sys
import json
import asyncio
import logging
from vip_platform.core.config import settings


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


async def run_once(action: str) -> dict:
    from vip_platform.db.session import init_db
    from vip_platform.services.leaderboard_sync_service import sync_service

    await init_db()
    if action == "--complete-race":
        return await sync_service.run_race_transition()
    return await sync_service.run_sync(force_fresh=True)


def cli_mode(action: str):
    print("=" * 60)
    print(f"VIP Wager Rewards Platform - {action.lstrip('-')}")
    print("=" * 60)

    try:
        result = asyncio.run(run_once(action))
        print(json.dumps(result, indent=2, default=str))
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    configure_logging()
    action = sys.argv[1] if len(sys.argv) > 1 else "--sync"
    if action == "--server":
        import uvicorn
        uvicorn.run("vip_platform.main:app", host=settings.HOST, port=settings.PORT, reload=settings.RELOAD)
    elif action in ("--sync", "--complete-race"):
        cli_mode(action)
    else:
        print(__doc__)
        sys.exit(2)
