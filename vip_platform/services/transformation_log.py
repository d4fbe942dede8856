"""
Append-only transformation log for pipeline observability.
Entries are diagnostic only; nothing in the pipeline reads them back.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from vip_platform.core.constants import LOG_ERROR
from vip_platform.db.models import TransformationLog

logger = logging.getLogger(__name__)


async def log_transformation(
    session: AsyncSession,
    type: str,
    message: str,
    duration_ms: Optional[float] = None,
    payload: Optional[Dict[str, Any]] = None,
    error_message: Optional[str] = None,
) -> None:
    """
    Append one log entry and commit it.

    A failure to write the log is reported through the application logger
    and never interrupts the caller.
    """
    entry = TransformationLog(
        type=type,
        message=f"[{type}] {message}",
        payload=payload,
        duration_ms=round(duration_ms, 2) if duration_ms is not None else None,
        resolved=type != LOG_ERROR,
        error_message=error_message,
    )
    try:
        session.add(entry)
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"❌ Failed to write transformation log ({type}: {message}): {e}")


async def get_recent_logs(session: AsyncSession, limit: int = 50) -> List[TransformationLog]:
    result = await session.execute(
        select(TransformationLog)
        .order_by(TransformationLog.created_at.desc(), TransformationLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
