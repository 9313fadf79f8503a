"""Approval history: the append-only audit trail of every expense."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from api.database import utcnow
from api.models.approval_history import ApprovalHistoryEntry
from api.models.enums import HistoryAction

logger = structlog.get_logger()


async def append_history(
    session: AsyncSession,
    expense_id: int,
    action: HistoryAction,
    performed_by: Optional[int],
    comments: Optional[str] = None,
) -> ApprovalHistoryEntry:
    """
    Append one history entry.

    Uses session.flush() so a failed write surfaces to the caller and rolls
    back the surrounding transaction with it. Caller owns the transaction.
    """
    entry = ApprovalHistoryEntry(
        expense_id=expense_id,
        action=HistoryAction(action).value,
        performed_by=performed_by,
        comments=comments,
        created_at=utcnow(),
    )
    session.add(entry)
    await session.flush()

    logger.info(
        "approval_history_appended",
        expense_id=expense_id,
        action=entry.action,
        performed_by=performed_by,
    )
    return entry


async def get_history(
    session: AsyncSession, expense_id: int
) -> list[ApprovalHistoryEntry]:
    """History of one expense, oldest first."""
    result = await session.execute(
        select(ApprovalHistoryEntry)
        .where(ApprovalHistoryEntry.expense_id == expense_id)
        .order_by(ApprovalHistoryEntry.created_at, ApprovalHistoryEntry.id)
    )
    return list(result.scalars().all())
