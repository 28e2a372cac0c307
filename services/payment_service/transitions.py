"""
Status rules shared by everything that is paid for through the gateway.

Orders and therapy sessions carry the same ``status`` / ``payment_status``
pair. Both gateway outcomes and operator edits are written with a single
conditional UPDATE whose WHERE clause restates the rules, so a decision made
on a stale read can never land.
"""
from typing import Any, Mapping, Optional

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import utcnow
from shared.errors import ValidationError

PENDING = "pending"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
COMPLETED = "completed"
FAILED = "failed"


async def apply_payment_outcome(
    db: AsyncSession,
    model,
    record_id: str,
    successful: bool,
    payment_id: Optional[str] = None,
) -> bool:
    """
    Apply a gateway outcome to one row of ``model``.

    Success moves the row to confirmed/completed from a pending or failed
    payment. Failure moves it to cancelled/failed only while the payment is
    still pending, so a completed payment is never regressed. Status is only
    rewritten while it is still pending (or cancelled, on success): states
    set later by an operator are left alone.

    Returns True when this call changed the row; False means another
    delivery already applied it (or the row is in a terminal state).
    """
    if successful:
        allowed_from = [PENDING, FAILED]
        new_payment_status = COMPLETED
        new_status = case(
            (model.status.in_([PENDING, CANCELLED]), CONFIRMED),
            else_=model.status,
        )
    else:
        allowed_from = [PENDING]
        new_payment_status = FAILED
        new_status = case((model.status == PENDING, CANCELLED), else_=model.status)

    values = {
        "status": new_status,
        "payment_status": new_payment_status,
        "updated_at": utcnow(),
    }
    if payment_id:
        values["instamojo_payment_id"] = payment_id

    result = await db.execute(
        update(model)
        .where(model.id == record_id, model.payment_status.in_(allowed_from))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


def check_operator_changes(record, changes: Mapping[str, Any]) -> None:
    """Reject operator edits that break the payment rules for ``record`` as read."""
    new_status = changes.get("status", record.status)
    new_payment_status = changes.get("payment_status", record.payment_status)

    if record.payment_status == COMPLETED and new_payment_status != COMPLETED:
        raise ValidationError("Payment status of a completed payment cannot be changed")
    if new_payment_status == COMPLETED and new_status == PENDING:
        raise ValidationError("A record with a completed payment cannot be pending")


async def apply_operator_changes(db: AsyncSession, model, record_id: str, changes: Mapping[str, Any]) -> bool:
    """
    Write operator edits with one conditional UPDATE.

    The WHERE clause re-checks the payment rules against the row as it is at
    write time, which closes the gap between ``check_operator_changes`` and
    the write: a webhook that completes the payment in between makes this
    return False instead of being overwritten.
    """
    stmt = update(model).where(model.id == record_id)

    new_payment_status = changes.get("payment_status")
    if (new_payment_status is not None and new_payment_status != COMPLETED) or changes.get("status") == PENDING:
        stmt = stmt.where(model.payment_status != COMPLETED)
    if new_payment_status == COMPLETED and "status" not in changes:
        stmt = stmt.where(model.status != PENDING)

    result = await db.execute(
        stmt.values(**changes, updated_at=utcnow()).execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1
