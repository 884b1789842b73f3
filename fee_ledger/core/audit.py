from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.models import FeeAuditLog


async def log_fee_audit(
    db: AsyncSession,
    school_code: str,
    reference_table: str,
    reference_id: UUID,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
) -> None:
    """Stage an audit row in the caller's transaction; committed (or rolled back) with it."""
    log = FeeAuditLog(
        school_code=school_code,
        reference_table=reference_table,
        reference_id=reference_id,
        action_type=action_type,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by,
    )
    db.add(log)
