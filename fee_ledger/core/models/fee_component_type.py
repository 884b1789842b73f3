"""Fee component type (Tuition, Transport, Exam, Hostel). School-scoped catalog."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, String, Text, UniqueConstraint, Uuid

from fee_ledger.core.enums import FeePeriod
from fee_ledger.db.session import Base


class FeeComponentType(Base):
    """
    School-scoped chargeable category. Editing a component only changes the default for
    future plans; plan items keep their own amount.
    """

    __tablename__ = "fee_component_types"
    __table_args__ = (
        UniqueConstraint("school_code", "code", name="uq_fee_component_type_school_code"),
        CheckConstraint(
            "period IN ('one_time','monthly','term_wise','annual')",
            name="chk_fee_component_type_period",
        ),
        CheckConstraint(
            "default_amount_minor_units IS NULL OR default_amount_minor_units >= 0",
            name="chk_fee_component_type_default_amount",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_code = Column(String(50), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    default_amount_minor_units = Column(BigInteger, nullable=True)
    is_optional = Column(Boolean, nullable=False, default=False)
    is_recurring = Column(Boolean, nullable=False, default=False)
    period = Column(String(20), nullable=False, default=FeePeriod.ONE_TIME.value)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
