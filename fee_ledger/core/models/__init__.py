from fee_ledger.core.models.academic_year import AcademicYear
from fee_ledger.core.models.class_instance import ClassInstance
from fee_ledger.core.models.student import Student
from fee_ledger.core.models.fee_component_type import FeeComponentType
from fee_ledger.core.models.fee_student_plan import FeeStudentPlan, FeeStudentPlanItem
from fee_ledger.core.models.fee_payment import FeePayment
from fee_ledger.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "AcademicYear",
    "ClassInstance",
    "Student",
    "FeeComponentType",
    "FeeStudentPlan",
    "FeeStudentPlanItem",
    "FeePayment",
    "FeeAuditLog",
]
