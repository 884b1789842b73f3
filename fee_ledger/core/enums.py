from enum import Enum


class FeePeriod(str, Enum):
    ONE_TIME = "one_time"
    MONTHLY = "monthly"
    TERM_WISE = "term_wise"
    ANNUAL = "annual"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"
    CHEQUE = "cheque"
    BANK_TRANSFER = "bank_transfer"


class PlanFilter(str, Enum):
    ALL = "all"
    HAS_PLAN = "has_plan"
    NO_PLAN = "no_plan"


class StudentFeeStatus(str, Enum):
    unpaid = "unpaid"
    partial = "partial"
    paid = "paid"
