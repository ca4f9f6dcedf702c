from sqlmodel import SQLModel

from app.models.audit import AuditLog
from app.models.balance import LeaveBalance
from app.models.base import TimestampMixin, UUIDBase
from app.models.enums import (
    AccrualPeriod,
    AuditAction,
    AuditEntityType,
    BreakType,
    LeaveAction,
    LeaveRequestStatus,
    RuleOperator,
    TimeEntryAction,
    TimeEntryStatus,
    TransactionType,
    ViolationCode,
)
from app.models.holiday import CompanyHoliday
from app.models.leave_type import LeaveType
from app.models.ledger import AccrualTransaction
from app.models.policy import LeavePolicy, OvertimePolicy
from app.models.request import LeaveRequest
from app.models.status_history import StatusHistory
from app.models.time_entry import BreakEntry, TimeEntry

__all__ = [
    "AccrualPeriod",
    "AccrualTransaction",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "BreakEntry",
    "BreakType",
    "CompanyHoliday",
    "LeaveAction",
    "LeaveBalance",
    "LeavePolicy",
    "LeaveRequest",
    "LeaveRequestStatus",
    "LeaveType",
    "OvertimePolicy",
    "RuleOperator",
    "SQLModel",
    "StatusHistory",
    "TimeEntry",
    "TimeEntryAction",
    "TimeEntryStatus",
    "TimestampMixin",
    "TransactionType",
    "UUIDBase",
    "ViolationCode",
]
