from __future__ import annotations

import enum


class AccrualPeriod(enum.StrEnum):
    """Cadence at which an accrual rule credits a balance."""

    MONTHLY = "MONTHLY"
    BIWEEKLY = "BIWEEKLY"
    ANNUAL = "ANNUAL"
    PER_PAY_PERIOD = "PER_PAY_PERIOD"


class TransactionType(enum.StrEnum):
    """Type of ledger transaction affecting a leave balance."""

    ACCRUAL = "ACCRUAL"
    USAGE = "USAGE"
    ADJUSTMENT = "ADJUSTMENT"
    CARRYOVER = "CARRYOVER"


class LeaveRequestStatus(enum.StrEnum):
    """State machine for leave requests."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    CANCELLED = "CANCELLED"


class LeaveAction(enum.StrEnum):
    APPROVE = "APPROVE"
    DENY = "DENY"
    CANCEL = "CANCEL"


class TimeEntryStatus(enum.StrEnum):
    """State machine for time entries.

    Clock-based entries run ACTIVE -> COMPLETED; manual entries and
    corrections run DRAFT -> SUBMITTED -> APPROVED / REJECTED.
    """

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TimeEntryAction(enum.StrEnum):
    CLOCK_OUT = "CLOCK_OUT"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REOPEN = "REOPEN"


class BreakType(enum.StrEnum):
    LUNCH = "LUNCH"
    SHORT_BREAK = "SHORT_BREAK"
    PERSONAL = "PERSONAL"


class RuleOperator(enum.StrEnum):
    """Comparison operator for eligibility predicates."""

    EQUALS = "EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    IN = "IN"
    NOT_IN = "NOT_IN"


class ViolationCode(enum.StrEnum):
    """Machine-readable reason attached to every rule violation."""

    TENURE = "TENURE"
    EMPLOYMENT_TYPE = "EMPLOYMENT_TYPE"
    DEPARTMENT = "DEPARTMENT"
    CUSTOM = "CUSTOM"
    MAX_CONSECUTIVE_DAYS = "MAX_CONSECUTIVE_DAYS"
    ADVANCE_NOTICE = "ADVANCE_NOTICE"
    BLACKOUT_PERIOD = "BLACKOUT_PERIOD"
    MINIMUM_INCREMENT = "MINIMUM_INCREMENT"
    PARTIAL_DAY_NOT_ALLOWED = "PARTIAL_DAY_NOT_ALLOWED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    CONFLICT = "CONFLICT"
    POLICY_NOT_EFFECTIVE = "POLICY_NOT_EFFECTIVE"
    GROUP_NOT_APPLICABLE = "GROUP_NOT_APPLICABLE"
    LEAVE_TYPE_INACTIVE = "LEAVE_TYPE_INACTIVE"
    NO_WORKING_TIME = "NO_WORKING_TIME"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    LEAVE_TYPE = "LEAVE_TYPE"
    LEAVE_POLICY = "LEAVE_POLICY"
    OVERTIME_POLICY = "OVERTIME_POLICY"
    LEAVE_BALANCE = "LEAVE_BALANCE"
    TRANSACTION = "TRANSACTION"
    LEAVE_REQUEST = "LEAVE_REQUEST"
    TIME_ENTRY = "TIME_ENTRY"
    HOLIDAY = "HOLIDAY"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    DENY = "DENY"
    CANCEL = "CANCEL"
    REJECT = "REJECT"
    REOPEN = "REOPEN"
    CLOCK_IN = "CLOCK_IN"
    CLOCK_OUT = "CLOCK_OUT"
    CORRECT = "CORRECT"
    REVERSE = "REVERSE"
