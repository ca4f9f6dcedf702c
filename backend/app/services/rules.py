"""Rule evaluation for leave requests.

Everything here is pure: callers load the employee, policy, balance,
holidays and existing requests, and pass "today" in explicitly. Every
rule is evaluated and every violation collected, so an ineligible request
is reported in one pass rather than failing on the first problem.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, assert_never

from app.models.base import ensure_utc
from app.models.enums import LeaveRequestStatus, RuleOperator, ViolationCode
from app.schemas.policy import (
    AdvanceNoticeRule,
    BlackoutPeriod,
    BlackoutPeriodRule,
    CustomRule,
    DepartmentRule,
    EmploymentTypeRule,
    MaxConsecutiveDaysRule,
    MinimumIncrementRule,
    PolicyRules,
    TenureRule,
)
from app.services.calendar import counted_days

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence
    from datetime import date

    from app.models.balance import LeaveBalance
    from app.models.leave_type import LeaveType
    from app.models.policy import LeavePolicy
    from app.models.request import LeaveRequest
    from app.schemas.policy import EligibilityRule, RuleValue, UsageRule
    from app.services.employee import EmployeeInfo

_BLOCKING_STATUSES = frozenset({LeaveRequestStatus.PENDING, LeaveRequestStatus.APPROVED})


@dataclass(frozen=True)
class RequestedRange:
    """The dates (and optional partial-day minutes) an employee is asking for."""

    start_date: date
    end_date: date
    is_partial_day: bool = False
    partial_minutes: int | None = None


@dataclass(frozen=True)
class RuleViolation:
    code: ViolationCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


@dataclass
class EligibilityResult:
    """Verdict for a candidate request. ``eligible`` is False iff there are violations."""

    eligible: bool
    violations: list[RuleViolation]
    requested_minutes: int
    requested_days: float

    @property
    def codes(self) -> set[ViolationCode]:
        return {v.code for v in self.violations}

    def first(self, code: ViolationCode) -> RuleViolation | None:
        return next((v for v in self.violations if v.code == code), None)


@dataclass
class _UsageLimits:
    """Usage limits folded from the leave type and the policy's active usage rules."""

    max_consecutive_days: int | None = None
    advance_notice_days: int = 0
    blackout_periods: list[BlackoutPeriod] = field(default_factory=list)
    increment_minutes: int | None = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_policy_rules(policy: LeavePolicy) -> PolicyRules:
    """Validate a policy's JSON rule columns into tagged rule objects."""
    return PolicyRules.model_validate(
        {
            "eligibility_rules": policy.eligibility_rules or [],
            "usage_rules": policy.usage_rules or [],
            "accrual_rule": policy.accrual_rule,
            "applicable_groups": policy.applicable_groups or [],
        }
    )


def round_half_up(minutes: int, increment: int) -> int:
    """Snap ``minutes`` to the nearest multiple of ``increment``, ties rounding up."""
    return (2 * minutes + increment) // (2 * increment) * increment


def check_eligibility(
    employee: EmployeeInfo,
    policy: LeavePolicy | None,
    requested_range: RequestedRange,
    *,
    leave_type: LeaveType,
    balance: LeaveBalance | None,
    existing_requests: Sequence[LeaveRequest] = (),
    pending_minutes: int = 0,
    today: date,
    holidays: Collection[date] = (),
) -> EligibilityResult:
    """Evaluate a candidate leave request against every applicable rule.

    Never raises for ineligibility; the result carries every violation.

    Steps:
    1. Leave type and policy window / group applicability.
    2. Eligibility predicates (tenure, employment type, department, custom).
    3. Requested minutes from the calendar, snapped to the minimum increment.
    4. Usage limits (consecutive days, notice, blackouts, partial days).
    5. Balance sufficiency for accrual-based leave types, net of the
       ``pending_minutes`` already reserved by other PENDING requests.
    6. Overlap with the employee's pending or approved requests.
    """
    violations: list[RuleViolation] = []

    # 1. Leave type, policy window, group applicability.
    if not leave_type.is_active:
        violations.append(
            RuleViolation(ViolationCode.LEAVE_TYPE_INACTIVE, f"Leave type {leave_type.code} is not active")
        )

    rules = parse_policy_rules(policy) if policy is not None else PolicyRules()
    violations.extend(_policy_window_violations(policy, requested_range))

    if rules.applicable_groups and not any(employee.in_group(g) for g in rules.applicable_groups):
        violations.append(
            RuleViolation(
                ViolationCode.GROUP_NOT_APPLICABLE,
                "Policy does not apply to the employee's department, employment type or job title",
                {"applicable_groups": rules.applicable_groups},
            )
        )

    # 2. Eligibility predicates.
    for rule in rules.eligibility_rules:
        violation = _check_eligibility_rule(rule, employee, today)
        if violation is not None:
            violations.append(violation)

    # 3. Requested minutes.
    limits = _fold_usage_limits(leave_type, rules.usage_rules)
    days = counted_days(
        requested_range.start_date,
        requested_range.end_date,
        holidays,
        exclude_non_working=leave_type.excludes_non_working_days,
    )
    requested_minutes, minute_violations = _requested_minutes(
        requested_range, days, employee.workday_minutes, limits.increment_minutes
    )
    violations.extend(minute_violations)

    # 4. Usage limits.
    if requested_range.is_partial_day and not leave_type.allows_partial_days:
        violations.append(
            RuleViolation(
                ViolationCode.PARTIAL_DAY_NOT_ALLOWED,
                f"Leave type {leave_type.code} does not allow partial days",
            )
        )
    violations.extend(_usage_violations(limits, requested_range, len(days), today))

    # 5. Balance sufficiency.
    if leave_type.accrual_based:
        current = balance.current_minutes if balance is not None else 0
        available = max(0, current - pending_minutes)
        if requested_minutes > available:
            shortfall = requested_minutes - available
            violations.append(
                RuleViolation(
                    ViolationCode.INSUFFICIENT_BALANCE,
                    f"Requested {requested_minutes} minutes but only {available} are available",
                    {
                        "available_minutes": available,
                        "current_minutes": current,
                        "pending_minutes": pending_minutes,
                        "requested_minutes": requested_minutes,
                        "shortfall_minutes": shortfall,
                        "shortfall_days": round(shortfall / employee.workday_minutes, 2),
                    },
                )
            )

    # 6. Conflicts.
    conflict = find_conflict(requested_range, existing_requests)
    if conflict is not None:
        violations.append(
            RuleViolation(
                ViolationCode.CONFLICT,
                f"Overlaps leave request {conflict.id} ({conflict.start_date} to {conflict.end_date})",
                {"conflicting_request_id": str(conflict.id), "conflicting_status": conflict.status},
            )
        )

    return EligibilityResult(
        eligible=not violations,
        violations=violations,
        requested_minutes=requested_minutes,
        requested_days=round(requested_minutes / employee.workday_minutes, 2),
    )


def find_conflict(
    requested_range: RequestedRange,
    existing_requests: Sequence[LeaveRequest],
    *,
    exclude_id: Any = None,
) -> LeaveRequest | None:
    """Return the earliest-submitted pending/approved request overlapping the range."""
    overlapping = [
        r
        for r in existing_requests
        if r.id != exclude_id
        and r.status in _BLOCKING_STATUSES
        and r.start_date <= requested_range.end_date
        and requested_range.start_date <= r.end_date
    ]
    if not overlapping:
        return None
    return min(overlapping, key=lambda r: ensure_utc(r.submitted_at))


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _policy_window_violations(policy: LeavePolicy | None, requested_range: RequestedRange) -> list[RuleViolation]:
    if policy is None:
        return [RuleViolation(ViolationCode.POLICY_NOT_EFFECTIVE, "No active policy covers this leave type")]
    if not policy.is_active:
        return [RuleViolation(ViolationCode.POLICY_NOT_EFFECTIVE, f"Policy {policy.name} is not active")]
    ends_after = policy.effective_to is not None and requested_range.end_date > policy.effective_to
    if requested_range.start_date < policy.effective_from or ends_after:
        return [
            RuleViolation(
                ViolationCode.POLICY_NOT_EFFECTIVE,
                f"Policy {policy.name} is not effective for the requested dates",
                {
                    "effective_from": policy.effective_from.isoformat(),
                    "effective_to": policy.effective_to.isoformat() if policy.effective_to else None,
                },
            )
        ]
    return []


def _split_values(expected: RuleValue) -> list[str]:
    if isinstance(expected, list):
        return [str(v).strip() for v in expected]
    return [part.strip() for part in str(expected).split(",")]


def compare(actual: Any, operator: RuleOperator, expected: RuleValue) -> bool:
    """Apply an eligibility operator to an employee value."""
    match operator:
        case RuleOperator.EQUALS:
            if isinstance(actual, int | float) and isinstance(expected, int | float):
                return actual == expected
            return actual is not None and str(actual) == str(expected)
        case RuleOperator.GREATER_THAN:
            return isinstance(actual, int | float) and actual > expected  # type: ignore[operator]
        case RuleOperator.LESS_THAN:
            return isinstance(actual, int | float) and actual < expected  # type: ignore[operator]
        case RuleOperator.IN:
            return actual is not None and str(actual) in _split_values(expected)
        case RuleOperator.NOT_IN:
            return actual is None or str(actual) not in _split_values(expected)
        case _:
            assert_never(operator)


def _check_eligibility_rule(rule: EligibilityRule, employee: EmployeeInfo, today: date) -> RuleViolation | None:
    match rule:
        case TenureRule():
            actual: Any = employee.tenure_days(today)
            code, subject = ViolationCode.TENURE, "Tenure in days"
        case EmploymentTypeRule():
            actual = employee.employment_type
            code, subject = ViolationCode.EMPLOYMENT_TYPE, "Employment type"
        case DepartmentRule():
            actual = employee.department_id
            code, subject = ViolationCode.DEPARTMENT, "Department"
        case CustomRule():
            actual = employee.attributes.get(rule.attribute, getattr(employee, rule.attribute, None))
            code, subject = ViolationCode.CUSTOM, f"Attribute {rule.attribute}"
        case _:
            assert_never(rule)

    if compare(actual, rule.operator, rule.value):
        return None
    return RuleViolation(
        code,
        rule.description or f"{subject} {actual!r} does not satisfy {rule.operator} {rule.value!r}",
        {"actual": actual, "operator": rule.operator.value, "expected": rule.value},
    )


def _fold_usage_limits(leave_type: LeaveType, usage_rules: Sequence[UsageRule]) -> _UsageLimits:
    """Combine leave-type limits with policy usage rules; the strictest wins."""
    limits = _UsageLimits(
        max_consecutive_days=leave_type.max_consecutive_days,
        advance_notice_days=leave_type.advance_notice_days,
    )
    for rule in usage_rules:
        if not rule.is_active:
            continue
        match rule:
            case MaxConsecutiveDaysRule():
                current = limits.max_consecutive_days
                limits.max_consecutive_days = rule.max_days if current is None else min(current, rule.max_days)
            case AdvanceNoticeRule():
                limits.advance_notice_days = max(limits.advance_notice_days, rule.days)
            case BlackoutPeriodRule():
                limits.blackout_periods.extend(rule.periods)
            case MinimumIncrementRule():
                current = limits.increment_minutes
                limits.increment_minutes = (
                    rule.increment_minutes if current is None else max(current, rule.increment_minutes)
                )
            case _:
                assert_never(rule)
    return limits


def _requested_minutes(
    requested_range: RequestedRange,
    days: list[date],
    workday_minutes: int,
    increment: int | None,
) -> tuple[int, list[RuleViolation]]:
    violations: list[RuleViolation] = []

    if not days:
        violations.append(
            RuleViolation(
                ViolationCode.NO_WORKING_TIME,
                "Request covers no working days after excluding weekends and holidays",
            )
        )
        return 0, violations

    if not requested_range.is_partial_day:
        minutes = len(days) * workday_minutes
        if increment is not None and minutes % increment:
            violations.append(
                RuleViolation(
                    ViolationCode.MINIMUM_INCREMENT,
                    f"Leave must be taken in increments of {increment} minutes",
                    {"increment_minutes": increment, "requested_minutes": minutes},
                )
            )
        return minutes, violations

    minutes = requested_range.partial_minutes or 0
    if minutes > workday_minutes:
        violations.append(
            RuleViolation(
                ViolationCode.PARTIAL_DAY_NOT_ALLOWED,
                f"Partial-day request of {minutes} minutes exceeds the {workday_minutes}-minute workday",
                {"partial_minutes": minutes, "workday_minutes": workday_minutes},
            )
        )
        minutes = workday_minutes
    if increment is not None:
        snapped = round_half_up(minutes, increment)
        if snapped == 0:
            violations.append(
                RuleViolation(
                    ViolationCode.MINIMUM_INCREMENT,
                    f"Request is below the minimum increment of {increment} minutes",
                    {"increment_minutes": increment, "requested_minutes": minutes},
                )
            )
        minutes = min(snapped, workday_minutes)
    return minutes, violations


def _usage_violations(
    limits: _UsageLimits,
    requested_range: RequestedRange,
    day_count: int,
    today: date,
) -> list[RuleViolation]:
    violations: list[RuleViolation] = []

    if limits.max_consecutive_days is not None and day_count > limits.max_consecutive_days:
        violations.append(
            RuleViolation(
                ViolationCode.MAX_CONSECUTIVE_DAYS,
                f"Request spans {day_count} days, exceeding the limit of {limits.max_consecutive_days}",
                {"requested_days": day_count, "max_consecutive_days": limits.max_consecutive_days},
            )
        )

    notice_days = (requested_range.start_date - today).days
    if notice_days < limits.advance_notice_days:
        shortfall = limits.advance_notice_days - notice_days
        violations.append(
            RuleViolation(
                ViolationCode.ADVANCE_NOTICE,
                f"Requires {limits.advance_notice_days} days' notice; given {notice_days} ({shortfall} short)",
                {
                    "required_days": limits.advance_notice_days,
                    "notice_days": notice_days,
                    "shortfall_days": shortfall,
                },
            )
        )

    for period in limits.blackout_periods:
        if period.overlaps(requested_range.start_date, requested_range.end_date):
            label = period.name or "blackout period"
            violations.append(
                RuleViolation(
                    ViolationCode.BLACKOUT_PERIOD,
                    f"Request overlaps {label} ({period.start_date} to {period.end_date})",
                    {"start_date": period.start_date.isoformat(), "end_date": period.end_date.isoformat()},
                )
            )

    return violations
