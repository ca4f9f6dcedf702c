"""Tests for the pure rule evaluator: eligibility predicates, usage limits,
requested-minute computation, balance sufficiency and conflict detection.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime, timedelta
from typing import Any

import pytest

from app.models.balance import LeaveBalance
from app.models.enums import LeaveRequestStatus, RuleOperator, ViolationCode
from app.models.leave_type import LeaveType
from app.models.policy import LeavePolicy
from app.models.request import LeaveRequest
from app.services.employee import EmployeeInfo
from app.services.rules import (
    EligibilityResult,
    RequestedRange,
    check_eligibility,
    compare,
    find_conflict,
    round_half_up,
)

TODAY = date(2026, 3, 2)  # Monday

EMPLOYEE = EmployeeInfo(
    id=uuid.uuid4(),
    first_name="Ada",
    last_name="Lovelace",
    email="ada@example.com",
    start_date=date(2024, 1, 15),
    employment_type="FULL_TIME",
    department_id="ENG",
    job_title="Senior Software Engineer",
    attributes={"location": "Berlin"},
)


def _leave_type(**overrides: Any) -> LeaveType:
    values: dict[str, Any] = {"code": "VAC", "name": "Vacation", "allows_partial_days": True}
    values.update(overrides)
    return LeaveType(**values)


def _policy(leave_type: LeaveType, **overrides: Any) -> LeavePolicy:
    values: dict[str, Any] = {
        "name": "Standard",
        "leave_type_id": leave_type.id,
        "effective_from": date(2026, 1, 1),
    }
    values.update(overrides)
    return LeavePolicy(**values)


def _balance(leave_type: LeaveType, minutes: int) -> LeaveBalance:
    return LeaveBalance(
        employee_id=EMPLOYEE.id,
        leave_type_id=leave_type.id,
        current_minutes=minutes,
        effective_date=date(2026, 1, 1),
    )


def _evaluate(
    requested: RequestedRange,
    *,
    leave_type: LeaveType | None = None,
    policy_overrides: dict[str, Any] | None = None,
    balance_minutes: int = 4800,
    employee: EmployeeInfo = EMPLOYEE,
    existing: list[LeaveRequest] | None = None,
    holidays: set[date] | None = None,
    pending_minutes: int = 0,
) -> EligibilityResult:
    lt = leave_type or _leave_type()
    return check_eligibility(
        employee,
        _policy(lt, **(policy_overrides or {})),
        requested,
        leave_type=lt,
        balance=_balance(lt, balance_minutes),
        existing_requests=existing or [],
        pending_minutes=pending_minutes,
        today=TODAY,
        holidays=holidays or set(),
    )


def _existing(start: date, end: date, *, status: LeaveRequestStatus, submitted_minutes_ago: int) -> LeaveRequest:
    return LeaveRequest(
        employee_id=EMPLOYEE.id,
        leave_type_id=uuid.uuid4(),
        start_date=start,
        end_date=end,
        requested_minutes=480,
        requested_days=1,
        status=status.value,
        submitted_at=datetime(2026, 3, 2, 9, tzinfo=UTC) - timedelta(minutes=submitted_minutes_ago),
    )


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


def test_eligible_request_counts_working_days() -> None:
    # Mon 16 Mar .. Fri 20 Mar
    result = _evaluate(RequestedRange(date(2026, 3, 16), date(2026, 3, 20)))
    assert result.eligible
    assert result.violations == []
    assert result.requested_minutes == 5 * 480
    assert result.requested_days == 5


def test_weekends_and_holidays_are_not_counted() -> None:
    # Fri 13 .. Tue 17 Mar, with Mon 16 a holiday -> Fri + Tue
    result = _evaluate(RequestedRange(date(2026, 3, 13), date(2026, 3, 17)), holidays={date(2026, 3, 16)})
    assert result.requested_minutes == 2 * 480


def test_calendar_day_leave_counts_weekends() -> None:
    lt = _leave_type(excludes_non_working_days=False)
    result = _evaluate(RequestedRange(date(2026, 3, 13), date(2026, 3, 16)), leave_type=lt)
    assert result.requested_minutes == 4 * 480


def test_weekend_only_request_has_no_working_time() -> None:
    result = _evaluate(RequestedRange(date(2026, 3, 14), date(2026, 3, 15)))
    assert not result.eligible
    assert ViolationCode.NO_WORKING_TIME in result.codes
    assert result.requested_minutes == 0


# ---------------------------------------------------------------------------
# Eligibility predicates
# ---------------------------------------------------------------------------


def test_tenure_rule_blocks_new_hire() -> None:
    new_hire = EMPLOYEE.model_copy(update={"start_date": date(2026, 2, 16)})
    result = _evaluate(
        RequestedRange(date(2026, 3, 16), date(2026, 3, 16)),
        employee=new_hire,
        policy_overrides={"eligibility_rules": [{"kind": "TENURE", "operator": "GREATER_THAN", "value": 90}]},
    )
    violation = result.first(ViolationCode.TENURE)
    assert violation is not None
    assert violation.details["actual"] == 14


def test_employment_type_rule_with_comma_separated_values() -> None:
    result = _evaluate(
        RequestedRange(date(2026, 3, 16), date(2026, 3, 16)),
        policy_overrides={
            "eligibility_rules": [{"kind": "EMPLOYMENT_TYPE", "operator": "IN", "value": "PART_TIME, CONTRACT"}]
        },
    )
    assert result.codes == {ViolationCode.EMPLOYMENT_TYPE}


def test_custom_rule_reads_employee_attributes() -> None:
    rules = [{"kind": "CUSTOM", "attribute": "location", "operator": "EQUALS", "value": "Berlin"}]
    result = _evaluate(
        RequestedRange(date(2026, 3, 16), date(2026, 3, 16)), policy_overrides={"eligibility_rules": rules}
    )
    assert result.eligible


def test_group_applicability_matches_job_title_substring() -> None:
    requested = RequestedRange(date(2026, 3, 16), date(2026, 3, 16))
    assert _evaluate(requested, policy_overrides={"applicable_groups": ["engineer"]}).eligible
    result = _evaluate(requested, policy_overrides={"applicable_groups": ["SALES"]})
    assert ViolationCode.GROUP_NOT_APPLICABLE in result.codes


def test_policy_must_cover_the_whole_range() -> None:
    result = _evaluate(
        RequestedRange(date(2026, 3, 30), date(2026, 4, 2)),
        policy_overrides={"effective_to": date(2026, 3, 31)},
    )
    assert ViolationCode.POLICY_NOT_EFFECTIVE in result.codes


def test_missing_policy_is_reported() -> None:
    lt = _leave_type()
    result = check_eligibility(
        EMPLOYEE,
        None,
        RequestedRange(date(2026, 3, 16), date(2026, 3, 16)),
        leave_type=lt,
        balance=_balance(lt, 4800),
        today=TODAY,
    )
    assert ViolationCode.POLICY_NOT_EFFECTIVE in result.codes


# ---------------------------------------------------------------------------
# Usage limits
# ---------------------------------------------------------------------------


def test_advance_notice_reports_shortfall() -> None:
    # Three days' notice against a seven-day requirement.
    result = _evaluate(
        RequestedRange(date(2026, 3, 5), date(2026, 3, 5)),
        policy_overrides={"usage_rules": [{"kind": "ADVANCE_NOTICE", "days": 7}]},
    )
    violation = result.first(ViolationCode.ADVANCE_NOTICE)
    assert violation is not None
    assert violation.details == {"required_days": 7, "notice_days": 3, "shortfall_days": 4}


def test_strictest_notice_wins_between_leave_type_and_policy() -> None:
    lt = _leave_type(advance_notice_days=14)
    result = _evaluate(
        RequestedRange(date(2026, 3, 12), date(2026, 3, 12)),
        leave_type=lt,
        policy_overrides={"usage_rules": [{"kind": "ADVANCE_NOTICE", "days": 7}]},
    )
    violation = result.first(ViolationCode.ADVANCE_NOTICE)
    assert violation is not None
    assert violation.details["required_days"] == 14


def test_max_consecutive_days() -> None:
    result = _evaluate(
        RequestedRange(date(2026, 3, 16), date(2026, 3, 20)),
        policy_overrides={"usage_rules": [{"kind": "MAX_CONSECUTIVE_DAYS", "max_days": 3}]},
    )
    violation = result.first(ViolationCode.MAX_CONSECUTIVE_DAYS)
    assert violation is not None
    assert violation.details == {"requested_days": 5, "max_consecutive_days": 3}


def test_inactive_usage_rules_are_ignored() -> None:
    result = _evaluate(
        RequestedRange(date(2026, 3, 16), date(2026, 3, 20)),
        policy_overrides={"usage_rules": [{"kind": "MAX_CONSECUTIVE_DAYS", "max_days": 3, "is_active": False}]},
    )
    assert result.eligible


def test_blackout_period_overlap() -> None:
    rules = [
        {
            "kind": "BLACKOUT_PERIOD",
            "periods": [{"start_date": "2026-03-18", "end_date": "2026-03-19", "name": "Quarter close"}],
        }
    ]
    result = _evaluate(RequestedRange(date(2026, 3, 16), date(2026, 3, 20)), policy_overrides={"usage_rules": rules})
    violation = result.first(ViolationCode.BLACKOUT_PERIOD)
    assert violation is not None
    assert "Quarter close" in violation.message


def test_partial_day_rounds_half_up_to_increment() -> None:
    rules = [{"kind": "MINIMUM_INCREMENT", "increment_minutes": 240}]
    result = _evaluate(
        RequestedRange(date(2026, 3, 16), date(2026, 3, 16), is_partial_day=True, partial_minutes=120),
        policy_overrides={"usage_rules": rules},
    )
    assert result.eligible
    assert result.requested_minutes == 240


def test_partial_day_below_half_increment_is_rejected() -> None:
    rules = [{"kind": "MINIMUM_INCREMENT", "increment_minutes": 240}]
    result = _evaluate(
        RequestedRange(date(2026, 3, 16), date(2026, 3, 16), is_partial_day=True, partial_minutes=60),
        policy_overrides={"usage_rules": rules},
    )
    assert ViolationCode.MINIMUM_INCREMENT in result.codes


def test_partial_day_not_allowed_for_leave_type() -> None:
    lt = _leave_type(allows_partial_days=False)
    result = _evaluate(
        RequestedRange(date(2026, 3, 16), date(2026, 3, 16), is_partial_day=True, partial_minutes=240),
        leave_type=lt,
    )
    assert ViolationCode.PARTIAL_DAY_NOT_ALLOWED in result.codes


# ---------------------------------------------------------------------------
# Balance and conflicts
# ---------------------------------------------------------------------------


def test_insufficient_balance_reports_shortfall_in_days() -> None:
    result = _evaluate(RequestedRange(date(2026, 3, 16), date(2026, 3, 20)), balance_minutes=960)
    violation = result.first(ViolationCode.INSUFFICIENT_BALANCE)
    assert violation is not None
    assert violation.details["shortfall_minutes"] == 1440
    assert violation.details["shortfall_days"] == 3


def test_pending_requests_reserve_balance() -> None:
    # 4800 on the books, 2880 already held by PENDING requests, 2400 asked for.
    result = _evaluate(RequestedRange(date(2026, 3, 16), date(2026, 3, 20)), pending_minutes=2880)
    violation = result.first(ViolationCode.INSUFFICIENT_BALANCE)
    assert violation is not None
    assert violation.details["available_minutes"] == 1920
    assert violation.details["current_minutes"] == 4800
    assert violation.details["pending_minutes"] == 2880
    assert violation.details["shortfall_minutes"] == 480

    assert _evaluate(RequestedRange(date(2026, 3, 16), date(2026, 3, 20)), pending_minutes=2400).eligible


def test_balance_not_checked_for_non_accrual_leave() -> None:
    lt = _leave_type(accrual_based=False)
    result = _evaluate(RequestedRange(date(2026, 3, 16), date(2026, 3, 20)), leave_type=lt, balance_minutes=0)
    assert result.eligible


def test_every_violation_is_collected() -> None:
    result = _evaluate(
        RequestedRange(date(2026, 3, 3), date(2026, 3, 10)),
        balance_minutes=0,
        policy_overrides={
            "usage_rules": [
                {"kind": "ADVANCE_NOTICE", "days": 7},
                {"kind": "MAX_CONSECUTIVE_DAYS", "max_days": 2},
            ]
        },
    )
    assert {
        ViolationCode.ADVANCE_NOTICE,
        ViolationCode.MAX_CONSECUTIVE_DAYS,
        ViolationCode.INSUFFICIENT_BALANCE,
    } <= result.codes


def test_conflict_reports_earliest_submitted_overlap() -> None:
    older = _existing(
        date(2026, 3, 17), date(2026, 3, 17), status=LeaveRequestStatus.APPROVED, submitted_minutes_ago=90
    )
    newer = _existing(
        date(2026, 3, 16), date(2026, 3, 18), status=LeaveRequestStatus.PENDING, submitted_minutes_ago=5
    )
    denied = _existing(
        date(2026, 3, 16), date(2026, 3, 16), status=LeaveRequestStatus.DENIED, submitted_minutes_ago=500
    )

    result = _evaluate(RequestedRange(date(2026, 3, 16), date(2026, 3, 20)), existing=[newer, denied, older])
    violation = result.first(ViolationCode.CONFLICT)
    assert violation is not None
    assert violation.details["conflicting_request_id"] == str(older.id)


def test_find_conflict_ignores_excluded_and_adjacent_requests() -> None:
    before = _existing(date(2026, 3, 13), date(2026, 3, 13), status=LeaveRequestStatus.PENDING, submitted_minutes_ago=1)
    same = _existing(date(2026, 3, 16), date(2026, 3, 16), status=LeaveRequestStatus.PENDING, submitted_minutes_ago=1)
    requested = RequestedRange(date(2026, 3, 16), date(2026, 3, 17))
    assert find_conflict(requested, [before, same], exclude_id=same.id) is None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("actual", "operator", "expected", "outcome"),
    [
        (120, RuleOperator.GREATER_THAN, 90, True),
        (30, RuleOperator.GREATER_THAN, 90, False),
        (30, RuleOperator.LESS_THAN, 90, True),
        ("ENG", RuleOperator.EQUALS, "ENG", True),
        ("ENG", RuleOperator.IN, ["OPS", "ENG"], True),
        ("ENG", RuleOperator.NOT_IN, "OPS,SALES", True),
        (None, RuleOperator.IN, ["ENG"], False),
        ("12", RuleOperator.GREATER_THAN, 10, False),
    ],
)
def test_compare(actual: Any, operator: RuleOperator, expected: Any, outcome: bool) -> None:
    assert compare(actual, operator, expected) is outcome


@pytest.mark.parametrize(
    ("minutes", "increment", "expected"),
    [(120, 240, 240), (119, 240, 0), (360, 240, 480), (480, 240, 480), (15, 30, 30)],
)
def test_round_half_up(minutes: int, increment: int, expected: int) -> None:
    assert round_half_up(minutes, increment) == expected
