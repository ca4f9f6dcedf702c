"""Unit tests for the typed policy rules and request schemas."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime

import pytest
from pydantic import TypeAdapter, ValidationError

from app.models.enums import AccrualPeriod, RuleOperator
from app.schemas.auth import AuthContext
from app.schemas.leave import LeaveRequestPayload
from app.schemas.policy import (
    AccrualRule,
    AdvanceNoticeRule,
    BlackoutPeriod,
    BlackoutPeriodRule,
    CreateLeavePolicyRequest,
    CreateOvertimePolicyRequest,
    CustomRule,
    EligibilityRule,
    MinimumIncrementRule,
    PolicyRules,
    TenureRule,
    UsageRule,
    rules_to_json,
)
from app.schemas.time_entry import BreakInput

_eligibility: TypeAdapter[list[EligibilityRule]] = TypeAdapter(list[EligibilityRule])
_usage: TypeAdapter[list[UsageRule]] = TypeAdapter(list[UsageRule])

# ---------------------------------------------------------------------------
# Eligibility rules
# ---------------------------------------------------------------------------


def test_eligibility_rules_dispatch_on_kind() -> None:
    rules = _eligibility.validate_python(
        [
            {"kind": "TENURE", "operator": "GREATER_THAN", "value": 90},
            {"kind": "EMPLOYMENT_TYPE", "operator": "IN", "value": ["FULL_TIME", "PART_TIME"]},
            {"kind": "CUSTOM", "attribute": "location", "operator": "EQUALS", "value": "Berlin"},
        ]
    )
    assert isinstance(rules[0], TenureRule)
    assert isinstance(rules[2], CustomRule)
    assert rules[2].attribute == "location"


def test_tenure_rule_defaults() -> None:
    rule = TenureRule()
    assert rule.operator == RuleOperator.GREATER_THAN
    assert rule.value == 0


def test_ordered_operator_requires_number() -> None:
    with pytest.raises(ValidationError, match="requires a numeric value"):
        TenureRule(operator=RuleOperator.LESS_THAN, value="ninety")


def test_unknown_rule_kind_rejected() -> None:
    with pytest.raises(ValidationError):
        _eligibility.validate_python([{"kind": "ZODIAC", "operator": "EQUALS", "value": "Leo"}])


def test_custom_rule_requires_attribute() -> None:
    with pytest.raises(ValidationError):
        CustomRule(operator=RuleOperator.EQUALS, value="x", attribute="")


# ---------------------------------------------------------------------------
# Usage rules
# ---------------------------------------------------------------------------


def test_usage_rules_dispatch_on_kind() -> None:
    rules = _usage.validate_python(
        [
            {"kind": "MAX_CONSECUTIVE_DAYS", "max_days": 10},
            {"kind": "ADVANCE_NOTICE", "days": 7},
            {"kind": "BLACKOUT_PERIOD", "periods": [{"start_date": "2026-12-20", "end_date": "2026-12-31"}]},
            {"kind": "MINIMUM_INCREMENT", "increment_minutes": 240},
        ]
    )
    assert [r.kind for r in rules] == ["MAX_CONSECUTIVE_DAYS", "ADVANCE_NOTICE", "BLACKOUT_PERIOD", "MINIMUM_INCREMENT"]
    assert all(r.is_active for r in rules)


def test_blackout_period_window() -> None:
    period = BlackoutPeriod(start_date=date(2026, 12, 20), end_date=date(2026, 12, 31))
    assert period.overlaps(date(2026, 12, 31), date(2027, 1, 2))
    assert not period.overlaps(date(2026, 12, 1), date(2026, 12, 19))

    with pytest.raises(ValidationError, match="end_date must be >= start_date"):
        BlackoutPeriod(start_date=date(2026, 12, 31), end_date=date(2026, 12, 20))


def test_blackout_rule_needs_a_period() -> None:
    with pytest.raises(ValidationError):
        BlackoutPeriodRule(periods=[])


def test_rule_limits_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        MinimumIncrementRule(increment_minutes=0)
    with pytest.raises(ValidationError):
        AdvanceNoticeRule(days=-1)


def test_rules_round_trip_through_json_columns() -> None:
    stored = rules_to_json([AdvanceNoticeRule(days=3), MinimumIncrementRule(increment_minutes=240)])
    assert stored[0] == {"kind": "ADVANCE_NOTICE", "days": 3, "is_active": True}
    parsed = PolicyRules.model_validate({"usage_rules": stored})
    assert isinstance(parsed.usage_rules[1], MinimumIncrementRule)


# ---------------------------------------------------------------------------
# Accrual rule
# ---------------------------------------------------------------------------


def test_accrual_rule_defaults() -> None:
    rule = AccrualRule(rate_minutes=480)
    assert rule.period == AccrualPeriod.MONTHLY
    assert rule.max_balance_minutes is None
    assert rule.waiting_period_days == 0


def test_accrual_rule_carryover_within_cap() -> None:
    with pytest.raises(ValidationError, match="carryover_limit_minutes cannot exceed max_balance_minutes"):
        AccrualRule(rate_minutes=480, max_balance_minutes=2400, carryover_limit_minutes=4800)


def test_leave_policy_window_validated() -> None:
    with pytest.raises(ValidationError, match="effective_to must be >= effective_from"):
        CreateLeavePolicyRequest(
            name="Backwards",
            leave_type_id=uuid.uuid4(),
            effective_from=date(2026, 6, 1),
            effective_to=date(2026, 1, 1),
        )


# ---------------------------------------------------------------------------
# Overtime policy
# ---------------------------------------------------------------------------


def test_overtime_policy_defaults() -> None:
    policy = CreateOvertimePolicyRequest(name="Standard", effective_from=date(2026, 1, 1))
    assert policy.daily_threshold_minutes == 480
    assert policy.weekly_threshold_minutes == 2400
    assert policy.overtime_multiplier == 1.5


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"double_time_threshold_minutes": 480, "double_time_multiplier": 2.0}, "greater than daily_threshold"),
        ({"double_time_threshold_minutes": 720}, "double_time_multiplier is required"),
        ({"double_time_threshold_minutes": 720, "double_time_multiplier": 1.25}, "greater than overtime_multiplier"),
    ],
)
def test_overtime_policy_double_time_validation(overrides: dict, message: str) -> None:  # type: ignore[type-arg]
    with pytest.raises(ValidationError, match=message):
        CreateOvertimePolicyRequest(name="Bad", effective_from=date(2026, 1, 1), **overrides)


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


def _leave(**overrides: object) -> LeaveRequestPayload:
    values: dict[str, object] = {
        "employee_id": uuid.uuid4(),
        "leave_type_id": uuid.uuid4(),
        "start_date": date(2026, 3, 10),
        "end_date": date(2026, 3, 10),
    }
    values.update(overrides)
    return LeaveRequestPayload.model_validate(values)


def test_leave_payload_partial_day() -> None:
    payload = _leave(is_partial_day=True, partial_minutes=240)
    assert payload.partial_minutes == 240


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"end_date": date(2026, 3, 9)}, "end_date must be >= start_date"),
        ({"is_partial_day": True}, "partial_minutes is required"),
        ({"is_partial_day": True, "partial_minutes": 240, "end_date": date(2026, 3, 11)}, "single date"),
        ({"partial_minutes": 240}, "only allowed on partial-day requests"),
    ],
)
def test_leave_payload_rejects_inconsistent_input(overrides: dict, message: str) -> None:  # type: ignore[type-arg]
    with pytest.raises(ValidationError, match=message):
        _leave(**overrides)


def test_break_input_sequence() -> None:
    with pytest.raises(ValidationError, match="end_at must be after start_at"):
        BreakInput(
            break_type="LUNCH",
            start_at=datetime(2026, 3, 2, 12, tzinfo=UTC),
            end_at=datetime(2026, 3, 2, 12, tzinfo=UTC),
        )


# ---------------------------------------------------------------------------
# Auth context
# ---------------------------------------------------------------------------


def test_auth_context_permissions() -> None:
    employee_id, report_id, stranger_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    manager = AuthContext(user_id=employee_id, employee_id=employee_id, managed_employee_ids=[report_id])

    assert manager.can_act_for(employee_id)
    assert manager.can_act_for(report_id)
    assert not manager.can_act_for(stranger_id)
    assert manager.can_manage(report_id)
    assert not manager.can_manage(employee_id)

    hr = AuthContext(user_id=uuid.uuid4(), roles=["hr"])
    assert hr.is_admin
    assert hr.can_manage(stranger_id)
