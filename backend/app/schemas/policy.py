# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Annotated, Any, Literal, Self

from pydantic import BaseModel, Discriminator, Field, model_validator

from app.models.enums import AccrualPeriod, RuleOperator

RuleValue = int | float | str | list[str]

# ---------------------------------------------------------------------------
# Eligibility rules (tagged by ``kind``)
# ---------------------------------------------------------------------------


class _PredicateRule(BaseModel):
    operator: RuleOperator
    value: RuleValue
    description: str | None = None

    @model_validator(mode="after")
    def _validate_value(self) -> Self:
        ordered = self.operator in (RuleOperator.GREATER_THAN, RuleOperator.LESS_THAN)
        if ordered and not isinstance(self.value, int | float):
            msg = f"{self.operator} requires a numeric value"
            raise ValueError(msg)
        return self


class TenureRule(_PredicateRule):
    """Days since the employee's start date compared against ``value``."""

    kind: Literal["TENURE"] = "TENURE"
    operator: RuleOperator = RuleOperator.GREATER_THAN
    value: RuleValue = 0


class EmploymentTypeRule(_PredicateRule):
    kind: Literal["EMPLOYMENT_TYPE"] = "EMPLOYMENT_TYPE"
    operator: RuleOperator = RuleOperator.IN


class DepartmentRule(_PredicateRule):
    kind: Literal["DEPARTMENT"] = "DEPARTMENT"
    operator: RuleOperator = RuleOperator.IN


class CustomRule(_PredicateRule):
    """Predicate over a named employee attribute."""

    kind: Literal["CUSTOM"] = "CUSTOM"
    attribute: str = Field(min_length=1, max_length=100)


EligibilityRule = Annotated[
    TenureRule | EmploymentTypeRule | DepartmentRule | CustomRule,
    Discriminator("kind"),
]

# ---------------------------------------------------------------------------
# Usage rules (tagged by ``kind``)
# ---------------------------------------------------------------------------


class MaxConsecutiveDaysRule(BaseModel):
    kind: Literal["MAX_CONSECUTIVE_DAYS"] = "MAX_CONSECUTIVE_DAYS"
    max_days: int = Field(gt=0)
    is_active: bool = True


class AdvanceNoticeRule(BaseModel):
    kind: Literal["ADVANCE_NOTICE"] = "ADVANCE_NOTICE"
    days: int = Field(ge=0)
    is_active: bool = True


class BlackoutPeriod(BaseModel):
    start_date: date
    end_date: date
    name: str | None = None

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must be >= start_date"
            raise ValueError(msg)
        return self

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and start <= self.end_date


class BlackoutPeriodRule(BaseModel):
    kind: Literal["BLACKOUT_PERIOD"] = "BLACKOUT_PERIOD"
    periods: list[BlackoutPeriod] = Field(min_length=1)
    is_active: bool = True


class MinimumIncrementRule(BaseModel):
    """Requested time must land on a multiple of ``increment_minutes`` (e.g. 240 for half-days)."""

    kind: Literal["MINIMUM_INCREMENT"] = "MINIMUM_INCREMENT"
    increment_minutes: int = Field(gt=0)
    is_active: bool = True


UsageRule = Annotated[
    MaxConsecutiveDaysRule | AdvanceNoticeRule | BlackoutPeriodRule | MinimumIncrementRule,
    Discriminator("kind"),
]

# ---------------------------------------------------------------------------
# Accrual rule
# ---------------------------------------------------------------------------


class AccrualRule(BaseModel):
    """How and how fast a balance governed by this policy grows."""

    rate_minutes: int = Field(ge=0, description="Minutes credited per full accrual period")
    period: AccrualPeriod = AccrualPeriod.MONTHLY
    max_balance_minutes: int | None = Field(default=None, gt=0)
    carryover_limit_minutes: int | None = Field(default=None, ge=0)
    waiting_period_days: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _validate_limits(self) -> Self:
        if (
            self.max_balance_minutes is not None
            and self.carryover_limit_minutes is not None
            and self.carryover_limit_minutes > self.max_balance_minutes
        ):
            msg = "carryover_limit_minutes cannot exceed max_balance_minutes"
            raise ValueError(msg)
        return self


class PolicyRules(BaseModel):
    """Typed view of a LeavePolicy's JSON rule columns."""

    eligibility_rules: list[EligibilityRule] = []
    usage_rules: list[UsageRule] = []
    accrual_rule: AccrualRule | None = None
    applicable_groups: list[str] = []


# ---------------------------------------------------------------------------
# Leave type schemas
# ---------------------------------------------------------------------------


class CreateLeaveTypeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    paid: bool = True
    requires_approval: bool = True
    max_consecutive_days: int | None = Field(default=None, gt=0)
    advance_notice_days: int = Field(default=0, ge=0)
    allows_partial_days: bool = False
    accrual_based: bool = True
    excludes_non_working_days: bool = True


class LeaveTypeResponse(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    paid: bool
    requires_approval: bool
    max_consecutive_days: int | None
    advance_notice_days: int
    allows_partial_days: bool
    accrual_based: bool
    excludes_non_working_days: bool
    is_active: bool
    created_at: datetime


class LeaveTypeListResponse(BaseModel):
    items: list[LeaveTypeResponse]
    total: int


# ---------------------------------------------------------------------------
# Leave policy schemas
# ---------------------------------------------------------------------------


class CreateLeavePolicyRequest(BaseModel):
    """Request body for creating a leave policy."""

    name: str = Field(min_length=1, max_length=255)
    leave_type_id: uuid.UUID
    effective_from: date
    effective_to: date | None = None
    applicable_groups: list[str] = []
    eligibility_rules: list[EligibilityRule] = []
    usage_rules: list[UsageRule] = []
    accrual_rule: AccrualRule | None = None

    @model_validator(mode="after")
    def _validate_window(self) -> Self:
        if self.effective_to is not None and self.effective_to < self.effective_from:
            msg = "effective_to must be >= effective_from"
            raise ValueError(msg)
        return self


class LeavePolicyResponse(BaseModel):
    """Response schema for a leave policy with typed rules."""

    id: uuid.UUID
    name: str
    leave_type_id: uuid.UUID
    effective_from: date
    effective_to: date | None
    applicable_groups: list[str]
    eligibility_rules: list[EligibilityRule]
    usage_rules: list[UsageRule]
    accrual_rule: AccrualRule | None
    is_active: bool
    created_at: datetime


class LeavePolicyListResponse(BaseModel):
    items: list[LeavePolicyResponse]
    total: int


# ---------------------------------------------------------------------------
# Overtime policy schemas
# ---------------------------------------------------------------------------


class CreateOvertimePolicyRequest(BaseModel):
    """Request body for creating an overtime policy."""

    name: str = Field(min_length=1, max_length=255)
    daily_threshold_minutes: int = Field(default=480, gt=0)
    weekly_threshold_minutes: int = Field(default=2400, gt=0)
    overtime_multiplier: float = Field(default=1.5, ge=1)
    double_time_threshold_minutes: int | None = Field(default=None, gt=0)
    double_time_multiplier: float | None = Field(default=None, ge=1)
    applicable_groups: list[str] = []
    effective_from: date
    effective_to: date | None = None

    @model_validator(mode="after")
    def _validate_thresholds(self) -> Self:
        if self.double_time_threshold_minutes is not None:
            if self.double_time_threshold_minutes <= self.daily_threshold_minutes:
                msg = "double_time_threshold_minutes must be greater than daily_threshold_minutes"
                raise ValueError(msg)
            if self.double_time_multiplier is None:
                msg = "double_time_multiplier is required when double_time_threshold_minutes is set"
                raise ValueError(msg)
        if self.double_time_multiplier is not None and self.double_time_multiplier <= self.overtime_multiplier:
            msg = "double_time_multiplier must be greater than overtime_multiplier"
            raise ValueError(msg)
        if self.effective_to is not None and self.effective_to < self.effective_from:
            msg = "effective_to must be >= effective_from"
            raise ValueError(msg)
        return self


class OvertimePolicyResponse(BaseModel):
    id: uuid.UUID
    name: str
    daily_threshold_minutes: int
    weekly_threshold_minutes: int
    overtime_multiplier: float
    double_time_threshold_minutes: int | None
    double_time_multiplier: float | None
    applicable_groups: list[str]
    effective_from: date
    effective_to: date | None
    is_active: bool
    created_at: datetime


class OvertimePolicyListResponse(BaseModel):
    items: list[OvertimePolicyResponse]
    total: int


def rules_to_json(rules: list[Any]) -> list[dict[str, Any]]:
    """Serialize typed rules for storage in a JSON column."""
    return [rule.model_dump(mode="json") for rule in rules]
