"""ABAC condition engine.

Conditions are stored with their grant as JSON-shaped dicts and parsed
here on every evaluation. Anything that fails to parse or evaluate is
treated as false.

Supported kinds:
    {"kind": "time_window", "start": "...", "end": "..."}
    {"kind": "recurring_window", "days": [0, 1, 2], "start_time": "09:00", "end_time": "17:00"}
    {"kind": "department_match"}
    {"kind": "ownership"}
    {"kind": "all", "conditions": [...]}
    {"kind": "any", "conditions": [...]}
    {"kind": "not", "condition": {...}}
"""

from __future__ import annotations

import logging
from datetime import datetime, time
from typing import TYPE_CHECKING, Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator

from hotelhub.authz.models import ResourceAttributes

if TYPE_CHECKING:
    from hotelhub.tenancy.context import TenantContext

logger = logging.getLogger(__name__)


# =============================================================================
# Condition Models
# =============================================================================


class TimeWindow(BaseModel):
    """Absolute window, start inclusive and end exclusive."""

    kind: Literal["time_window"] = "time_window"
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def check_order(self) -> TimeWindow:
        if self.end <= self.start:
            raise ValueError("time_window end must be after start")
        return self


class RecurringWindow(BaseModel):
    """Daily or weekly window in the evaluation clock's timezone.

    `days` uses Monday=0; omit it for every day. An end before the start
    spans midnight.
    """

    kind: Literal["recurring_window"] = "recurring_window"
    days: list[Annotated[int, Field(ge=0, le=6)]] | None = None
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def check_span(self) -> RecurringWindow:
        if self.start_time == self.end_time:
            raise ValueError("recurring_window must span a non-empty interval")
        return self


class DepartmentMatch(BaseModel):
    kind: Literal["department_match"] = "department_match"


class Ownership(BaseModel):
    kind: Literal["ownership"] = "ownership"


class AllOf(BaseModel):
    kind: Literal["all"] = "all"
    conditions: list[Condition] = Field(min_length=1)


class AnyOf(BaseModel):
    kind: Literal["any"] = "any"
    conditions: list[Condition] = Field(min_length=1)


class Not(BaseModel):
    kind: Literal["not"] = "not"
    condition: Condition


Condition = Annotated[
    Union[TimeWindow, RecurringWindow, DepartmentMatch, Ownership, AllOf, AnyOf, Not],
    Field(discriminator="kind"),
]

AllOf.model_rebuild()
AnyOf.model_rebuild()
Not.model_rebuild()

_condition_adapter: TypeAdapter[Any] = TypeAdapter(Condition)


def parse_condition(raw: dict[str, Any]) -> BaseModel:
    """Parse a stored condition. Raises ValidationError when malformed."""
    return _condition_adapter.validate_python(raw)


# =============================================================================
# Builders
# =============================================================================


def time_window(start: datetime, end: datetime) -> dict[str, Any]:
    return TimeWindow(start=start, end=end).model_dump(mode="json")


def recurring_window(
    start_time: str, end_time: str, days: list[int] | None = None
) -> dict[str, Any]:
    return RecurringWindow(
        start_time=time.fromisoformat(start_time),
        end_time=time.fromisoformat(end_time),
        days=days,
    ).model_dump(mode="json")


def department_match() -> dict[str, Any]:
    return {"kind": "department_match"}


def ownership() -> dict[str, Any]:
    return {"kind": "ownership"}


def all_of(*conditions: dict[str, Any]) -> dict[str, Any]:
    return {"kind": "all", "conditions": list(conditions)}


def any_of(*conditions: dict[str, Any]) -> dict[str, Any]:
    return {"kind": "any", "conditions": list(conditions)}


def negate(condition: dict[str, Any]) -> dict[str, Any]:
    return {"kind": "not", "condition": condition}


# =============================================================================
# Engine
# =============================================================================


class ConditionEngine:
    """Evaluates grant conditions against a resource and tenant context.

    Evaluation is side-effect free and short-circuits left to right.
    """

    def evaluate(
        self,
        condition: dict[str, Any] | None,
        target: ResourceAttributes | None,
        context: TenantContext,
        now: datetime,
    ) -> bool:
        if condition is None:
            return True

        try:
            parsed = parse_condition(condition)
        except ValidationError as e:
            logger.warning(
                "Malformed condition treated as false: %s (%d errors)",
                condition.get("kind") if isinstance(condition, dict) else type(condition).__name__,
                e.error_count(),
            )
            return False

        try:
            return self._evaluate(parsed, target, context, now)
        except (TypeError, ValueError) as e:
            logger.warning("Condition evaluation failed, treated as false: %s", e)
            return False

    def _evaluate(
        self,
        condition: BaseModel,
        target: ResourceAttributes | None,
        context: TenantContext,
        now: datetime,
    ) -> bool:
        if isinstance(condition, TimeWindow):
            return condition.start <= now < condition.end

        if isinstance(condition, RecurringWindow):
            return self._in_recurring_window(condition, now)

        if isinstance(condition, DepartmentMatch):
            # No target or no department on either side never matches
            if target is None or target.department_id is None:
                return False
            return target.department_id == context.department_id

        if isinstance(condition, Ownership):
            if target is None or target.owner_id is None:
                return False
            return target.owner_id == context.user_id

        if isinstance(condition, AllOf):
            return all(self._evaluate(c, target, context, now) for c in condition.conditions)

        if isinstance(condition, AnyOf):
            return any(self._evaluate(c, target, context, now) for c in condition.conditions)

        if isinstance(condition, Not):
            return not self._evaluate(condition.condition, target, context, now)

        logger.warning("Unknown condition kind: %s", type(condition).__name__)
        return False

    def _in_recurring_window(self, window: RecurringWindow, now: datetime) -> bool:
        current = now.time().replace(tzinfo=None)
        weekday = now.weekday()

        if window.start_time < window.end_time:
            in_window = window.start_time <= current < window.end_time
            return in_window and (window.days is None or weekday in window.days)

        # Overnight window: the part after midnight belongs to the previous day
        if current >= window.start_time:
            return window.days is None or weekday in window.days
        if current < window.end_time:
            return window.days is None or (weekday - 1) % 7 in window.days
        return False


_TIME_KINDS = {"time_window", "recurring_window"}


def is_time_dependent(condition: Any) -> bool:
    """True when a stored condition's outcome can change with the clock."""
    if not isinstance(condition, dict):
        return False
    kind = condition.get("kind")
    if kind in _TIME_KINDS:
        return True
    if kind in ("all", "any"):
        children = condition.get("conditions")
        return isinstance(children, list) and any(is_time_dependent(c) for c in children)
    if kind == "not":
        return is_time_dependent(condition.get("condition"))
    return False
