"""Tests for grant condition evaluation."""

from datetime import datetime, timedelta, UTC

import pytest
from pydantic import ValidationError

from hotelhub.authz.conditions import (
    ConditionEngine,
    all_of,
    any_of,
    department_match,
    is_time_dependent,
    negate,
    ownership,
    parse_condition,
    recurring_window,
    time_window,
)
from hotelhub.authz.models import ResourceAttributes, SystemRole
from hotelhub.tenancy.context import TenantContext

MONDAY_10AM = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


@pytest.fixture
def engine() -> ConditionEngine:
    return ConditionEngine()


@pytest.fixture
def context() -> TenantContext:
    return TenantContext(
        organization_id="org-x",
        property_id="p-1",
        department_id="d-1",
        user_id="u-1",
        effective_role=SystemRole.DEPARTMENT_ADMIN,
    )


def target(department_id: str | None = "d-1", owner_id: str | None = "u-1") -> ResourceAttributes:
    return ResourceAttributes(
        organization_id="org-x",
        property_id="p-1",
        department_id=department_id,
        owner_id=owner_id,
    )


class TestTimeConditions:
    """Absolute and recurring time windows."""

    def test_no_condition_is_true(self, engine, context):
        assert engine.evaluate(None, None, context, MONDAY_10AM)

    def test_time_window_bounds(self, engine, context):
        window = time_window(MONDAY_10AM, MONDAY_10AM + timedelta(hours=1))

        assert engine.evaluate(window, None, context, MONDAY_10AM)
        assert not engine.evaluate(window, None, context, MONDAY_10AM + timedelta(hours=1))
        assert not engine.evaluate(window, None, context, MONDAY_10AM - timedelta(seconds=1))

    def test_time_window_requires_end_after_start(self):
        with pytest.raises(ValidationError):
            parse_condition(
                {
                    "kind": "time_window",
                    "start": MONDAY_10AM.isoformat(),
                    "end": MONDAY_10AM.isoformat(),
                }
            )

    def test_recurring_window_on_weekdays(self, engine, context):
        business_hours = recurring_window("09:00", "17:00", days=[0, 1, 2, 3, 4])

        assert engine.evaluate(business_hours, None, context, MONDAY_10AM)
        saturday = MONDAY_10AM + timedelta(days=5)
        assert not engine.evaluate(business_hours, None, context, saturday)
        evening = MONDAY_10AM.replace(hour=18)
        assert not engine.evaluate(business_hours, None, context, evening)

    def test_overnight_window_belongs_to_start_day(self, engine, context):
        """02:00 Tuesday is inside a Monday 22:00-06:00 shift."""
        night_shift = recurring_window("22:00", "06:00", days=[0])

        assert engine.evaluate(night_shift, None, context, MONDAY_10AM.replace(hour=23))
        tuesday_2am = MONDAY_10AM.replace(hour=2) + timedelta(days=1)
        assert engine.evaluate(night_shift, None, context, tuesday_2am)
        monday_2am = MONDAY_10AM.replace(hour=2)
        assert not engine.evaluate(night_shift, None, context, monday_2am)

    def test_is_time_dependent_looks_inside_combinators(self):
        assert is_time_dependent(time_window(MONDAY_10AM, MONDAY_10AM + timedelta(hours=1)))
        assert is_time_dependent(all_of(ownership(), negate(recurring_window("09:00", "17:00"))))
        assert not is_time_dependent(any_of(ownership(), department_match()))
        assert not is_time_dependent(None)


class TestAttributeConditions:
    """Department and ownership conditions compare target and context."""

    def test_department_match(self, engine, context):
        condition = department_match()

        assert engine.evaluate(condition, target("d-1"), context, MONDAY_10AM)
        assert not engine.evaluate(condition, target("d-2"), context, MONDAY_10AM)

    def test_department_match_without_department_is_false(self, engine, context):
        condition = department_match()

        assert not engine.evaluate(condition, None, context, MONDAY_10AM)
        assert not engine.evaluate(condition, target(None), context, MONDAY_10AM)

    def test_ownership(self, engine, context):
        assert engine.evaluate(ownership(), target(owner_id="u-1"), context, MONDAY_10AM)
        assert not engine.evaluate(ownership(), target(owner_id="u-2"), context, MONDAY_10AM)
        assert not engine.evaluate(ownership(), target(owner_id=None), context, MONDAY_10AM)


class TestCombinators:
    def test_all_any_not(self, engine, context):
        mine_elsewhere = target(department_id="d-2", owner_id="u-1")

        assert not engine.evaluate(
            all_of(ownership(), department_match()), mine_elsewhere, context, MONDAY_10AM
        )
        assert engine.evaluate(
            any_of(ownership(), department_match()), mine_elsewhere, context, MONDAY_10AM
        )
        assert engine.evaluate(negate(department_match()), mine_elsewhere, context, MONDAY_10AM)

    def test_empty_combinator_is_malformed(self, engine, context):
        assert not engine.evaluate({"kind": "any", "conditions": []}, target(), context, MONDAY_10AM)


class TestFailClosed:
    """Malformed conditions evaluate to false and never raise."""

    @pytest.mark.parametrize(
        "condition",
        [
            {"kind": "moon_phase"},
            {"no_kind": True},
            {"kind": "time_window", "start": "yesterday"},
            {"kind": "recurring_window", "start_time": "09:00", "end_time": "17:00", "days": [9]},
            {"kind": "not", "condition": {"kind": "unknown"}},
        ],
    )
    def test_malformed_condition_is_false(self, engine, context, condition):
        assert engine.evaluate(condition, target(), context, MONDAY_10AM) is False

    def test_negated_malformed_condition_is_still_false(self, engine, context):
        """A malformed child cannot be flipped into an allow."""
        condition = negate({"kind": "bogus"})

        assert engine.evaluate(condition, target(), context, MONDAY_10AM) is False

    def test_naive_datetime_comparison_fails_closed(self, engine, context):
        window = time_window(MONDAY_10AM, MONDAY_10AM + timedelta(hours=1))

        assert engine.evaluate(window, None, context, datetime(2026, 3, 2, 10, 30)) is False
