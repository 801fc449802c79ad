"""ETA lane and rule tests."""

from datetime import UTC, datetime, timedelta

import pytest

from parceltrack.eta.lanes import Lane
from parceltrack.eta.rules import (
    AddDays,
    AddHours,
    Compare,
    Equals,
    Multiply,
    build_rule,
    parse_adjustments,
    parse_conditions,
)
from parceltrack.exceptions import RuleConfigurationError

# A Friday
PICKUP = datetime(2026, 10, 16, 9, 0, tzinfo=UTC)


class TestLane:
    def test_base_hours_with_weekday_adjustment(self) -> None:
        lane = Lane(
            "fac-bkk",
            "fac-cnx",
            "standard",
            base_hours=48,
            day_adjustments={"friday": 12},
        )

        assert lane.adjusted_base_hours(PICKUP) == 60
        assert lane.calculate_eta(PICKUP) == datetime(
            2026, 10, 18, 21, 0, tzinfo=UTC
        )

    def test_other_weekdays_use_base_hours(self) -> None:
        lane = Lane(
            "fac-bkk",
            "fac-cnx",
            "standard",
            base_hours=48,
            day_adjustments={"friday": 12},
        )
        thursday = PICKUP - timedelta(days=1)
        assert lane.adjusted_base_hours(thursday) == 48

    def test_min_hours_clamp(self) -> None:
        lane = Lane("a", "b", "express", base_hours=10, min_hours=24)
        assert lane.calculate_eta(PICKUP) == PICKUP + timedelta(hours=24)

    def test_max_hours_clamp(self) -> None:
        lane = Lane("a", "b", "express", base_hours=48, max_hours=12)
        assert lane.calculate_eta(PICKUP) == PICKUP + timedelta(hours=12)


class TestConditions:
    def test_literal_is_equality(self) -> None:
        (condition,) = parse_conditions("r", {"service_type": "express"})
        assert condition == Equals("service_type", "express")
        assert condition.evaluate({"service_type": "express"})
        assert not condition.evaluate({"service_type": "standard"})

    @pytest.mark.parametrize(
        ("criterion", "value", "expected"),
        [
            ({"gte": 18}, 18, True),
            ({"gte": 18}, 17, False),
            ({"lte": 8}, 8, True),
            ({"gt": 8}, 8, False),
            ({"lt": 8}, 7, True),
            ({"in": [0, 6]}, 6, True),
            ({"in": [0, 6]}, 3, False),
            ({"not_in": ["express"]}, "standard", True),
            ({"not_in": ["express"]}, "express", False),
        ],
    )
    def test_operators(self, criterion, value, expected) -> None:
        conditions = parse_conditions("r", {"key": criterion})
        assert all(c.evaluate({"key": value}) for c in conditions) is expected

    def test_missing_or_null_key_is_false(self) -> None:
        equals = Equals("origin_facility_type", "hub")
        compare = Compare("pickup_hour", "gte", 0)
        not_in = Compare("origin_facility_type", "not_in", ("hub",))

        for condition in (equals, compare, not_in):
            assert condition.evaluate({}) is False
            assert condition.evaluate({condition.key: None}) is False

    def test_boolean_equality_is_type_strict(self) -> None:
        condition = Equals("is_weekend_pickup", True)
        assert condition.evaluate({"is_weekend_pickup": True})
        assert not condition.evaluate({"is_weekend_pickup": 1})

    def test_incomparable_types_are_false(self) -> None:
        condition = Compare("service_type", "gte", 3)
        assert condition.evaluate({"service_type": "express"}) is False

    def test_unknown_operator_is_rejected(self) -> None:
        with pytest.raises(RuleConfigurationError, match="unknown operator"):
            parse_conditions("late pickup", {"pickup_hour": {"between": 1}})

    def test_empty_operator_mapping_is_rejected(self) -> None:
        with pytest.raises(RuleConfigurationError):
            parse_conditions("r", {"pickup_hour": {}})

    def test_in_requires_a_list(self) -> None:
        with pytest.raises(RuleConfigurationError, match="expects a list"):
            parse_conditions("r", {"service_type": {"in": "express"}})

    def test_error_names_the_rule(self) -> None:
        with pytest.raises(RuleConfigurationError) as exc_info:
            parse_conditions("late pickup", {"pickup_hour": {"eq": 1}})
        assert exc_info.value.rule_name == "late pickup"


class TestAdjustments:
    def test_fixed_application_order(self) -> None:
        adjustments = parse_adjustments(
            "r", {"multiplier": 2, "days": 1, "hours": 6}
        )
        assert adjustments == (AddHours(6), AddDays(1), Multiply(2))

    def test_multiplier_scales_elapsed_time(self) -> None:
        eta = PICKUP + timedelta(hours=60)
        assert Multiply(0.5).apply(eta, PICKUP) == PICKUP + timedelta(
            hours=30
        )

    def test_unknown_kind_is_rejected(self) -> None:
        with pytest.raises(RuleConfigurationError, match="unknown adjustment"):
            parse_adjustments("r", {"weeks": 1})

    def test_non_numeric_value_is_rejected(self) -> None:
        with pytest.raises(RuleConfigurationError, match="numeric"):
            parse_adjustments("r", {"hours": "24"})


class TestRule:
    def test_conditions_are_and_combined(self) -> None:
        rule = build_rule(
            "express evening",
            {"service_type": "express", "pickup_hour": {"gte": 18}},
            {"hours": 12},
        )

        assert rule.applies_to({"service_type": "express", "pickup_hour": 19})
        assert not rule.applies_to(
            {"service_type": "express", "pickup_hour": 9}
        )
        assert not rule.applies_to({"service_type": "standard"})

    def test_rule_without_conditions_always_applies(self) -> None:
        rule = build_rule("always", {}, {"days": 1})
        assert rule.applies_to({})

    def test_inactive_rule_never_applies(self) -> None:
        rule = build_rule("off", {}, {"days": 1}, active=False)
        assert not rule.applies_to({})

    def test_apply_uses_context_pickup_time(self) -> None:
        rule = build_rule("combo", {}, {"hours": 12, "multiplier": 0.5})
        eta = PICKUP + timedelta(hours=48)

        adjusted = rule.apply(eta, {"pickup_time": PICKUP})

        # (48 + 12) * 0.5
        assert adjusted == PICKUP + timedelta(hours=30)
