"""Conditional ETA adjustment rules.

Conditions are a closed set of variants. Stored rule configuration is a
mapping of context key to either a literal (equality) or a mapping of
operator to operand::

    {"service_type": "express", "pickup_hour": {"gte": 18}}

Unknown operators or adjustment kinds are rejected when the rule is
loaded, not ignored at evaluation time.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from numbers import Real
from typing import Any, Literal, get_args

from parceltrack.exceptions import RuleConfigurationError

Operator = Literal["in", "not_in", "gte", "lte", "gt", "lt"]
OPERATORS: frozenset[str] = frozenset(get_args(Operator))

Context = Mapping[str, Any]


def _strict_equals(left: Any, right: Any) -> bool:
    # True must not match 1.
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    return left == right


@dataclass(frozen=True)
class Equals:
    key: str
    value: Any

    def evaluate(self, context: Context) -> bool:
        if context.get(self.key) is None:
            return False
        return _strict_equals(context[self.key], self.value)


@dataclass(frozen=True)
class Compare:
    key: str
    op: Operator
    operand: Any

    def evaluate(self, context: Context) -> bool:
        value = context.get(self.key)
        if value is None:
            return False
        if self.op == "in":
            return any(_strict_equals(value, o) for o in self.operand)
        if self.op == "not_in":
            return not any(_strict_equals(value, o) for o in self.operand)
        try:
            if self.op == "gte":
                return value >= self.operand
            if self.op == "lte":
                return value <= self.operand
            if self.op == "gt":
                return value > self.operand
            return value < self.operand
        except TypeError:
            return False


Condition = Equals | Compare


@dataclass(frozen=True)
class AddHours:
    hours: float

    def apply(self, eta: datetime, pickup_time: datetime) -> datetime:
        return eta + timedelta(hours=self.hours)


@dataclass(frozen=True)
class AddDays:
    days: float

    def apply(self, eta: datetime, pickup_time: datetime) -> datetime:
        return eta + timedelta(days=self.days)


@dataclass(frozen=True)
class Multiply:
    """Scales the elapsed duration from pickup, not the absolute ETA."""

    factor: float

    def apply(self, eta: datetime, pickup_time: datetime) -> datetime:
        return pickup_time + (eta - pickup_time) * self.factor


Adjustment = AddHours | AddDays | Multiply

_ADJUSTMENT_KINDS = {
    "hours": AddHours,
    "days": AddDays,
    "multiplier": Multiply,
}


@dataclass(frozen=True)
class Rule:
    name: str
    conditions: tuple[Condition, ...]
    adjustments: tuple[Adjustment, ...]
    priority: int = 0
    active: bool = True
    rule_type: str = ""
    description: str = ""

    def applies_to(self, context: Context) -> bool:
        """All conditions must hold (AND semantics)."""
        if not self.active:
            return False
        return all(c.evaluate(context) for c in self.conditions)

    def apply(self, eta: datetime, context: Context) -> datetime:
        pickup_time = context.get("pickup_time") or datetime.now(UTC)
        for adjustment in self.adjustments:
            eta = adjustment.apply(eta, pickup_time)
        return eta


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def parse_conditions(
    rule_name: str, raw: Mapping[str, Any] | None
) -> tuple[Condition, ...]:
    conditions: list[Condition] = []
    for key, criterion in (raw or {}).items():
        if not isinstance(criterion, Mapping):
            conditions.append(Equals(key, criterion))
            continue
        if not criterion:
            raise RuleConfigurationError(
                rule_name, f"condition on {key!r} has no operators"
            )
        for op, operand in criterion.items():
            if op not in OPERATORS:
                raise RuleConfigurationError(
                    rule_name, f"unknown operator {op!r} on {key!r}"
                )
            if op in ("in", "not_in"):
                if isinstance(operand, (str, bytes)) or not isinstance(
                    operand, (list, tuple, set, frozenset)
                ):
                    raise RuleConfigurationError(
                        rule_name, f"{op!r} on {key!r} expects a list"
                    )
                operand = tuple(operand)
            conditions.append(Compare(key, op, operand))
    return tuple(conditions)


def parse_adjustments(
    rule_name: str, raw: Mapping[str, Any] | None
) -> tuple[Adjustment, ...]:
    raw = raw or {}
    unknown = set(raw) - set(_ADJUSTMENT_KINDS)
    if unknown:
        raise RuleConfigurationError(
            rule_name, f"unknown adjustment {sorted(unknown)[0]!r}"
        )
    adjustments: list[Adjustment] = []
    # Fixed application order: hours, days, multiplier.
    for kind, cls in _ADJUSTMENT_KINDS.items():
        if kind not in raw:
            continue
        if not _is_number(raw[kind]):
            raise RuleConfigurationError(
                rule_name, f"adjustment {kind!r} must be numeric"
            )
        adjustments.append(cls(raw[kind]))
    return tuple(adjustments)


def build_rule(
    name: str,
    conditions: Mapping[str, Any] | None,
    adjustments: Mapping[str, Any] | None,
    *,
    priority: int = 0,
    active: bool = True,
    rule_type: str = "",
    description: str = "",
) -> Rule:
    """Build a validated rule from its stored representation."""
    return Rule(
        name=name,
        conditions=parse_conditions(name, conditions),
        adjustments=parse_adjustments(name, adjustments),
        priority=priority,
        active=active,
        rule_type=rule_type,
        description=description,
    )
