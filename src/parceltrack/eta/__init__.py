"""ETA engine: lanes, rules and holiday calendar."""

from parceltrack.eta.calendar import HolidayCalendar
from parceltrack.eta.engine import EtaEngine
from parceltrack.eta.lanes import Lane
from parceltrack.eta.rules import Rule, build_rule

__all__ = ["EtaEngine", "HolidayCalendar", "Lane", "Rule", "build_rule"]
