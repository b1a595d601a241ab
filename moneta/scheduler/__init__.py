"""Recurring transaction scheduling package."""

from moneta.scheduler.clock import (
    Clock,
    fixed_clock,
    from_ms,
    now_ms,
    parse_iso_timestamp,
    to_ms,
)
from moneta.scheduler.expander import (
    ExpansionResult,
    build_occurrence,
    expand_due,
    occurrence_id,
)
from moneta.scheduler.intervals import advance

__all__ = [
    "Clock",
    "ExpansionResult",
    "advance",
    "build_occurrence",
    "expand_due",
    "fixed_clock",
    "from_ms",
    "now_ms",
    "occurrence_id",
    "parse_iso_timestamp",
    "to_ms",
]
