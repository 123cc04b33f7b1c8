"""Test count metrics and percentage calculation.

TestRail plans and runs carry one ``<status>_count`` field per status
(``passed_count``, ``failed_count``, ``untested_count``, ``retest_count``,
``blocked_count``, ``custom_status1_count``, ...). Every such field counts
towards the total.
"""

import math
from dataclasses import dataclass
from typing import Any

COUNT_SUFFIX = "_count"
PASSED_FIELD = "passed_count"
UNTESTED_FIELD = "untested_count"


@dataclass(frozen=True)
class Metrics:
    """Test counts for one record or a sum of records."""

    total: int = 0
    executed: int = 0
    passed: int = 0

    def __add__(self, other: "Metrics") -> "Metrics":
        return Metrics(
            total=self.total + other.total,
            executed=self.executed + other.executed,
            passed=self.passed + other.passed,
        )


@dataclass(frozen=True)
class PercentagePair:
    """Coverage and pass rate as whole percentages (0..100)."""

    coverage: int
    pass_rate: int

    def to_dict(self) -> dict[str, int]:
        """Convert to the persisted ``{"coverage", "passRate"}`` form."""
        return {"coverage": self.coverage, "passRate": self.pass_rate}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PercentagePair":
        """Create from the persisted form."""
        return cls(coverage=int(data["coverage"]), pass_rate=int(data["passRate"]))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values.

    ``round()`` rounds halves to even (``round(2.5) == 2``); percentages here
    round 2.5 up to 3.
    """
    return math.floor(value + 0.5)


def _as_count(value: Any) -> int:
    """Coerce a count field to int; anything unusable counts as 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(number)


def calculate_metrics(record: dict[str, Any]) -> Metrics:
    """Turn a plan or run record into (total, executed, passed).

    Args:
        record: Plan detail or run summary as returned by TestRail.

    Returns:
        Metrics for the record. Malformed fields count as 0.
    """
    total = sum(_as_count(value) for key, value in record.items() if key.endswith(COUNT_SUFFIX))
    passed = _as_count(record.get(PASSED_FIELD))
    untested = _as_count(record.get(UNTESTED_FIELD))
    return Metrics(total=total, executed=total - untested, passed=passed)


def calculate_percentages(metrics: Metrics) -> PercentagePair:
    """Compute coverage and pass rate for summed metrics.

    Both are 0 when there are no tests at all.
    """
    if metrics.total <= 0:
        return PercentagePair(coverage=0, pass_rate=0)
    return PercentagePair(
        coverage=round_half_up(metrics.executed / metrics.total * 100),
        pass_rate=round_half_up(metrics.passed / metrics.total * 100),
    )
