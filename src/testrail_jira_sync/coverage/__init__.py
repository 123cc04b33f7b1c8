"""Coverage aggregation, averaging and publishing."""

from testrail_jira_sync.coverage.averaging import (
    PercentageHistory,
    average_pairs,
    average_percentages,
    collect_batch,
    merge_percentages,
)
from testrail_jira_sync.coverage.metrics import (
    Metrics,
    PercentagePair,
    calculate_metrics,
    calculate_percentages,
    round_half_up,
)
from testrail_jira_sync.coverage.milestones import (
    MilestoneResult,
    aggregate_milestone,
    parse_refs,
)
from testrail_jira_sync.coverage.publisher import CoveragePublisher, PublishReport

__all__ = [
    "CoveragePublisher",
    "Metrics",
    "MilestoneResult",
    "PercentageHistory",
    "PercentagePair",
    "PublishReport",
    "aggregate_milestone",
    "average_pairs",
    "average_percentages",
    "calculate_metrics",
    "calculate_percentages",
    "collect_batch",
    "merge_percentages",
    "parse_refs",
    "round_half_up",
]
