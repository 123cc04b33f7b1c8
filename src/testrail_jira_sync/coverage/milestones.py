"""Milestone aggregation.

A milestone's ``refs`` field lists the Jira issue keys it covers. All test
plans and standalone runs of the milestone are summed into one set of
metrics, and the resulting percentages are attributed to every referenced
issue.
"""

import logging
from dataclasses import dataclass
from typing import Any

from testrail_jira_sync.coverage.metrics import (
    Metrics,
    PercentagePair,
    calculate_metrics,
    calculate_percentages,
)
from testrail_jira_sync.testrail.rest import RestClient

logger = logging.getLogger(__name__)


def parse_refs(refs: str | None) -> frozenset[str]:
    """Parse a comma separated refs field into a set of issue keys.

    Tokens are trimmed and empty tokens dropped. Case is kept as written.

    Example:
        >>> sorted(parse_refs(" ABC-1, ABC-1 ,abc-2,, "))
        ['ABC-1', 'abc-2']
    """
    if not refs:
        return frozenset()
    return frozenset(token.strip() for token in refs.split(",") if token.strip())


@dataclass(frozen=True)
class MilestoneResult:
    """Aggregated metrics for one milestone and the issues it references."""

    milestone_id: int
    issue_keys: frozenset[str]
    metrics: Metrics
    percentages: PercentagePair
    plans: int = 0
    runs: int = 0

    def pairs_by_key(self) -> dict[str, PercentagePair]:
        """The milestone's percentages, once per referenced issue key."""
        return {key: self.percentages for key in self.issue_keys}


async def _sum_plans(api: RestClient, project_id: int, milestone_id: int) -> tuple[Metrics, int]:
    plans = await api.list_plans(project_id, milestone_id)
    metrics = Metrics()
    for plan in plans:
        logger.debug("Fetching plan %s", plan.get("id"))
        detail = await api.get_plan(plan["id"])
        metrics += calculate_metrics(detail)
    return metrics, len(plans)


async def _sum_runs(api: RestClient, project_id: int, milestone_id: int) -> tuple[Metrics, int]:
    # Run summaries carry their counts inline
    runs = await api.list_runs(project_id, milestone_id)
    metrics = Metrics()
    for run in runs:
        metrics += calculate_metrics(run)
    return metrics, len(runs)


async def aggregate_milestone(
    api: RestClient,
    project_id: int,
    milestone: dict[str, Any],
) -> MilestoneResult | None:
    """Aggregate all plans and runs of a milestone.

    Args:
        api: TestRail REST client.
        project_id: Project the milestone belongs to.
        milestone: Milestone record with ``id`` and ``refs``.

    Returns:
        MilestoneResult, or None when the milestone references no issues
        (nothing is fetched in that case).

    Raises:
        UpstreamRequestError: If any TestRail request fails.
    """
    milestone_id = milestone["id"]
    issue_keys = parse_refs(milestone.get("refs"))
    if not issue_keys:
        logger.debug("Milestone %s has no refs, skipping", milestone_id)
        return None

    logger.info(
        "Processing milestone %s with refs: %s", milestone_id, ", ".join(sorted(issue_keys))
    )

    plan_metrics, plan_count = await _sum_plans(api, project_id, milestone_id)
    run_metrics, run_count = await _sum_runs(api, project_id, milestone_id)
    metrics = plan_metrics + run_metrics
    percentages = calculate_percentages(metrics)

    logger.debug(
        "Milestone %s: %d plans, %d runs, total=%d executed=%d passed=%d -> %d%%/%d%%",
        milestone_id,
        plan_count,
        run_count,
        metrics.total,
        metrics.executed,
        metrics.passed,
        percentages.coverage,
        percentages.pass_rate,
    )

    return MilestoneResult(
        milestone_id=milestone_id,
        issue_keys=issue_keys,
        metrics=metrics,
        percentages=percentages,
        plans=plan_count,
        runs=run_count,
    )
