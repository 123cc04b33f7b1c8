"""Resumable, time-boxed sync orchestration.

One invocation walks the sorted TestRail project list from the stored
cursor, aggregates every milestone of each project, and stops at the first
project boundary after the time budget is spent. The batch is merged into
the cycle's percentage history, averaged, published to Jira, and only then
is the new cursor saved together with the merged history in one write.

If anything fatal happens before that write, the stored checkpoint is left
as it was and the next scheduled invocation redoes the same batch.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from testrail_jira_sync.config import Config
from testrail_jira_sync.coverage.averaging import (
    average_percentages,
    collect_batch,
    merge_percentages,
)
from testrail_jira_sync.coverage.metrics import PercentagePair
from testrail_jira_sync.coverage.milestones import MilestoneResult, aggregate_milestone
from testrail_jira_sync.coverage.publisher import CoveragePublisher, PublishReport
from testrail_jira_sync.jira.client import JiraClient
from testrail_jira_sync.storage.checkpoint import (
    CheckpointLockedError,
    CheckpointState,
    CheckpointStore,
)
from testrail_jira_sync.testrail.http import TestRailClient
from testrail_jira_sync.testrail.rest import RestClient

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Raised when the sync cannot proceed with the data it received."""


@dataclass
class SyncResult:
    """Summary of one invocation."""

    start_index: int
    next_index: int
    project_count: int
    projects_processed: int = 0
    milestones_processed: int = 0
    milestones_skipped: int = 0
    stopped_by_budget: bool = False
    elapsed_seconds: float = 0.0
    averages: dict[str, PercentagePair] = field(default_factory=dict)
    publish_report: PublishReport = field(default_factory=PublishReport)
    dry_run: bool = False

    @property
    def cycle_complete(self) -> bool:
        """True when the last project of the cycle was processed."""
        return self.next_index >= self.project_count


@dataclass
class InvocationResult:
    """Status/body pair returned to the scheduler."""

    status_code: int
    body: str
    result: SyncResult | None = None

    @property
    def ok(self) -> bool:
        """True for a successful invocation."""
        return 200 <= self.status_code < 300


def _sorted_project_ids(projects: list[dict[str, Any]]) -> list[int]:
    """Project ids in ascending order, the stable resumption order."""
    ids = []
    for project in projects:
        project_id = project.get("id") if isinstance(project, dict) else None
        if isinstance(project_id, bool) or not isinstance(project_id, int):
            msg = f"TestRail returned a project without an integer id: {project!r}"
            raise SyncError(msg)
        ids.append(project_id)
    return sorted(ids)


async def process_project(api: RestClient, project_id: int) -> tuple[list[MilestoneResult], int]:
    """Aggregate every milestone of a project.

    Args:
        api: TestRail REST client.
        project_id: Project to process.

    Returns:
        Tuple of (milestone results, number of milestones skipped for lack of refs).
    """
    logger.info("Processing project %d", project_id)
    milestones = await api.list_milestones(project_id)

    results: list[MilestoneResult] = []
    skipped = 0
    for milestone in milestones:
        result = await aggregate_milestone(api, project_id, milestone)
        if result is None:
            skipped += 1
            continue
        results.append(result)

    return results, skipped


async def run_sync(
    config: Config,
    api: RestClient,
    publisher: CoveragePublisher | None,
    store: CheckpointStore,
    clock: Callable[[], float] = time.monotonic,
    dry_run: bool = False,
) -> SyncResult:
    """Run one resumable pass over the TestRail projects.

    Args:
        config: Application configuration.
        api: TestRail REST client.
        publisher: Jira publisher. May be None only for a dry run.
        store: Checkpoint store. The caller holds its lock.
        clock: Monotonic clock used for the time budget.
        dry_run: Compute and log averages without publishing or saving.

    Returns:
        SyncResult describing the pass.

    Raises:
        UpstreamRequestError: If a TestRail request fails.
        SyncError: If TestRail returns unusable project data.
        CheckpointError: If the stored checkpoint is corrupted.
    """
    if publisher is None and not dry_run:
        msg = "A publisher is required unless dry_run is set"
        raise ValueError(msg)

    started_at = clock()
    budget = config.job.time_budget_seconds

    state = store.load()
    project_ids = _sorted_project_ids(await api.list_projects())

    start_index = state.last_index
    if start_index >= len(project_ids):
        if start_index > 0:
            logger.info(
                "Cursor %d is past the %d projects, starting a new cycle",
                start_index,
                len(project_ids),
            )
        start_index = 0

    # A new cycle starts from an empty history; it replaces the stored one
    # in the single write at the end of the run.
    stored_history = {} if start_index == 0 else state.jira_percentages
    if start_index == 0:
        logger.info("Starting a new cycle over %d projects", len(project_ids))
    else:
        logger.info("Resuming at project %d of %d", start_index + 1, len(project_ids))

    result = SyncResult(
        start_index=start_index,
        next_index=start_index,
        project_count=len(project_ids),
        dry_run=dry_run,
    )
    contributions: list[dict[str, PercentagePair]] = []

    index = start_index
    while index < len(project_ids):
        milestone_results, skipped = await process_project(api, project_ids[index])
        contributions.extend(r.pairs_by_key() for r in milestone_results)
        result.milestones_processed += len(milestone_results)
        result.milestones_skipped += skipped
        result.projects_processed += 1
        index += 1

        elapsed = clock() - started_at
        if elapsed > budget:
            if index < len(project_ids):
                result.stopped_by_budget = True
                logger.warning(
                    "Time budget of %.0fs spent after %.1fs; stopping before project %d of %d",
                    budget,
                    elapsed,
                    index + 1,
                    len(project_ids),
                )
            break

    result.next_index = index

    merged = merge_percentages(stored_history, collect_batch(contributions))
    result.averages = average_percentages(merged)

    if dry_run:
        for issue_key in sorted(result.averages):
            pair = result.averages[issue_key]
            logger.info(
                "[dry run] %s coverage: %d%%, pass rate: %d%%",
                issue_key,
                pair.coverage,
                pair.pass_rate,
            )
    else:
        assert publisher is not None
        result.publish_report = await publisher.publish(result.averages)
        store.save(CheckpointState(last_index=index, jira_percentages=merged))

    result.elapsed_seconds = clock() - started_at
    logger.info(
        "Processed %d projects (%d milestones, %d skipped) in %.1fs; next cursor %d/%d",
        result.projects_processed,
        result.milestones_processed,
        result.milestones_skipped,
        result.elapsed_seconds,
        result.next_index,
        result.project_count,
    )
    return result


async def run_scheduled(config: Config, dry_run: bool = False) -> InvocationResult:
    """Scheduled-job entry point.

    Never raises: failures are logged and reported through the status code
    (200 success, 409 checkpoint locked by another run, 500 anything else).

    Args:
        config: Application configuration.
        dry_run: Compute and log averages without publishing or saving.

    Returns:
        InvocationResult for the scheduler.
    """
    logger.info("Starting scheduled task")
    store = CheckpointStore(config.storage.checkpoint_path)

    try:
        with store:
            async with TestRailClient.from_config(config.testrail) as testrail:
                api = RestClient(testrail, page_size=config.testrail.page_size)
                if dry_run:
                    # No Jira client, so no Jira token is needed
                    result = await run_sync(config, api, None, store, dry_run=True)
                else:
                    async with JiraClient.from_config(config.jira) as jira:
                        publisher = CoveragePublisher.from_config(jira, config.jira)
                        result = await run_sync(config, api, publisher, store)
                logger.info("TestRail requests made: %d", testrail.spacer.requests_made)

    except CheckpointLockedError as e:
        logger.error("Scheduled task not started: %s", e)
        return InvocationResult(status_code=409, body=str(e))
    except Exception:
        logger.exception("Scheduled task failed")
        return InvocationResult(status_code=500, body="Error processing scheduled task")

    logger.info("Scheduled task completed")
    return InvocationResult(
        status_code=200,
        body="Scheduled task completed successfully",
        result=result,
    )
