"""Publish averaged percentages to Jira custom fields."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

import httpx

from testrail_jira_sync.config import JiraConfig
from testrail_jira_sync.coverage.metrics import PercentagePair
from testrail_jira_sync.jira.client import IssueUpdateError, JiraClient

logger = logging.getLogger(__name__)


@dataclass
class PublishReport:
    """Outcome of one publishing pass."""

    updated: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        """Number of issues a write was attempted for."""
        return len(self.updated) + len(self.failed)


class CoveragePublisher:
    """Writes coverage and pass rate into the two configured Jira fields."""

    def __init__(self, jira: JiraClient, coverage_field_id: str, pass_rate_field_id: str) -> None:
        self._jira = jira
        self.coverage_field_id = coverage_field_id
        self.pass_rate_field_id = pass_rate_field_id

    @classmethod
    def from_config(cls, jira: JiraClient, config: JiraConfig) -> "CoveragePublisher":
        """Create a publisher for the field ids in ``config``."""
        return cls(jira, config.coverage_field_id, config.pass_rate_field_id)

    def build_fields(self, pair: PercentagePair) -> dict[str, int]:
        """Field payload for one issue."""
        return {
            self.coverage_field_id: pair.coverage,
            self.pass_rate_field_id: pair.pass_rate,
        }

    async def publish(self, averages: Mapping[str, PercentagePair]) -> PublishReport:
        """Update every issue independently.

        A failed update is logged and recorded; the remaining issues are
        still updated.

        Args:
            averages: Averaged percentages by issue key.

        Returns:
            PublishReport listing updated and failed keys.
        """
        report = PublishReport()
        for issue_key in sorted(averages):
            pair = averages[issue_key]
            logger.info(
                "Updating %s with coverage: %d%%, pass rate: %d%%",
                issue_key,
                pair.coverage,
                pair.pass_rate,
            )
            try:
                await self._jira.update_issue_fields(issue_key, self.build_fields(pair))
            except IssueUpdateError as e:
                logger.error("Failed to update %s: HTTP %d: %s", issue_key, e.status_code, e.body)
                report.failed[issue_key] = str(e)
                continue
            except httpx.HTTPError as e:
                logger.error("Error updating %s: %s", issue_key, e)
                report.failed[issue_key] = str(e)
                continue

            logger.debug("Successfully updated %s", issue_key)
            report.updated.append(issue_key)

        if report.failed:
            logger.warning(
                "Updated %d issues, %d failed: %s",
                len(report.updated),
                len(report.failed),
                ", ".join(sorted(report.failed)),
            )
        return report
