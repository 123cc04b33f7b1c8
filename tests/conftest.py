"""Test fixtures for testrail-jira-sync.

Provides:
- An in-memory TestRail fake that serves paginated endpoints
- A recording Jira fake
- Test configurations and checkpoint stores
"""

import re
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any

import pytest

from testrail_jira_sync.config import Config
from testrail_jira_sync.coverage.publisher import CoveragePublisher
from testrail_jira_sync.jira.client import IssueUpdateError
from testrail_jira_sync.storage.checkpoint import CheckpointStore
from testrail_jira_sync.testrail.http import UpstreamRequestError
from testrail_jira_sync.testrail.rest import RestClient

PAGE_RE = re.compile(r"^(?P<base>.*)&limit=(?P<limit>\d+)&offset=(?P<offset>\d+)$")


def counts(passed: int = 0, failed: int = 0, untested: int = 0, **extra: int) -> dict[str, int]:
    """Build a TestRail record holding status counts."""
    record = {"passed_count": passed, "failed_count": failed, "untested_count": untested}
    record.update({f"{status}_count": value for status, value in extra.items()})
    return record


class FakeTestRail:
    """In-memory TestRail serving the endpoints the sync job reads.

    Bulk endpoints honour ``&limit=&offset=`` and wrap items the way the
    TestRail API does. Every requested endpoint path is recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.projects: list[dict[str, Any]] = []
        self.milestones: dict[int, list[dict[str, Any]]] = {}
        self.plans: dict[tuple[int, int], list[dict[str, Any]]] = {}
        self.plan_details: dict[int, dict[str, Any]] = {}
        self.runs: dict[tuple[int, int], list[dict[str, Any]]] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self._next_id = 1000

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add_project(self, project_id: int) -> None:
        self.projects.append({"id": project_id, "name": f"Project {project_id}"})
        self.milestones.setdefault(project_id, [])

    def add_milestone(
        self,
        project_id: int,
        refs: str | None,
        plans: Iterable[dict[str, Any]] = (),
        runs: Iterable[dict[str, Any]] = (),
        milestone_id: int | None = None,
    ) -> int:
        """Add a milestone whose plans/runs carry the given count records."""
        milestone_id = milestone_id or self._new_id()
        self.milestones.setdefault(project_id, []).append({"id": milestone_id, "refs": refs})

        plan_summaries = []
        for detail in plans:
            plan_id = self._new_id()
            plan_summaries.append({"id": plan_id, "name": f"Plan {plan_id}"})
            self.plan_details[plan_id] = {"id": plan_id, **detail}
        self.plans[(project_id, milestone_id)] = plan_summaries
        self.runs[(project_id, milestone_id)] = [
            {"id": self._new_id(), **run} for run in runs
        ]
        return milestone_id

    def _items_for(self, base: str) -> tuple[str, list[dict[str, Any]]]:
        if base == "get_projects":
            return "projects", self.projects
        match = re.match(r"^get_milestones/(\d+)$", base)
        if match:
            return "milestones", self.milestones.get(int(match.group(1)), [])
        match = re.match(r"^get_(plans|runs)/(\d+)&milestone_id=(\d+)$", base)
        if match:
            kind, project_id, milestone_id = match.groups()
            source = self.plans if kind == "plans" else self.runs
            return kind, source.get((int(project_id), int(milestone_id)), [])
        raise AssertionError(f"Unexpected bulk endpoint: {base}")

    async def fetch(self, endpoint: str) -> Any:
        self.calls.append(endpoint)
        if any(endpoint.startswith(prefix) for prefix in self.failing):
            raise UpstreamRequestError(endpoint, 500, "boom")

        plan_match = re.match(r"^get_plan/(\d+)$", endpoint)
        if plan_match:
            return self.plan_details[int(plan_match.group(1))]

        page = PAGE_RE.match(endpoint)
        assert page, f"Bulk endpoint without pagination: {endpoint}"
        field, items = self._items_for(page.group("base"))
        limit, offset = int(page.group("limit")), int(page.group("offset"))
        chunk = items[offset : offset + limit]
        return {"offset": offset, "limit": limit, "size": len(chunk), field: chunk}


class FakeJira:
    """Records issue updates; keys in ``failing`` are rejected."""

    def __init__(self) -> None:
        self.updates: dict[str, dict[str, Any]] = {}
        self.failing: set[str] = set()

    async def update_issue_fields(self, issue_key: str, fields: dict[str, Any]) -> None:
        if issue_key in self.failing:
            raise IssueUpdateError(issue_key, 400, '{"errorMessages":["Field not on screen"]}')
        self.updates[issue_key] = fields


def make_clock(*readings: float) -> Callable[[], float]:
    """Clock returning ``readings`` in order, then repeating the last one."""

    def generate() -> Iterator[float]:
        yield from readings
        while True:
            yield readings[-1]

    return generate().__next__


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Create test configuration with the checkpoint in a temp dir."""
    return Config.model_validate(
        {
            "testrail": {
                "base_url": "https://example.testrail.io",
                "user": "qa@example.com",
                "token_env": "TEST_TESTRAIL_TOKEN",
                "min_request_interval_seconds": 0,
            },
            "jira": {
                "base_url": "https://example.atlassian.net",
                "email": "qa@example.com",
                "token_env": "TEST_JIRA_TOKEN",
                "coverage_field_id": "customfield_11969",
                "pass_rate_field_id": "customfield_11999",
            },
            "job": {"time_budget_seconds": 840},
            "storage": {"checkpoint_path": str(tmp_path / "data" / "checkpoint.json")},
        }
    )


@pytest.fixture
def testrail() -> FakeTestRail:
    """Create an empty TestRail fake."""
    return FakeTestRail()


@pytest.fixture
def api(testrail: FakeTestRail) -> RestClient:
    """REST client backed by the TestRail fake."""
    return RestClient(testrail)


@pytest.fixture
def jira() -> FakeJira:
    """Create a recording Jira fake."""
    return FakeJira()


@pytest.fixture
def publisher(jira: FakeJira, test_config: Config) -> CoveragePublisher:
    """Publisher writing to the Jira fake."""
    return CoveragePublisher.from_config(jira, test_config.jira)  # type: ignore[arg-type]


@pytest.fixture
def store(test_config: Config) -> CheckpointStore:
    """Checkpoint store in a temp dir."""
    return CheckpointStore(test_config.storage.checkpoint_path)
