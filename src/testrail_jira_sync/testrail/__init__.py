"""TestRail API clients and utilities."""

from testrail_jira_sync.testrail.http import (
    TestRailClient,
    UpstreamRequestError,
)
from testrail_jira_sync.testrail.ratelimit import RequestSpacer
from testrail_jira_sync.testrail.rest import RestClient

__all__ = [
    "RequestSpacer",
    "RestClient",
    "TestRailClient",
    "UpstreamRequestError",
]
