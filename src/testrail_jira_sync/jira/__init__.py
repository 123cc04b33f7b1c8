"""Jira API client."""

from testrail_jira_sync.jira.client import IssueUpdateError, JiraClient

__all__ = [
    "IssueUpdateError",
    "JiraClient",
]
