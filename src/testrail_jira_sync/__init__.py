"""Sync TestRail coverage and pass rates into Jira custom fields."""

__version__ = "0.1.0"
