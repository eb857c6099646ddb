"""Issue tracker adapters."""

from .jira_client import JiraClient

__all__ = [
    "JiraClient",
]
