"""Tracker client implementations.

This package provides two Jira backends behind the TrackerClient protocol:
- JiraRestClient: Jira REST API with email + API token
- JiraCliClient: the `jira` command-line tool with its own login

Use get_tracker_client() to build the backend selected by JIRA_USE_CLI.
"""

from factory.config import Config
from factory.interfaces import TrackerClient
from factory.tracker_clients.base import (
    ASSIGNED_JQL,
    adf_to_text,
    extract_acceptance_criteria,
    parse_issue_payload,
)
from factory.tracker_clients.jira_cli import JiraCliClient
from factory.tracker_clients.jira_rest import JiraRestClient


def get_tracker_client(config: Config) -> TrackerClient:
    """Factory function to get the tracker client selected by the config.

    Args:
        config: Application configuration

    Returns:
        JiraCliClient when jira_use_cli is set, JiraRestClient otherwise
    """
    if config.jira_use_cli:
        return JiraCliClient()
    return JiraRestClient(
        config.jira_base_url,
        config.jira_email,
        config.jira_api_token or "",
    )


__all__ = [
    "ASSIGNED_JQL",
    "JiraCliClient",
    "JiraRestClient",
    "adf_to_text",
    "extract_acceptance_criteria",
    "get_tracker_client",
    "parse_issue_payload",
]
