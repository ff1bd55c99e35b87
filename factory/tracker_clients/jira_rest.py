"""Jira Cloud REST API client.

Talks to the v3 REST API with basic auth (account email + API token).
"""

from typing import Any

import requests

from factory.errors import NetworkError, NotFoundError, TrackerError
from factory.interfaces import Item
from factory.logger import get_logger
from factory.tracker_clients.base import ASSIGNED_JQL, ISSUE_FIELDS, parse_issue_payload

logger = get_logger(__name__)

API_PREFIX = "/rest/api/3"
REQUEST_TIMEOUT = 30
SEARCH_MAX_RESULTS = 20


class JiraRestClient:
    """Tracker client backed by the Jira REST API."""

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        session: requests.Session | None = None,
        timeout: int = REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (email, api_token)
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        logger.debug(f"JiraRestClient initialized for {self.base_url}")

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and decode the JSON response.

        Raises:
            NetworkError: On connection failures and timeouts
            NotFoundError: On 404 responses
            TrackerError: On any other unsuccessful response
        """
        url = f"{self.base_url}{API_PREFIX}{path}"
        logger.debug(f"Jira {method} {url}")

        try:
            response = self.session.request(
                method, url, params=params, json=payload, timeout=self.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkError(f"Jira API network error: {e}") from e
        except requests.RequestException as e:
            raise TrackerError(f"Jira request failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Jira resource not found: {path}")
        if response.status_code in (401, 403):
            raise TrackerError(
                f"Jira authentication failed ({response.status_code}). "
                f"Check JIRA_EMAIL and JIRA_API_TOKEN"
            )
        if response.status_code >= 400:
            raise TrackerError(
                f"Jira API returned {response.status_code} for {method} {path}: "
                f"{response.text[:200]}"
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TrackerError(f"Invalid JSON response from Jira: {e}") from e

    def fetch_item(self, key: str) -> Item:
        data = self._request("GET", f"/issue/{key}", params={"fields": ISSUE_FIELDS})
        return parse_issue_payload(data or {}, key=key)

    def fetch_assigned(self) -> list[Item]:
        data = self._request(
            "GET",
            "/search",
            params={
                "jql": ASSIGNED_JQL,
                "fields": ISSUE_FIELDS,
                "maxResults": SEARCH_MAX_RESULTS,
            },
        )
        issues = (data or {}).get("issues") or []
        items = [parse_issue_payload(issue) for issue in issues]
        logger.debug(f"Fetched {len(items)} assigned items")
        return items

    def add_comment(self, key: str, text: str) -> None:
        # Comment bodies are Atlassian Document Format in API v3
        body = {
            "type": "doc",
            "version": 1,
            "content": [
                {"type": "paragraph", "content": [{"type": "text", "text": text}]}
            ],
        }
        self._request("POST", f"/issue/{key}/comment", payload={"body": body})
        logger.debug(f"Added comment to {key}")

    def transition(self, key: str, target_status: str) -> None:
        data = self._request("GET", f"/issue/{key}/transitions")
        transitions = (data or {}).get("transitions") or []

        target = target_status.strip().lower()
        for candidate in transitions:
            names = {
                (candidate.get("name") or "").lower(),
                ((candidate.get("to") or {}).get("name") or "").lower(),
            }
            if target in names:
                self._request(
                    "POST",
                    f"/issue/{key}/transitions",
                    payload={"transition": {"id": candidate["id"]}},
                )
                logger.info(f"Transitioned {key} to '{target_status}'")
                return

        logger.debug(f"No transition to '{target_status}' available for {key}")
