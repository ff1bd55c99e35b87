"""GitHub REST API code host."""

import requests

from factory.backoff import retry_with_backoff
from factory.errors import CodeHostError, NetworkError
from factory.logger import get_logger

logger = get_logger(__name__)

REQUEST_TIMEOUT = 30


class GitHubCodeHost:
    """Opens pull requests through the GitHub REST API with a bearer token.

    Connection failures and timeouts are retried up to max_attempts times
    with exponential backoff; error responses are raised at once.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        api_url: str = "https://api.github.com",
        max_attempts: int = 3,
        timeout: int = REQUEST_TIMEOUT,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.max_attempts = max_attempts
        self.timeout = timeout

    def _create(self, title: str, body: str, source_branch: str, target_branch: str) -> str:
        """POST one pull request and return its html_url.

        Raises:
            NetworkError: On connection failures and timeouts
            CodeHostError: On a non-201 response or a response without a URL
        """
        url = f"{self.api_url}/repos/{self.owner}/{self.repo}/pulls"
        payload = {
            "title": title,
            "body": body,
            "head": source_branch,
            "base": target_branch,
        }
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }

        logger.debug(f"Creating PR {source_branch} -> {target_branch} in {self.owner}/{self.repo}")
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkError(f"GitHub API network error: {e}") from e
        except requests.RequestException as e:
            raise CodeHostError(f"GitHub request failed: {e}") from e

        if response.status_code != 201:
            message = response.text[:300]
            try:
                message = response.json().get("message", message)
            except ValueError:
                pass
            raise CodeHostError(
                f"GitHub API returned {response.status_code} creating pull request: {message}"
            )

        pr_url = response.json().get("html_url")
        if not pr_url:
            raise CodeHostError("GitHub API response has no html_url")
        return pr_url

    def open_change_request(
        self, title: str, body: str, source_branch: str, target_branch: str
    ) -> str:
        pr_url = retry_with_backoff(
            lambda: self._create(title, body, source_branch, target_branch),
            max_attempts=self.max_attempts,
            description="GitHub pull request creation",
        )
        logger.info(f"Created PR: {pr_url}")
        return pr_url
