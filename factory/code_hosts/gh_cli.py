"""Code host backed by the GitHub CLI (`gh`)."""

import os
import subprocess

from factory.backoff import retry_with_backoff
from factory.errors import CodeHostError, NetworkError
from factory.logger import get_logger

logger = get_logger(__name__)

GH_TIMEOUT = 120

# Lowercase substrings of gh stderr that mark a failure as transient
NETWORK_ERROR_PATTERNS = [
    "tls handshake timeout",
    "connection timeout",
    "network error",
    "connection refused",
    "temporary failure",
    "i/o timeout",
    "dial tcp",
    "no such host",
    "error connecting to",
    "http 502",
    "http 503",
    "http 504",
]


class GhCliCodeHost:
    """Opens pull requests with `gh pr create`.

    Network failures are retried up to three attempts with exponential
    backoff; every other failure is raised at once.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None = None,
        max_attempts: int = 3,
        timeout: int = GH_TIMEOUT,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.token = token
        self.max_attempts = max_attempts
        self.timeout = timeout

    def _create(self, title: str, body: str, source_branch: str, target_branch: str) -> str:
        cmd = [
            "gh",
            "pr",
            "create",
            "--repo",
            f"{self.owner}/{self.repo}",
            "--base",
            target_branch,
            "--head",
            source_branch,
            "--title",
            title,
            "--body",
            body,
        ]
        env = dict(os.environ)
        if self.token:
            env["GITHUB_TOKEN"] = self.token

        logger.debug(f"Running gh pr create for {source_branch} -> {target_branch}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.CalledProcessError as e:
            error_output = (e.stderr or "").strip()
            if any(pattern in error_output.lower() for pattern in NETWORK_ERROR_PATTERNS):
                raise NetworkError(f"gh network error: {error_output}") from e
            raise CodeHostError(f"gh pr create failed: {error_output}") from e
        except subprocess.TimeoutExpired as e:
            raise NetworkError(f"gh pr create timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise CodeHostError("gh is not installed or not on PATH (https://cli.github.com/)") from e

        # gh prints the PR URL as the last line of stdout
        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not lines:
            raise CodeHostError("gh pr create returned no PR URL")
        return lines[-1]

    def open_change_request(
        self, title: str, body: str, source_branch: str, target_branch: str
    ) -> str:
        pr_url = retry_with_backoff(
            lambda: self._create(title, body, source_branch, target_branch),
            max_attempts=self.max_attempts,
            description="gh pr create",
        )
        logger.info(f"Created PR: {pr_url}")
        return pr_url
