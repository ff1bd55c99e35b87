"""Jira client backed by the `jira` command-line tool.

Relies on the CLI's own login; no credentials pass through factory.
"""

import json
import re
import subprocess

from factory.errors import NetworkError, NotFoundError, TrackerError
from factory.interfaces import Item
from factory.logger import get_logger
from factory.tracker_clients.base import ASSIGNED_JQL, parse_issue_payload

logger = get_logger(__name__)

CLI_TIMEOUT = 60

NETWORK_ERROR_PATTERNS = [
    "tls handshake timeout",
    "connection timeout",
    "connection refused",
    "connection reset",
    "temporary failure",
    "i/o timeout",
    "dial tcp",
    "no such host",
]

NOT_FOUND_PATTERNS = ["404", "does not exist", "issue not found"]

MISSING_TRANSITION_PATTERNS = ["invalid transition", "no transition", "transition not found"]

# "PROJ-123: summary" lines printed by `jira list`
_LIST_LINE_RE = re.compile(r"^\s*([A-Z][A-Z0-9_]*-\d+):?\s*(.*)$")


class JiraCliClient:
    """Tracker client that shells out to the `jira` CLI."""

    def __init__(self, executable: str = "jira", timeout: int = CLI_TIMEOUT) -> None:
        self.executable = executable
        self.timeout = timeout

    def _run(self, args: list[str]) -> str:
        """Run a jira CLI command.

        Returns:
            Command stdout

        Raises:
            NetworkError: If the failure looks like a connectivity problem
            NotFoundError: If the item does not exist
            TrackerError: For any other failure
        """
        cmd = [self.executable] + args
        logger.debug(f"Running command: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
            return result.stdout
        except subprocess.CalledProcessError as e:
            error_output = (e.stderr or e.stdout or "").strip()
            lowered = error_output.lower()
            logger.debug(f"jira exited with code {e.returncode}: {error_output}")
            if any(pattern in lowered for pattern in NETWORK_ERROR_PATTERNS):
                raise NetworkError(f"Jira CLI network error: {error_output}") from e
            if any(pattern in lowered for pattern in NOT_FOUND_PATTERNS):
                raise NotFoundError(f"Jira item not found: {error_output}") from e
            raise TrackerError(
                f"jira {args[0]} failed (exit {e.returncode}): {error_output}"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise TrackerError(f"jira {args[0]} timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise TrackerError(
                f"Jira CLI ({self.executable}) is not installed or not in PATH"
            ) from e

    def fetch_item(self, key: str) -> Item:
        output = self._run(["view", key, "-t", "json"])
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise TrackerError(f"Invalid JSON from jira view {key}: {e}") from e
        return parse_issue_payload(data, key=key)

    def fetch_assigned(self) -> list[Item]:
        output = self._run(["list", "-q", ASSIGNED_JQL])
        items = []
        for line in output.splitlines():
            match = _LIST_LINE_RE.match(line)
            if match:
                items.append(Item(key=match.group(1), title=match.group(2).strip()))
        logger.debug(f"Fetched {len(items)} assigned items")
        return items

    def add_comment(self, key: str, text: str) -> None:
        self._run(["comment", key, "--noedit", "-m", text])
        logger.debug(f"Added comment to {key}")

    def transition(self, key: str, target_status: str) -> None:
        try:
            self._run(["transition", target_status, key, "--noedit"])
        except NotFoundError:
            raise
        except TrackerError as e:
            message = str(e).lower()
            if any(pattern in message for pattern in MISSING_TRANSITION_PATTERNS):
                logger.debug(f"No transition to '{target_status}' available for {key}")
                return
            raise
        logger.info(f"Transitioned {key} to '{target_status}'")
