"""
Workspace management module for factory.

Provides GitWorkspace, which owns the single local working tree the pipeline
clones once and then branches, commits and pushes in.
"""

import re
import subprocess
from pathlib import Path

from factory.errors import WorkspaceError
from factory.logger import get_logger

logger = get_logger(__name__)

GIT_TIMEOUT: int | None = None

# Identity used for commits made by the pipeline
GIT_USER_EMAIL = "automation@jira-automation"
GIT_USER_NAME = "Jira Automation"

BRANCH_PREFIX = "feature/"
MAX_SLUG_LENGTH = 40

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]+")


def slugify(title: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """
    Turn an item title into a branch-safe slug.

    Lowercases, collapses every run of non-alphanumerics into a single "-",
    strips leading/trailing "-" and truncates to max_length characters.

    Examples:
        "Fix: Login Bug!!" -> "fix-login-bug"
        "" -> ""
    """
    slug = _NON_ALNUM_RE.sub("-", title.lower()).strip("-")
    return slug[:max_length]


def make_branch_name(key: str, title: str) -> str:
    """Build the branch name for an item: feature/<key>-<slug>."""
    return f"{BRANCH_PREFIX}{key}-{slugify(title)}"


class GitWorkspace:
    """
    Manages the local clone of the target repository.

    The working tree is shared by every pipeline run, so callers must not
    run two pipelines against the same GitWorkspace at once.
    """

    def __init__(
        self,
        path: Path,
        clone_url: str,
        default_branch: str = "main",
        timeout: int | None = GIT_TIMEOUT,
    ):
        """
        Initialize the workspace.

        Args:
            path: Location of the working tree (cloned on first use)
            clone_url: Git URL to clone from
            default_branch: Branch that item branches start from
            timeout: Per-command timeout in seconds, None for no limit
        """
        self._path = Path(path).resolve()
        self.clone_url = clone_url
        self.default_branch = default_branch
        self.timeout = timeout

        logger.debug(f"GitWorkspace initialized at {self._path}")

    @property
    def path(self) -> Path:
        return self._path

    def _run_git_command(
        self, args: list[str], cwd: Path | None = None, check: bool = True
    ) -> subprocess.CompletedProcess[str]:
        """
        Run `git <args>` in cwd (the working tree by default).

        Non-zero exits raise WorkspaceError carrying git's stderr unless
        check is False. Timeouts and a missing git binary always raise.
        """
        cwd = cwd or self._path
        cmd = ["git"] + args
        logger.debug(f"Running git command: {' '.join(cmd)} in {cwd}")

        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=check,
                timeout=self.timeout,
            )

            for stream, text in (("out", result.stdout), ("err", result.stderr)):
                if text and text.strip():
                    logger.debug(f"git std{stream}: {text.strip()}")

            return result

        except subprocess.CalledProcessError as e:
            error_msg = f"git {args[0]} failed (exit {e.returncode})"
            detail = (e.stderr or e.stdout or "").strip()
            if detail:
                error_msg += f": {detail}"
            logger.debug(error_msg)
            raise WorkspaceError(error_msg) from e
        except subprocess.TimeoutExpired as e:
            raise WorkspaceError(f"git {args[0]} timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise WorkspaceError("git is not installed or not in PATH") from e

    def _validate_key(self, key: str) -> None:
        """
        Reject item keys that would produce an unusable branch name.

        Raises:
            WorkspaceError: If the key is empty or contains forbidden characters
        """
        if not key or any(c.isspace() for c in key):
            raise WorkspaceError(f"Invalid item key for branch name: '{key}'")
        forbidden = ["/", "\\", "..", "~", "^", ":"]
        for pattern in forbidden:
            if pattern in key:
                raise WorkspaceError(
                    f"Invalid item key '{key}': contains forbidden branch component '{pattern}'"
                )

    def _configure_identity(self) -> None:
        self._run_git_command(["config", "user.email", GIT_USER_EMAIL])
        self._run_git_command(["config", "user.name", GIT_USER_NAME])

    def ensure_cloned(self) -> None:
        """
        Ensure the repository is cloned and the commit identity is set.

        Raises:
            WorkspaceError: If the path exists but is not a git repository,
                or if the clone fails
        """
        if self._path.exists():
            if not (self._path / ".git").exists():
                raise WorkspaceError(
                    f"Directory exists but is not a git repository: {self._path}"
                )
            logger.debug(f"Repository already cloned at {self._path}")
        else:
            logger.info(f"Cloning repository '{self.clone_url}' to {self._path}")
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._run_git_command(
                ["clone", self.clone_url, str(self._path)], cwd=self._path.parent
            )
            logger.info(f"Successfully cloned repository to {self._path}")

        self._configure_identity()

    def _branch_exists(self, branch: str) -> bool:
        """Check local and remote-tracking branches for an exact name match."""
        result = self._run_git_command(["branch", "-a", "--format=%(refname:short)"])
        for line in result.stdout.splitlines():
            name = line.strip()
            if name.startswith("origin/"):
                name = name[len("origin/") :]
            if name == branch:
                return True
        return False

    def discard_local_changes(self) -> None:
        """Drop uncommitted edits and untracked files left by an earlier item."""
        if self.has_uncommitted_changes():
            logger.warning(f"Discarding uncommitted changes in {self._path}")
            self._run_git_command(["reset", "--hard"])
            self._run_git_command(["clean", "-fd"])

    def pull_default_branch(self) -> None:
        """Check out the default branch and fast-forward it from origin."""
        self._run_git_command(["checkout", self.default_branch])
        self._run_git_command(["pull", "origin", self.default_branch])

    def create_or_checkout_branch(self, key: str, title: str) -> str:
        """
        Discard leftovers from a previous item, update the default branch,
        then switch to the item branch.

        The branch is created from the default branch unless it already
        exists locally or on origin, in which case it is checked out as is.

        Returns:
            The branch name

        Raises:
            WorkspaceError: If any git command fails
        """
        self._validate_key(key)
        branch = make_branch_name(key, title)

        self.discard_local_changes()
        self.pull_default_branch()

        if self._branch_exists(branch):
            logger.info(f"Checking out existing branch '{branch}'")
            self._run_git_command(["checkout", branch])
        else:
            logger.info(f"Creating branch '{branch}' from '{self.default_branch}'")
            self._run_git_command(["checkout", "-b", branch])

        return branch

    def has_uncommitted_changes(self) -> bool:
        """Check whether the working tree has staged, unstaged or untracked changes."""
        result = self._run_git_command(["status", "--porcelain"])
        return bool(result.stdout.strip())

    def commit_and_push(self, branch: str, message: str) -> None:
        """
        Stage everything, commit and push the branch upstream.

        Raises:
            WorkspaceError: If any git command fails
        """
        self._run_git_command(["add", "-A"])
        self._run_git_command(["commit", "-m", message])
        self._run_git_command(["push", "-u", "origin", branch])
        logger.info(f"Pushed branch '{branch}' to origin")
