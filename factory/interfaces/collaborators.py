"""Protocols for the workspace, implementer and code host collaborators."""

from pathlib import Path
from typing import Protocol, runtime_checkable

from factory.interfaces.tracker import Item


@runtime_checkable
class WorkspaceClient(Protocol):
    """A single local working tree that the pipeline branches and commits in."""

    @property
    def path(self) -> Path:
        """Root of the working tree."""
        ...

    def ensure_cloned(self) -> None:
        """Clone the repository if the working tree does not exist yet."""
        ...

    def create_or_checkout_branch(self, key: str, title: str) -> str:
        """Update the default branch, then switch to the item branch.

        Returns:
            The branch name
        """
        ...

    def has_uncommitted_changes(self) -> bool:
        """Check whether the working tree has anything to commit."""
        ...

    def commit_and_push(self, branch: str, message: str) -> None:
        """Stage everything, commit and push the branch upstream."""
        ...


@runtime_checkable
class Implementer(Protocol):
    """Runs the code-generation tool against a working tree."""

    def run(self, workspace_root: Path, item: Item, timeout: int) -> None:
        """Implement the item inside workspace_root.

        Raises:
            ClaudeTimeoutError: If the run exceeds timeout seconds; the
                underlying process is killed before raising
            ClaudeRunnerError: If the run fails
        """
        ...


@runtime_checkable
class CodeHost(Protocol):
    """Opens change requests (pull requests)."""

    def open_change_request(
        self, title: str, body: str, source_branch: str, target_branch: str
    ) -> str:
        """Open a change request.

        Returns:
            URL of the new change request
        """
        ...
