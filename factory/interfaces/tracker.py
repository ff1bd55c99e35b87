"""Abstract tracker client protocol and data types.

This module defines the interface that all tracker integrations
must implement (Jira REST, Jira CLI, ...).
"""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

# Item types the pipeline accepts (compared case-insensitively)
ACCEPTED_TYPES = frozenset({"bug", "task", "story", "sub-task"})

# Statuses that mean the item needs no more work (compared case-insensitively)
CLOSED_STATUSES = frozenset({"done", "closed", "resolved", "cancelled"})


@dataclass(frozen=True)
class Comment:
    """A comment on a tracker item.

    Attributes:
        author: Display name of the comment author
        created: Creation timestamp as reported by the tracker
        body: Comment body as plain text
    """

    author: str
    created: str
    body: str


@dataclass(frozen=True)
class Item:
    """A unit of work fetched from the tracker.

    Items are built fresh on every fetch and never persisted.

    Attributes:
        key: Unique, stable identifier (e.g., "PROJ-123")
        title: Item summary
        description: Item description as plain text
        type: Issue type name (e.g., "Bug", "Story")
        priority: Priority name
        status: Workflow status name
        labels: Labels on the item
        components: Component names
        acceptance_criteria: Text derived from the description
        comments: Comments in tracker order
    """

    key: str
    title: str = ""
    description: str = ""
    type: str = ""
    priority: str = ""
    status: str = ""
    labels: tuple[str, ...] = ()
    components: tuple[str, ...] = ()
    acceptance_criteria: str = ""
    comments: tuple[Comment, ...] = field(default_factory=tuple)

    def is_valid_type(self) -> bool:
        """Check whether the item type is one the pipeline accepts."""
        return self.type.strip().lower() in ACCEPTED_TYPES

    def is_closed(self) -> bool:
        """Check whether the item status is a closed status."""
        return self.status.strip().lower() in CLOSED_STATUSES


@runtime_checkable
class TrackerClient(Protocol):
    """Protocol defining the interface for tracker clients."""

    def fetch_item(self, key: str) -> Item:
        """Fetch a single item with its comments.

        Raises:
            NotFoundError: If the item does not exist
            TrackerError: If the tracker cannot be reached
        """
        ...

    def fetch_assigned(self) -> list[Item]:
        """Fetch open items of accepted types assigned to the current user.

        Filtering happens server-side; returned items may be partially
        populated (key and title at minimum).
        """
        ...

    def add_comment(self, key: str, text: str) -> None:
        """Post a comment on an item."""
        ...

    def transition(self, key: str, target_status: str) -> None:
        """Move an item to the named status.

        Does nothing when the item has no transition with that name.
        """
        ...
