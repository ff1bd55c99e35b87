"""Abstract interfaces for the pipeline's collaborators."""

from factory.interfaces.collaborators import CodeHost, Implementer, WorkspaceClient
from factory.interfaces.tracker import (
    ACCEPTED_TYPES,
    CLOSED_STATUSES,
    Comment,
    Item,
    TrackerClient,
)

__all__ = [
    "ACCEPTED_TYPES",
    "CLOSED_STATUSES",
    "CodeHost",
    "Comment",
    "Implementer",
    "Item",
    "TrackerClient",
    "WorkspaceClient",
]
