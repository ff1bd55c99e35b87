"""Exception hierarchy for factory.

Every error raised by factory code derives from FactoryError so callers can
catch the whole family in one place.

Exception Hierarchy:
    FactoryError (base)
    ├── ConfigError - configuration loading/validation failures
    ├── ValidationError - item is not eligible for processing
    ├── CollaboratorError (base for external tool/service failures)
    │   ├── TrackerError
    │   │   └── NotFoundError
    │   ├── WorkspaceError
    │   ├── ClaudeRunnerError
    │   │   └── ClaudeTimeoutError
    │   ├── CodeHostError
    │   └── NetworkError
    └── DaemonError
        ├── AlreadyRunningError
        └── NotRunningError
"""


class FactoryError(Exception):
    """Base exception for all factory errors."""


class ConfigError(FactoryError):
    """Raised when configuration is missing or invalid."""


class ValidationError(FactoryError):
    """Raised when an item is not eligible for processing.

    Validation failures are terminal for the item; they are recorded in the
    ledger like any other failure and never retried automatically.
    """


class CollaboratorError(FactoryError):
    """Base exception for failures of an external collaborator.

    Collaborators are the tracker, the git workspace, the implementer and the
    code host. A collaborator failure ends the pipeline run for that item.
    """


class TrackerError(CollaboratorError):
    """Raised when a tracker operation fails."""


class NotFoundError(TrackerError):
    """Raised when the requested item does not exist in the tracker."""


class WorkspaceError(CollaboratorError):
    """Raised when a git workspace operation fails."""


class ClaudeRunnerError(CollaboratorError):
    """Raised when the Claude CLI fails."""


class ClaudeTimeoutError(ClaudeRunnerError):
    """Raised when Claude execution exceeds its wall-clock bound."""


class CodeHostError(CollaboratorError):
    """Raised when a change request cannot be opened."""


class NetworkError(CollaboratorError):
    """Raised when a call fails due to network connectivity.

    Distinguishes transient failures (connection refused, TLS timeouts,
    5xx gateway errors) from permanent ones (bad credentials, invalid
    requests). Only this error is retried, and only within a single call.
    """


class DaemonError(FactoryError):
    """Base exception for daemon lifecycle misuse."""


class AlreadyRunningError(DaemonError):
    """Raised when starting a daemon while another one is alive."""

    def __init__(self, pid: int):
        self.pid = pid
        super().__init__(f"daemon already running (PID {pid})")


class NotRunningError(DaemonError):
    """Raised when stopping a daemon that is not running."""
