"""Ticket-to-pull-request pipeline.

Runs the fixed stage sequence for one item:

    fetch -> validate -> branch -> claude -> push -> pr -> report back

The first failing stage ends the run. process() never raises; every outcome,
including unexpected errors, comes back as a Result naming the failing stage.
Report-back (tracker comment and transition) is best-effort and never changes
the Result.
"""

from dataclasses import dataclass

from factory.claude_runner import ClaudeImplementer
from factory.code_hosts import get_code_host
from factory.config import Config
from factory.errors import FactoryError, ValidationError
from factory.interfaces import CodeHost, Implementer, Item, TrackerClient, WorkspaceClient
from factory.logger import clear_item_context, get_logger, set_item_context
from factory.prompts import build_commit_message, build_pr_body, build_pr_title
from factory.tracker_clients import get_tracker_client
from factory.workspace import GitWorkspace

logger = get_logger(__name__)

IN_PROGRESS_STATUS = "In Progress"


class Stage:
    """Stage names recorded on failure."""

    FETCH = "fetch"
    VALIDATE = "validate"
    BRANCH = "branch"
    CLAUDE = "claude"
    PUSH = "push"
    PR = "pr"


class ResultStatus:
    STARTED = "started"
    FAILED = "failed"
    COMPLETED = "completed"


@dataclass
class Result:
    """Outcome of one pipeline run.

    Attributes:
        key: Item key
        status: One of ResultStatus
        pr_url: Change request URL when one was opened
        stage: Failing stage name (failed runs only)
        error: Cause of the failure (failed runs only)
    """

    key: str
    status: str = ResultStatus.STARTED
    pr_url: str | None = None
    stage: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ResultStatus.COMPLETED

    @property
    def error_text(self) -> str | None:
        """The "<stage>: <cause>" text recorded in the ledger."""
        if self.error is None:
            return None
        if self.stage:
            return f"{self.stage}: {self.error}"
        return self.error

    def fail(self, stage: str, error: str) -> None:
        self.status = ResultStatus.FAILED
        self.stage = stage
        self.error = error

    def complete(self, pr_url: str | None = None) -> None:
        self.status = ResultStatus.COMPLETED
        self.pr_url = pr_url


def validate_item(item: Item) -> None:
    """Reject items the pipeline must not work on.

    Raises:
        ValidationError: If the type is not accepted or the item is closed
    """
    if not item.is_valid_type():
        raise ValidationError(f"invalid type: {item.type}")
    if item.is_closed():
        raise ValidationError(f"issue is closed: {item.status}")


class Pipeline:
    """Drives one item through every stage using the injected collaborators.

    The workspace is a single shared working tree, so a Pipeline must never
    process two items at the same time.
    """

    def __init__(
        self,
        config: Config,
        tracker: TrackerClient,
        workspace: WorkspaceClient,
        implementer: Implementer,
        code_host: CodeHost,
    ) -> None:
        self.config = config
        self.tracker = tracker
        self.workspace = workspace
        self.implementer = implementer
        self.code_host = code_host

    @classmethod
    def from_config(cls, config: Config) -> "Pipeline":
        """Build a Pipeline wired to the backends selected by the config."""
        return cls(
            config,
            tracker=get_tracker_client(config),
            workspace=GitWorkspace(
                config.workspace_path,
                config.repo_clone_url,
                default_branch=config.repo_default_branch,
            ),
            implementer=ClaudeImplementer(),
            code_host=get_code_host(config),
        )

    def process(self, key: str) -> Result:
        """Run the pipeline for one item key.

        Returns:
            Result with status completed or failed; never raises
        """
        result = Result(key=key)
        set_item_context(key)
        try:
            logger.info(f"Processing {key}")
            item = self._run_stages(key, result)
            if item is not None and result.pr_url:
                self._report_back(item, result.pr_url)
        finally:
            if result.succeeded:
                logger.info(f"Completed {key}" + (f": {result.pr_url}" if result.pr_url else ""))
            elif result.status == ResultStatus.FAILED:
                logger.error(f"Failed {key} at {result.error_text}")
            clear_item_context()
        return result

    def _run_stages(self, key: str, result: Result) -> Item | None:
        """Run fetch through pr, recording the outcome on result.

        Returns:
            The fetched item when every stage succeeded, None otherwise
        """
        stage = Stage.FETCH
        try:
            item = self.tracker.fetch_item(key)
            logger.info(f"Fetched {key}: {item.title} ({item.type}, {item.status})")

            stage = Stage.VALIDATE
            validate_item(item)

            stage = Stage.BRANCH
            self.workspace.ensure_cloned()
            branch = self.workspace.create_or_checkout_branch(item.key, item.title)
            logger.info(f"On branch {branch}")

            stage = Stage.CLAUDE
            logger.info(f"Running Claude (timeout {self.config.implement_timeout}s)")
            self.implementer.run(self.workspace.path, item, self.config.implement_timeout)

            stage = Stage.PUSH
            if not self.workspace.has_uncommitted_changes():
                logger.info("No changes made, nothing to publish")
                result.complete()
                return None
            self.workspace.commit_and_push(branch, build_commit_message(item))

            stage = Stage.PR
            pr_url = self.code_host.open_change_request(
                build_pr_title(item),
                build_pr_body(item, self.config.jira_base_url),
                branch,
                self.config.repo_default_branch,
            )
        except FactoryError as e:
            result.fail(stage, str(e))
            return None
        except Exception as e:
            logger.error(f"Unexpected error in stage '{stage}': {e}", exc_info=True)
            result.fail(stage, f"unexpected error: {e}")
            return None

        result.complete(pr_url)
        return item

    def _report_back(self, item: Item, pr_url: str) -> None:
        """Comment the PR URL on the item and optionally move it to In Progress.

        Failures are logged only.
        """
        try:
            self.tracker.add_comment(item.key, f"PR raised: {pr_url}")
        except Exception as e:
            logger.warning(f"Could not comment on {item.key}: {e}")

        if not self.config.auto_transition:
            return
        try:
            self.tracker.transition(item.key, IN_PROGRESS_STATUS)
        except Exception as e:
            logger.warning(f"Could not transition {item.key} to '{IN_PROGRESS_STATUS}': {e}")
