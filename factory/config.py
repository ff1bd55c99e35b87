"""Settings for factory.

Settings live in <config dir>/config as KEY=value lines. When that file is
absent they are read from the process environment with the same keys.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from factory.errors import ConfigError

logger = logging.getLogger(__name__)

# Default config directory, relative to the user's home
FACTORY_DIR = ".factory"
CONFIG_FILE = "config"
LEDGER_FILE = "processed.json"
PID_FILE = "daemon.pid"
LOG_FILE = "daemon.log"

DEFAULT_POLL_INTERVAL_MINUTES = 5
DEFAULT_IMPLEMENT_TIMEOUT = 600  # 10 minutes

TRUE_VALUES = ("1", "true", "yes", "y", "on")


def get_config_dir() -> Path:
    """Return the config directory.

    FACTORY_HOME overrides the default of ~/.factory.
    """
    override = os.environ.get("FACTORY_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / FACTORY_DIR


def config_exists(config_dir: Path | None = None) -> bool:
    """Check whether a config file exists in the config directory."""
    return ((config_dir or get_config_dir()) / CONFIG_FILE).exists()


@dataclass
class Config:
    """Runtime settings, one attribute per config key.

    Attributes:
        config_dir: Directory holding the config, ledger, pid and log files
        jira_use_cli: Use the `jira` CLI instead of the REST API
        jira_base_url: Jira instance URL (used for REST calls and PR links)
        jira_email: Atlassian account email (REST only)
        jira_api_token: Atlassian API token (REST only)
        github_owner: Owner (org or user) of the target repository
        github_repo: Name of the target repository
        github_token: GitHub token for the REST API
        gh_use_cli: Open pull requests through the `gh` CLI instead of REST
        github_api_url: GitHub REST API base URL
        repo_clone_url: URL to clone the working tree from
        repo_local_path: Working tree path, relative paths resolve against config_dir
        repo_default_branch: Branch that pull requests target
        poll_interval_minutes: Minutes between poll ticks
        auto_transition: Move items to "In Progress" after a PR is raised
        implement_timeout: Hard wall-clock bound on the Claude run, in seconds
        log_level: Logging level name
    """

    config_dir: Path
    repo_clone_url: str
    github_owner: str
    github_repo: str
    jira_use_cli: bool = True
    jira_base_url: str = ""
    jira_email: str = ""
    jira_api_token: str | None = None
    github_token: str | None = None
    gh_use_cli: bool = False
    github_api_url: str = "https://api.github.com"
    repo_local_path: str = "workspace"
    repo_default_branch: str = "main"
    poll_interval_minutes: int = DEFAULT_POLL_INTERVAL_MINUTES
    auto_transition: bool = True
    implement_timeout: int = DEFAULT_IMPLEMENT_TIMEOUT
    log_level: str = "INFO"

    @property
    def config_path(self) -> Path:
        return self.config_dir / CONFIG_FILE

    @property
    def ledger_path(self) -> Path:
        return self.config_dir / LEDGER_FILE

    @property
    def pid_path(self) -> Path:
        return self.config_dir / PID_FILE

    @property
    def log_path(self) -> Path:
        return self.config_dir / LOG_FILE

    @property
    def workspace_path(self) -> Path:
        """Absolute path of the local working tree."""
        path = Path(self.repo_local_path).expanduser()
        if not path.is_absolute():
            path = self.config_dir / path
        return path

    @property
    def poll_interval_seconds(self) -> int:
        return self.poll_interval_minutes * 60

    @property
    def secrets(self) -> list[str]:
        """Values that must never appear in logs."""
        return [s for s in (self.jira_api_token, self.github_token) if s]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def parse_config_file(config_path: Path) -> dict[str, str]:
    """Read KEY=value lines into a dict.

    Blank lines, lines starting with # and lines without "=" are ignored.
    One pair of matching single or double quotes around a value is stripped.
    """
    values: dict[str, str] = {}
    for raw in config_path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = _unquote(value.strip())
    return values


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in TRUE_VALUES


def _parse_int(data: dict[str, str], key: str, default: int) -> int:
    raw = data.get(key, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got '{raw}'") from e


def build_config(data: dict[str, str], config_dir: Path, source: str) -> Config:
    """Validate parsed key/value pairs and turn them into a Config.

    `source` names where the pairs came from (a file path or "environment")
    and appears in error messages. Every missing required key is reported
    in a single ConfigError.
    """
    jira_use_cli = _parse_bool(data.get("JIRA_USE_CLI"), True)
    jira_base_url = data.get("JIRA_BASE_URL", "").strip().rstrip("/")
    jira_email = data.get("JIRA_EMAIL", "").strip()
    jira_api_token = data.get("JIRA_API_TOKEN") or None
    github_owner = data.get("GITHUB_OWNER", "").strip()
    github_repo = data.get("GITHUB_REPO", "").strip()
    gh_use_cli = _parse_bool(data.get("GH_USE_CLI"), False)
    github_token = data.get("GITHUB_TOKEN") or None
    repo_clone_url = data.get("REPO_CLONE_URL", "").strip()

    # (key, value, whether the active backends need it), in report order
    required = [
        ("JIRA_BASE_URL", jira_base_url, not jira_use_cli),
        ("JIRA_EMAIL", jira_email, not jira_use_cli),
        ("JIRA_API_TOKEN", jira_api_token, not jira_use_cli),
        ("GITHUB_OWNER", github_owner, True),
        ("GITHUB_REPO", github_repo, True),
        ("GITHUB_TOKEN", github_token, not gh_use_cli),
        ("REPO_CLONE_URL", repo_clone_url, True),
    ]
    missing = [key for key, value, needed in required if needed and not value]
    if missing:
        raise ConfigError(f"Missing required configuration in {source}: {', '.join(missing)}")

    poll_interval_minutes = _parse_int(
        data, "POLL_INTERVAL_MINUTES", DEFAULT_POLL_INTERVAL_MINUTES
    )
    if poll_interval_minutes < 1:
        logger.warning(
            f"POLL_INTERVAL_MINUTES={poll_interval_minutes} is below 1, "
            f"using {DEFAULT_POLL_INTERVAL_MINUTES}"
        )
        poll_interval_minutes = DEFAULT_POLL_INTERVAL_MINUTES

    implement_timeout = _parse_int(data, "IMPLEMENT_TIMEOUT", DEFAULT_IMPLEMENT_TIMEOUT)
    if implement_timeout < 1:
        raise ConfigError(f"IMPLEMENT_TIMEOUT must be positive, got {implement_timeout}")

    log_level = data.get("LOG_LEVEL", "INFO").upper()
    # setup_logging reads the level from the environment
    os.environ["LOG_LEVEL"] = log_level

    return Config(
        config_dir=config_dir,
        repo_clone_url=repo_clone_url,
        github_owner=github_owner,
        github_repo=github_repo,
        jira_use_cli=jira_use_cli,
        jira_base_url=jira_base_url,
        jira_email=jira_email,
        jira_api_token=jira_api_token,
        github_token=github_token,
        gh_use_cli=gh_use_cli,
        github_api_url=data.get("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
        repo_local_path=data.get("REPO_LOCAL_PATH", "workspace") or "workspace",
        repo_default_branch=data.get("REPO_DEFAULT_BRANCH", "main") or "main",
        poll_interval_minutes=poll_interval_minutes,
        auto_transition=_parse_bool(data.get("AUTO_TRANSITION"), True),
        implement_timeout=implement_timeout,
        log_level=log_level,
    )


def load_config_from_file(config_path: Path) -> Config:
    """Build a Config from a config file; its directory becomes config_dir."""
    return build_config(parse_config_file(config_path), config_path.parent, source=str(config_path))


def load_config_from_env(config_dir: Path) -> Config:
    return build_config(dict(os.environ), config_dir, source="environment")


def load_config(config_dir: Path | None = None) -> Config:
    """Load settings from <config_dir>/config, or the environment if it is absent.

    Raises:
        ConfigError: a required key is missing or a value is malformed
    """
    config_dir = config_dir or get_config_dir()
    config_path = config_dir / CONFIG_FILE
    if config_path.exists():
        return load_config_from_file(config_path)
    return load_config_from_env(config_dir)
