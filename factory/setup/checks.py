"""Pre-flight checks: are the CLI tools factory shells out to on PATH?"""

import re
import shutil
import subprocess
from dataclasses import dataclass

from factory.config import Config
from factory.errors import FactoryError
from factory.logger import get_logger

logger = get_logger(__name__)

INSTALL_HINTS = {
    "git": "git not found. Install from: https://git-scm.com/downloads",
    "jira": "jira CLI not found. Install from: https://github.com/go-jira/jira",
    "gh": "gh CLI not found. Install from: https://cli.github.com/",
    "claude": (
        "claude CLI not found. Install from: "
        "https://docs.anthropic.com/en/docs/claude-code/overview"
    ),
}

_VERSION_RE = re.compile(r"v?(\d+\.\d+\.\d+)")


class SetupError(FactoryError):
    """A required tool is missing or unusable."""


@dataclass
class ClaudeInfo:
    path: str
    version: str


def _claude_version(claude_path: str) -> str:
    try:
        output = subprocess.run(
            [claude_path, "--version"], capture_output=True, check=True, text=True
        ).stdout.strip()
    except subprocess.CalledProcessError as e:
        raise SetupError(f"claude CLI error: {e.stderr or e}") from e

    # "1.0.45 (Claude Code)" -> "1.0.45"; unrecognised output is kept whole
    match = _VERSION_RE.search(output)
    return match.group(1) if match else output


def check_claude_installation() -> ClaudeInfo:
    """Locate the claude CLI and ask it for its version.

    Raises:
        SetupError: claude is not on PATH, or `claude --version` exits non-zero
    """
    claude_path = shutil.which("claude")
    if claude_path is None:
        raise SetupError(INSTALL_HINTS["claude"])
    return ClaudeInfo(path=claude_path, version=_claude_version(claude_path))


def required_tools(config: Config) -> list[str]:
    """Names of the CLI tools the configured backends need, besides claude."""
    tools = ["git"]
    if config.jira_use_cli:
        tools.append("jira")
    if config.gh_use_cli:
        tools.append("gh")
    return tools


def check_required_tools(config: Config) -> ClaudeInfo:
    """Verify git, claude and any CLI backends are installed.

    Every missing tool is reported in one SetupError, one hint per line.
    """
    missing = [tool for tool in [*required_tools(config), "claude"] if shutil.which(tool) is None]
    if missing:
        raise SetupError("\n".join(INSTALL_HINTS[tool] for tool in missing))

    info = check_claude_installation()
    logger.debug(f"Using claude {info.version} at {info.path}")
    return info
