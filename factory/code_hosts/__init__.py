"""Code host implementations.

- GitHubCodeHost: GitHub REST API with a bearer token
- GhCliCodeHost: the `gh` CLI, retrying on network errors

Use get_code_host() to build the backend selected by GH_USE_CLI.
"""

from factory.code_hosts.gh_cli import GhCliCodeHost
from factory.code_hosts.github import GitHubCodeHost
from factory.config import Config
from factory.interfaces import CodeHost


def get_code_host(config: Config) -> CodeHost:
    """Factory function to get the code host selected by the config."""
    if config.gh_use_cli:
        return GhCliCodeHost(config.github_owner, config.github_repo, token=config.github_token)
    return GitHubCodeHost(
        config.github_owner,
        config.github_repo,
        config.github_token or "",
        api_url=config.github_api_url,
    )


__all__ = ["GhCliCodeHost", "GitHubCodeHost", "get_code_host"]
