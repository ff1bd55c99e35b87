"""factory: turn assigned Jira issues into GitHub pull requests with Claude Code."""
