"""Setup and pre-flight validation."""

from factory.setup.checks import (
    ClaudeInfo,
    SetupError,
    check_claude_installation,
    check_required_tools,
)

__all__ = [
    "ClaudeInfo",
    "SetupError",
    "check_claude_installation",
    "check_required_tools",
]
