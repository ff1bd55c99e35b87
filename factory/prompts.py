"""Prompt, commit message and pull request text builders."""

from factory.interfaces import Comment, Item

COMMENT_SEPARATOR = "\n\n---\n\n"
NO_COMMENTS = "No comments"
NOT_PROVIDED = "Not provided"
COMMIT_TRAILER = "Implemented via factory"

IMPLEMENT_INSTRUCTIONS = [
    "Analyze the codebase",
    "Review the comments above for additional context or specific instructions",
    "Implement the required changes",
    "Add/update tests if needed",
    "Keep changes minimal and focused",
    "Add TODO comments for ambiguous parts",
]

VALIDATION_CHECKLIST = [
    "Code compiles/builds",
    "Tests pass",
    "Changes match the acceptance criteria",
    "No unrelated changes",
]


def format_comments(comments: tuple[Comment, ...] | list[Comment]) -> str:
    """Render comments as `**author** (date):` blocks separated by rules."""
    if not comments:
        return NO_COMMENTS
    return COMMENT_SEPARATOR.join(f"**{c.author}** ({c.created}):\n{c.body}" for c in comments)


def build_implement_prompt(item: Item) -> str:
    """Build the prompt handed to Claude for an item."""
    instructions = "\n".join(
        f"{number}. {step}" for number, step in enumerate(IMPLEMENT_INSTRUCTIONS, start=1)
    )
    return (
        "Implement the following Jira issue:\n\n"
        f"## {item.key}: {item.title}\n\n"
        f"**Type**: {item.type} | **Priority**: {item.priority}\n\n"
        "## Description\n"
        f"{item.description or NOT_PROVIDED}\n\n"
        "## Acceptance Criteria\n"
        f"{item.acceptance_criteria or NOT_PROVIDED}\n\n"
        "## Comments (Additional Context/Instructions)\n"
        f"{format_comments(item.comments)}\n\n"
        "## Instructions\n"
        f"{instructions}\n"
    )


def build_commit_message(item: Item) -> str:
    return f"{item.key}: {item.title}\n\n{COMMIT_TRAILER}"


def build_pr_title(item: Item) -> str:
    return f"[{item.key}] {item.title}"


def build_pr_body(item: Item, tracker_base_url: str = "") -> str:
    """Build the pull request description.

    The item key links to the tracker when a base URL is known.
    """
    if tracker_base_url:
        issue_ref = f"[{item.key}]({tracker_base_url.rstrip('/')}/browse/{item.key})"
    else:
        issue_ref = item.key
    checklist = "\n".join(f"- [ ] {entry}" for entry in VALIDATION_CHECKLIST)

    return (
        "## Jira Issue\n"
        f"{issue_ref}\n\n"
        f"**Type**: {item.type} | **Priority**: {item.priority}\n\n"
        "## Description\n"
        f"{item.description or NOT_PROVIDED}\n\n"
        "## Acceptance Criteria\n"
        f"{item.acceptance_criteria or NOT_PROVIDED}\n\n"
        "## Validation Checklist\n"
        f"{checklist}\n\n"
        "---\n"
        f"Resolves {item.key}\n"
    )
