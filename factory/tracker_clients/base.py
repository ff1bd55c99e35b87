"""Shared Jira parsing helpers.

Both Jira backends end up with the same JSON issue payload (the REST API
returns it directly, the CLI prints it with `-t json`), so payload parsing,
Atlassian Document Format flattening and acceptance-criteria extraction live
here.
"""

import re
from typing import Any

from factory.interfaces import Comment, Item

# Server-side filter for items the poller should consider
ASSIGNED_JQL = (
    "assignee = currentUser() AND status != Done AND status != Closed "
    "AND type in (Bug, Task, Story) ORDER BY updated DESC"
)

# Fields requested when fetching a single item
ISSUE_FIELDS = "summary,description,issuetype,priority,status,labels,components,comment"

# Case-insensitive marker phrase, capturing up to the next blank line or end of text
_ACCEPTANCE_CRITERIA_RE = re.compile(
    r"acceptance\s*criteria[:\s]*(.*?)(?:\n\n|\Z)", re.IGNORECASE | re.DOTALL
)

# ADF block nodes whose children are rendered inline
_INLINE_CONTAINERS = {"paragraph", "heading", "blockquote", "codeBlock", "panel"}


def extract_acceptance_criteria(description: str) -> str:
    """Extract the acceptance-criteria section from a description.

    Matches the phrase "acceptance criteria" (any case, optional colon) and
    captures the text that follows, up to the next blank line or the end of
    the description. Only the first occurrence is used.

    Args:
        description: Plain-text item description

    Returns:
        The stripped section text, or "" if the marker is absent
    """
    if not description:
        return ""
    match = _ACCEPTANCE_CRITERIA_RE.search(description)
    if not match:
        return ""
    return match.group(1).strip()


def adf_to_text(node: Any) -> str:
    """Flatten an Atlassian Document Format node into plain text.

    Top-level blocks are separated by blank lines, list items are rendered as
    "- " lines, and hard breaks become newlines. Plain strings (Jira server
    and API v2 payloads) are returned unchanged.
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return ""

    node_type = node.get("type")
    children = node.get("content") or []

    if node_type == "text":
        return node.get("text", "")
    if node_type == "hardBreak":
        return "\n"
    if node_type in ("mention", "emoji"):
        attrs = node.get("attrs") or {}
        return attrs.get("text", "")
    if node_type in _INLINE_CONTAINERS:
        return "".join(adf_to_text(child) for child in children)
    if node_type in ("bulletList", "orderedList"):
        return "\n".join(f"- {adf_to_text(child).strip()}" for child in children)
    if node_type == "listItem":
        return "\n".join(adf_to_text(child) for child in children)

    # doc and unknown block containers
    blocks = [adf_to_text(child) for child in children]
    return "\n\n".join(block for block in blocks if block)


def _name(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("name") or "")
    return ""


def parse_comments(fields: dict[str, Any]) -> tuple[Comment, ...]:
    """Parse the comment field of an issue payload."""
    comment_field = fields.get("comment") or {}
    raw_comments = comment_field.get("comments") or []
    comments = []
    for raw in raw_comments:
        author = raw.get("author") or {}
        comments.append(
            Comment(
                author=author.get("displayName") or author.get("name") or "unknown",
                created=raw.get("created", ""),
                body=adf_to_text(raw.get("body")).strip(),
            )
        )
    return tuple(comments)


def parse_issue_payload(data: dict[str, Any], key: str | None = None) -> Item:
    """Build an Item from a Jira issue JSON payload.

    Args:
        data: Issue payload with "key" and "fields"
        key: Fallback key when the payload has none

    Returns:
        Item populated from the payload
    """
    fields = data.get("fields") or {}
    description = adf_to_text(fields.get("description")).strip()

    return Item(
        key=data.get("key") or key or "",
        title=fields.get("summary") or "",
        description=description,
        type=_name(fields.get("issuetype")),
        priority=_name(fields.get("priority")),
        status=_name(fields.get("status")),
        labels=tuple(fields.get("labels") or ()),
        components=tuple(_name(c) for c in fields.get("components") or () if _name(c)),
        acceptance_criteria=extract_acceptance_criteria(description),
        comments=parse_comments(fields),
    )
