"""Tests for the Jira tracker clients."""

import json
import subprocess
from unittest.mock import MagicMock

import pytest
import requests

from factory.errors import NetworkError, NotFoundError, TrackerError
from factory.tracker_clients import (
    ASSIGNED_JQL,
    JiraCliClient,
    JiraRestClient,
    adf_to_text,
    extract_acceptance_criteria,
    get_tracker_client,
    parse_issue_payload,
)

ISSUE_PAYLOAD = {
    "key": "PROJ-7",
    "fields": {
        "summary": "Export report as CSV",
        "description": {
            "type": "doc",
            "version": 1,
            "content": [
                {
                    "type": "paragraph",
                    "content": [{"type": "text", "text": "Users need CSV exports."}],
                },
                {
                    "type": "paragraph",
                    "content": [{"type": "text", "text": "Acceptance Criteria:"}],
                },
                {
                    "type": "bulletList",
                    "content": [
                        {
                            "type": "listItem",
                            "content": [
                                {
                                    "type": "paragraph",
                                    "content": [{"type": "text", "text": "Button on report page"}],
                                }
                            ],
                        },
                        {
                            "type": "listItem",
                            "content": [
                                {
                                    "type": "paragraph",
                                    "content": [{"type": "text", "text": "UTF-8 output"}],
                                }
                            ],
                        },
                    ],
                },
            ],
        },
        "issuetype": {"name": "Story"},
        "priority": {"name": "Medium"},
        "status": {"name": "To Do"},
        "labels": ["reports"],
        "components": [{"name": "web"}, {"name": ""}],
        "comment": {
            "comments": [
                {
                    "author": {"displayName": "Dana"},
                    "created": "2026-01-02T10:00:00.000+0000",
                    "body": "Keep column order stable.",
                }
            ]
        },
    },
}


def make_response(status_code: int = 200, body=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.content = b"" if body is None else json.dumps(body).encode()
    response.text = "" if body is None else json.dumps(body)
    response.json.return_value = body
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session, headers={})


@pytest.fixture
def rest_client(session):
    return JiraRestClient("https://acme.atlassian.net/", "bot@acme.test", "token", session=session)


@pytest.mark.unit
class TestAcceptanceCriteria:
    """Tests for extract_acceptance_criteria."""

    def test_section_until_blank_line(self):
        description = "Intro.\n\nAcceptance Criteria:\n- one\n- two\n\nNotes follow."
        assert extract_acceptance_criteria(description) == "- one\n- two"

    def test_section_until_end(self):
        assert extract_acceptance_criteria("acceptance criteria - works offline") == "- works offline"

    def test_case_insensitive_without_colon(self):
        assert extract_acceptance_criteria("ACCEPTANCE CRITERIA\nfast") == "fast"

    def test_missing_marker(self):
        assert extract_acceptance_criteria("Just a description") == ""

    def test_first_occurrence_only(self):
        description = "Acceptance criteria: first\n\nAcceptance criteria: second"
        assert extract_acceptance_criteria(description) == "first"


@pytest.mark.unit
class TestAdfToText:
    """Tests for adf_to_text."""

    def test_plain_string_passthrough(self):
        assert adf_to_text("already text") == "already text"

    def test_none(self):
        assert adf_to_text(None) == ""

    def test_hard_break_and_paragraphs(self):
        doc = {
            "type": "doc",
            "content": [
                {
                    "type": "paragraph",
                    "content": [
                        {"type": "text", "text": "line one"},
                        {"type": "hardBreak"},
                        {"type": "text", "text": "line two"},
                    ],
                },
                {"type": "paragraph", "content": [{"type": "text", "text": "next"}]},
            ],
        }
        assert adf_to_text(doc) == "line one\nline two\n\nnext"


@pytest.mark.unit
class TestParseIssuePayload:
    """Tests for parse_issue_payload."""

    def test_full_payload(self):
        item = parse_issue_payload(ISSUE_PAYLOAD)

        assert item.key == "PROJ-7"
        assert item.title == "Export report as CSV"
        assert item.type == "Story"
        assert item.priority == "Medium"
        assert item.status == "To Do"
        assert item.labels == ("reports",)
        assert item.components == ("web",)
        assert item.description.startswith("Users need CSV exports.")
        assert item.acceptance_criteria == "- Button on report page\n- UTF-8 output"
        assert item.comments[0].author == "Dana"
        assert item.comments[0].body == "Keep column order stable."

    def test_sparse_payload_uses_fallback_key(self):
        item = parse_issue_payload({"fields": {}}, key="PROJ-9")

        assert item.key == "PROJ-9"
        assert item.title == ""
        assert item.comments == ()


@pytest.mark.unit
class TestJiraRestClient:
    """Tests for JiraRestClient with a mocked requests session."""

    def test_uses_basic_auth(self, rest_client, session):
        assert session.auth == ("bot@acme.test", "token")
        assert rest_client.base_url == "https://acme.atlassian.net"

    def test_fetch_item(self, rest_client, session):
        session.request.return_value = make_response(body=ISSUE_PAYLOAD)

        item = rest_client.fetch_item("PROJ-7")

        assert item.title == "Export report as CSV"
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == "https://acme.atlassian.net/rest/api/3/issue/PROJ-7"
        assert session.request.call_args.kwargs["timeout"] == 30

    def test_fetch_item_not_found(self, rest_client, session):
        session.request.return_value = make_response(404, {"errorMessages": ["nope"]})

        with pytest.raises(NotFoundError):
            rest_client.fetch_item("PROJ-404")

    @pytest.mark.parametrize("status_code", [401, 403])
    def test_auth_failure(self, rest_client, session, status_code):
        session.request.return_value = make_response(status_code, {})

        with pytest.raises(TrackerError, match="authentication failed"):
            rest_client.fetch_item("PROJ-7")

    def test_server_error(self, rest_client, session):
        session.request.return_value = make_response(500, {"error": "boom"})

        with pytest.raises(TrackerError, match="500"):
            rest_client.fetch_assigned()

    def test_connection_error_is_network_error(self, rest_client, session):
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NetworkError):
            rest_client.fetch_assigned()

    def test_fetch_assigned(self, rest_client, session):
        session.request.return_value = make_response(
            body={"issues": [ISSUE_PAYLOAD, {"key": "PROJ-8", "fields": {"summary": "Other"}}]}
        )

        items = rest_client.fetch_assigned()

        assert [item.key for item in items] == ["PROJ-7", "PROJ-8"]
        params = session.request.call_args.kwargs["params"]
        assert params["jql"] == ASSIGNED_JQL
        assert params["maxResults"] == 20

    def test_add_comment_sends_adf(self, rest_client, session):
        session.request.return_value = make_response(201, {"id": "1"})

        rest_client.add_comment("PROJ-7", "PR raised: https://x/pull/1")

        method, url = session.request.call_args.args
        assert method == "POST"
        assert url.endswith("/issue/PROJ-7/comment")
        body = session.request.call_args.kwargs["json"]["body"]
        assert body["type"] == "doc"
        assert adf_to_text(body) == "PR raised: https://x/pull/1"

    def test_transition_matches_target_status(self, rest_client, session):
        session.request.side_effect = [
            make_response(
                body={
                    "transitions": [
                        {"id": "11", "name": "Start Progress", "to": {"name": "In Progress"}},
                        {"id": "31", "name": "Done", "to": {"name": "Done"}},
                    ]
                }
            ),
            make_response(204),
        ]

        rest_client.transition("PROJ-7", "In Progress")

        last = session.request.call_args
        assert last.args[0] == "POST"
        assert last.kwargs["json"] == {"transition": {"id": "11"}}

    def test_transition_missing_is_noop(self, rest_client, session):
        session.request.return_value = make_response(
            body={"transitions": [{"id": "31", "name": "Done", "to": {"name": "Done"}}]}
        )

        rest_client.transition("PROJ-7", "In Progress")

        assert session.request.call_count == 1


@pytest.mark.unit
class TestJiraCliClient:
    """Tests for JiraCliClient with subprocess mocked out."""

    def test_fetch_item(self, mock_subprocess_run):
        mock_subprocess_run.return_value = MagicMock(stdout=json.dumps(ISSUE_PAYLOAD))

        item = JiraCliClient().fetch_item("PROJ-7")

        assert item.key == "PROJ-7"
        assert mock_subprocess_run.call_args.args[0] == ["jira", "view", "PROJ-7", "-t", "json"]

    def test_fetch_item_invalid_json(self, mock_subprocess_run):
        mock_subprocess_run.return_value = MagicMock(stdout="not json")

        with pytest.raises(TrackerError, match="Invalid JSON"):
            JiraCliClient().fetch_item("PROJ-7")

    def test_fetch_assigned_parses_list(self, mock_subprocess_run):
        mock_subprocess_run.return_value = MagicMock(
            stdout="PROJ-1: Add login\nPROJ-22: Fix export\n\nsome footer\n"
        )

        items = JiraCliClient().fetch_assigned()

        assert [(i.key, i.title) for i in items] == [
            ("PROJ-1", "Add login"),
            ("PROJ-22", "Fix export"),
        ]
        assert mock_subprocess_run.call_args.args[0] == ["jira", "list", "-q", ASSIGNED_JQL]

    def test_add_comment(self, mock_subprocess_run):
        mock_subprocess_run.return_value = MagicMock(stdout="")

        JiraCliClient().add_comment("PROJ-1", "PR raised: https://x/pull/1")

        assert mock_subprocess_run.call_args.args[0] == [
            "jira", "comment", "PROJ-1", "--noedit", "-m", "PR raised: https://x/pull/1",
        ]

    def test_network_failure(self, mock_subprocess_run):
        mock_subprocess_run.side_effect = subprocess.CalledProcessError(
            1, ["jira"], stderr="dial tcp: lookup acme.atlassian.net: no such host"
        )

        with pytest.raises(NetworkError):
            JiraCliClient().fetch_assigned()

    def test_not_found(self, mock_subprocess_run):
        mock_subprocess_run.side_effect = subprocess.CalledProcessError(
            1, ["jira"], stderr="Issue Does Not Exist"
        )

        with pytest.raises(NotFoundError):
            JiraCliClient().fetch_item("PROJ-404")

    def test_missing_binary(self, mock_subprocess_run):
        mock_subprocess_run.side_effect = FileNotFoundError("jira")

        with pytest.raises(TrackerError, match="not installed"):
            JiraCliClient().fetch_assigned()

    def test_transition_unavailable_is_noop(self, mock_subprocess_run):
        mock_subprocess_run.side_effect = subprocess.CalledProcessError(
            1, ["jira"], stderr="Invalid transition: In Progress"
        )

        JiraCliClient().transition("PROJ-1", "In Progress")

        assert mock_subprocess_run.call_args.args[0] == [
            "jira", "transition", "In Progress", "PROJ-1", "--noedit",
        ]

    def test_transition_other_failure_raises(self, mock_subprocess_run):
        mock_subprocess_run.side_effect = subprocess.CalledProcessError(
            1, ["jira"], stderr="permission denied"
        )

        with pytest.raises(TrackerError):
            JiraCliClient().transition("PROJ-1", "In Progress")


@pytest.mark.unit
class TestGetTrackerClient:
    def test_rest_backend(self, config):
        client = get_tracker_client(config)
        assert isinstance(client, JiraRestClient)
        assert client.base_url == "https://acme.atlassian.net"

    def test_cli_backend(self, config):
        config.jira_use_cli = True
        assert isinstance(get_tracker_client(config), JiraCliClient)
