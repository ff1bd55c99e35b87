"""Tests for the code host backends."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from factory.backoff import backoff_delay, retry_with_backoff
from factory.code_hosts import GhCliCodeHost, GitHubCodeHost, get_code_host
from factory.errors import CodeHostError, NetworkError

PR_URL = "https://github.com/acme/widgets/pull/12"


def make_response(status_code: int, body: dict) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.text = str(body)
    return response


@pytest.mark.unit
class TestGitHubCodeHost:
    """Tests for GitHubCodeHost with requests.post mocked."""

    def test_creates_pull_request(self):
        host = GitHubCodeHost("acme", "widgets", "ghp_token")

        with patch("factory.code_hosts.github.requests.post") as mock_post:
            mock_post.return_value = make_response(201, {"html_url": PR_URL})
            url = host.open_change_request("[PROJ-1] Title", "body", "feature/PROJ-1-title", "main")

        assert url == PR_URL
        assert mock_post.call_args.args[0] == "https://api.github.com/repos/acme/widgets/pulls"
        assert mock_post.call_args.kwargs["json"] == {
            "title": "[PROJ-1] Title",
            "body": "body",
            "head": "feature/PROJ-1-title",
            "base": "main",
        }
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer ghp_token"

    def test_error_status_uses_api_message(self):
        host = GitHubCodeHost("acme", "widgets", "ghp_token")

        with patch("factory.code_hosts.github.requests.post") as mock_post:
            mock_post.return_value = make_response(422, {"message": "Validation Failed"})
            with pytest.raises(CodeHostError, match="422.*Validation Failed"):
                host.open_change_request("t", "b", "feature/x", "main")

    def test_missing_html_url(self):
        host = GitHubCodeHost("acme", "widgets", "ghp_token")

        with patch("factory.code_hosts.github.requests.post") as mock_post:
            mock_post.return_value = make_response(201, {})
            with pytest.raises(CodeHostError, match="html_url"):
                host.open_change_request("t", "b", "feature/x", "main")

    def test_connection_error_gives_up_after_three_attempts(self):
        host = GitHubCodeHost("acme", "widgets", "ghp_token")

        with (
            patch(
                "factory.code_hosts.github.requests.post",
                side_effect=requests.ConnectionError("refused"),
            ) as mock_post,
            patch("factory.backoff.time.sleep"),
        ):
            with pytest.raises(NetworkError, match="after 3 attempts"):
                host.open_change_request("t", "b", "feature/x", "main")

        assert mock_post.call_count == 3

    def test_retries_connection_reset(self):
        """Test a dropped connection is retried and the later PR URL returned."""
        host = GitHubCodeHost("acme", "widgets", "ghp_token")

        with (
            patch("factory.code_hosts.github.requests.post") as mock_post,
            patch("factory.backoff.time.sleep") as mock_sleep,
        ):
            mock_post.side_effect = [
                requests.ConnectionError("reset"),
                make_response(201, {"html_url": PR_URL}),
            ]
            url = host.open_change_request("t", "b", "feature/x", "main")

        assert url == PR_URL
        assert mock_post.call_count == 2
        mock_sleep.assert_called_once_with(2)

    def test_error_status_not_retried(self):
        host = GitHubCodeHost("acme", "widgets", "ghp_token")

        with patch("factory.code_hosts.github.requests.post") as mock_post:
            mock_post.return_value = make_response(502, {"message": "Bad Gateway"})
            with pytest.raises(CodeHostError):
                host.open_change_request("t", "b", "feature/x", "main")

        assert mock_post.call_count == 1

    def test_custom_api_url(self):
        host = GitHubCodeHost("acme", "widgets", "t", api_url="https://ghe.acme.test/api/v3/")

        with patch("factory.code_hosts.github.requests.post") as mock_post:
            mock_post.return_value = make_response(201, {"html_url": PR_URL})
            host.open_change_request("t", "b", "feature/x", "main")

        assert mock_post.call_args.args[0] == "https://ghe.acme.test/api/v3/repos/acme/widgets/pulls"


@pytest.mark.unit
class TestGhCliCodeHost:
    """Tests for GhCliCodeHost with subprocess mocked."""

    def test_returns_last_stdout_line(self, mock_subprocess_run):
        mock_subprocess_run.return_value = MagicMock(
            stdout="Creating pull request for feature/x into main\n\n" + PR_URL + "\n"
        )

        url = GhCliCodeHost("acme", "widgets", token="ghp_token").open_change_request(
            "title", "body", "feature/x", "main"
        )

        assert url == PR_URL
        cmd = mock_subprocess_run.call_args.args[0]
        assert cmd[:5] == ["gh", "pr", "create", "--repo", "acme/widgets"]
        assert cmd[cmd.index("--base") + 1] == "main"
        assert cmd[cmd.index("--head") + 1] == "feature/x"
        assert mock_subprocess_run.call_args.kwargs["env"]["GITHUB_TOKEN"] == "ghp_token"

    def test_retries_network_errors(self, mock_subprocess_run):
        """Test a transient failure is retried and the later success returned."""
        mock_subprocess_run.side_effect = [
            subprocess.CalledProcessError(1, ["gh"], stderr="dial tcp: i/o timeout"),
            MagicMock(stdout=PR_URL + "\n"),
        ]

        with patch("factory.backoff.time.sleep"):
            url = GhCliCodeHost("acme", "widgets").open_change_request("t", "b", "feature/x", "main")

        assert url == PR_URL
        assert mock_subprocess_run.call_count == 2

    def test_gives_up_after_three_attempts(self, mock_subprocess_run):
        mock_subprocess_run.side_effect = subprocess.CalledProcessError(
            1, ["gh"], stderr="HTTP 502: Bad Gateway"
        )

        with patch("factory.backoff.time.sleep"):
            with pytest.raises(NetworkError, match="after 3 attempts"):
                GhCliCodeHost("acme", "widgets").open_change_request("t", "b", "feature/x", "main")

        assert mock_subprocess_run.call_count == 3

    def test_other_errors_not_retried(self, mock_subprocess_run):
        mock_subprocess_run.side_effect = subprocess.CalledProcessError(
            1, ["gh"], stderr="a pull request for branch already exists"
        )

        with pytest.raises(CodeHostError, match="already exists"):
            GhCliCodeHost("acme", "widgets").open_change_request("t", "b", "feature/x", "main")

        assert mock_subprocess_run.call_count == 1

    def test_empty_output(self, mock_subprocess_run):
        mock_subprocess_run.return_value = MagicMock(stdout="\n")

        with pytest.raises(CodeHostError, match="no PR URL"):
            GhCliCodeHost("acme", "widgets").open_change_request("t", "b", "feature/x", "main")


@pytest.mark.unit
class TestBackoff:
    """Tests for the backoff helpers."""

    def test_delay_grows_and_caps(self):
        delays = [backoff_delay(attempt, 2, 30) for attempt in range(1, 8)]
        assert delays == [2, 2, 4, 8, 16, 30, 30]

    def test_retry_only_network_errors(self):
        func = MagicMock(side_effect=CodeHostError("bad request"))

        with pytest.raises(CodeHostError):
            retry_with_backoff(func, sleep=lambda _: None)

        assert func.call_count == 1

    def test_retry_sleeps_between_attempts(self):
        sleeps = []
        func = MagicMock(side_effect=[NetworkError("a"), NetworkError("b"), "ok"])

        assert retry_with_backoff(func, sleep=sleeps.append) == "ok"
        assert sleeps == [2, 2]


@pytest.mark.unit
class TestGetCodeHost:
    def test_rest_backend(self, config):
        host = get_code_host(config)
        assert isinstance(host, GitHubCodeHost)
        assert host.token == "ghp_secrettoken"

    def test_cli_backend(self, config):
        config.gh_use_cli = True
        host = get_code_host(config)
        assert isinstance(host, GhCliCodeHost)
        assert (host.owner, host.repo) == ("acme", "widgets")
