"""Tests for the goldagent command-line entry point."""

from unittest.mock import patch

import pytest

from goldagent.cli_runner import build_parser, main


class TestParser:
    def test_jobs_add_arguments(self):
        args = build_parser().parse_args(["jobs", "add", "*/5 * * * *", "echo hi", "--retry-max", "3"])
        assert args.schedule == "*/5 * * * *"
        assert args.job_command == "echo hi"
        assert args.retry_max == 3

    def test_hooks_add_arguments(self):
        args = build_parser().parse_args(
            ["hooks", "add", "git", "/repo", "make", "--ref", "dev", "--interval", "10"]
        )
        assert args.kind == "git"
        assert args.reference == "dev"
        assert args.interval == 10

    def test_unknown_hook_kind(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["hooks", "add", "svn", "/repo", "make"])


class TestMain:
    """Exit codes follow handler results."""

    @patch("goldagent.scheduler.cli.handle_jobs_add", return_value=True)
    def test_success_exit_0(self, mock_add):
        assert main(["jobs", "add", "* * * * *", "echo"]) == 0
        mock_add.assert_called_once_with("* * * * *", "echo", None, 1)

    @patch("goldagent.scheduler.cli.handle_serve", return_value=False)
    def test_failure_exit_1(self, mock_serve):
        assert main(["serve"]) == 1

    def test_validation_error_exit_1(self):
        with patch("goldagent.scheduler.daemon.reload_daemon"):
            assert main(["jobs", "add", "not cron", "echo"]) == 1

    def test_end_to_end_add_and_list(self):
        with patch("goldagent.scheduler.daemon.reload_daemon"):
            assert main(["jobs", "add", "0 9 * * 1-5", "echo hi"]) == 0
        assert main(["jobs", "list"]) == 0

    @patch("goldagent.scheduler.cli.handle_hooks_remove", return_value=True)
    def test_hooks_remove(self, mock_remove):
        assert main(["hooks", "remove", "hook-1"]) == 0
        mock_remove.assert_called_once_with("hook-1")
