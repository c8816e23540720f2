#!/usr/bin/env python3
"""Tests for the git command manager: client binding, config access and environment overrides."""

import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent))

from reposync.config import Config
from reposync.errors import GitNotAvailableError, GitOperationError
from reposync.git_source import command
from reposync.git_source.command import GitOutput, create_command_manager, format_version, parse_version

HAS_GIT = shutil.which("git") is not None


class TestVersionParsing(unittest.TestCase):

    def test_parse_git_version(self):
        self.assertEqual(parse_version("git version 2.43.0"), (2, 43, 0))
        self.assertEqual(parse_version("git version 2.39.3 (Apple Git-146)"), (2, 39, 3))

    def test_parse_lfs_version(self):
        self.assertEqual(parse_version("3.4.1 (GitHub; linux amd64; go 1.21.1)"), (3, 4, 1))

    def test_unparseable(self):
        self.assertIsNone(parse_version("no version here"))
        self.assertIsNone(parse_version(""))

    def test_format(self):
        self.assertEqual(format_version((2, 18)), "2.18")


class TestClientBinding(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config = Config(git_retry_attempts=1, git_retry_delay=0)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_git_executable(self):
        with patch.object(command, "find_executable", return_value=None):
            with self.assertRaises(GitNotAvailableError):
                create_command_manager(self.temp_dir, False, self.config)

    def test_old_git_rejected(self):
        with patch.object(command, "find_executable", return_value="/usr/bin/git"), \
                patch.object(command.GitCommandManager, "_exec_git",
                             return_value=GitOutput(exit_code=0, stdout="git version 2.17.1")):
            with self.assertRaises(GitNotAvailableError) as ctx:
                create_command_manager(self.temp_dir, False, self.config)

        self.assertIn("2.18", str(ctx.exception))

    def test_missing_lfs_rejected_when_requested(self):
        outputs = [GitOutput(exit_code=0, stdout="git version 2.43.0"),
                   GitOutput(exit_code=1, stdout="", stderr="git: 'lfs' is not a git command")]
        with patch.object(command, "find_executable", return_value="/usr/bin/git"), \
                patch.object(command.GitCommandManager, "_exec_git", side_effect=outputs):
            with self.assertRaises(GitNotAvailableError):
                create_command_manager(self.temp_dir, True, self.config)

    def test_config_key_written_through_git(self):
        manager = command.GitCommandManager(self.temp_dir, False, self.config)

        with patch.object(manager, "_exec_git", return_value=GitOutput(exit_code=0, stdout="")) as exec_git:
            manager.config("http.https://github.com/.extraheader", "AUTHORIZATION: basic ***")

        exec_git.assert_called_once_with(
            ["config", "--local", "http.https://github.com/.extraheader", "AUTHORIZATION: basic ***"]
        )
        self.assertIs(manager.sync_config, self.config)

    def test_missing_section_counts_as_removed(self):
        manager = command.GitCommandManager(self.temp_dir, False, self.config)
        outputs = [GitOutput(exit_code=1, stdout=""),
                   GitOutput(exit_code=128, stdout="", stderr="fatal: no such section: http.https://example.com/")]

        with patch.object(manager, "_exec_git", side_effect=outputs):
            self.assertTrue(manager.try_remove_config_section_if_empty("http.https://example.com/"))

    def test_other_section_removal_failure_reported(self):
        manager = command.GitCommandManager(self.temp_dir, False, self.config)
        outputs = [GitOutput(exit_code=1, stdout=""),
                   GitOutput(exit_code=255, stdout="", stderr="error: could not lock config file")]

        with patch.object(manager, "_exec_git", side_effect=outputs):
            self.assertFalse(manager.try_remove_config_section_if_empty("http.https://example.com/"))


@unittest.skipUnless(HAS_GIT, "git is not installed")
class TestCommandsWithRealGit(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config = Config(git_retry_attempts=1, git_retry_delay=0)
        self.git = create_command_manager(self.temp_dir, False, self.config)
        self.git.init()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_prompts_disabled(self):
        self.assertEqual(self.git.get_environment_variable("GIT_TERMINAL_PROMPT"), "0")
        self.assertEqual(self.git.get_environment_variable("GCM_INTERACTIVE"), "Never")

    def test_environment_override_and_removal(self):
        self.git.set_environment_variable("GIT_SSH_COMMAND", "ssh -i key")
        self.assertEqual(self.git.get_environment_variable("GIT_SSH_COMMAND"), "ssh -i key")

        self.git.remove_environment_variable("GIT_SSH_COMMAND")
        self.assertIsNone(self.git.get_environment_variable("GIT_SSH_COMMAND"))

    def test_config_set_exists_unset(self):
        self.assertFalse(self.git.config_exists("core.sshCommand"))

        self.git.config("core.sshCommand", "ssh -i key")
        self.assertTrue(self.git.config_exists("core.sshCommand"))

        self.assertTrue(self.git.try_config_unset("core.sshCommand"))
        self.assertFalse(self.git.config_exists("core.sshCommand"))
        self.assertFalse(self.git.try_config_unset("core.sshCommand"))

    def test_empty_section_removed_only_when_empty(self):
        self.git.config("http.https://example.com/.extraheader", "A")
        self.git.config("http.https://example.com/.sslVerify", "true")
        self.git.try_config_unset("http.https://example.com/.extraheader")

        self.assertFalse(self.git.try_remove_config_section_if_empty("http.https://example.com/"))

        # Depending on the git version the unset already dropped the empty header
        self.git.try_config_unset("http.https://example.com/.sslVerify")
        self.assertTrue(self.git.try_remove_config_section_if_empty("http.https://example.com/"))
        self.assertNotIn("example.com", (self.temp_dir / ".git" / "config").read_text())

    def test_fetch_url(self):
        self.assertEqual(self.git.try_get_fetch_url(), "")

        self.git.remote_add("origin", "https://github.com/octo/widgets")

        self.assertEqual(self.git.try_get_fetch_url(), "https://github.com/octo/widgets")

    def test_refs_absent_in_empty_repository(self):
        self.assertFalse(self.git.tag_exists("v1"))
        self.assertFalse(self.git.branch_exists(True, "origin/main"))

    def test_failed_command_raises(self):
        with self.assertRaises(GitOperationError) as ctx:
            self.git.checkout("does-not-exist")

        self.assertIsNotNone(ctx.exception.exit_code)

    def test_log1_returns_first_line(self):
        subprocess.run(["git", "-c", "user.name=T", "-c", "user.email=t@example.com",
                        "commit", "--allow-empty", "-m", "first"],
                       cwd=self.temp_dir, check=True, capture_output=True)

        self.assertTrue(self.git.log1().startswith("commit "))


if __name__ == "__main__":
    unittest.main(verbosity=2)
