#!/usr/bin/env python3
"""
Tests for the synchronization orchestrator and the post-job cleanup handler.

The orchestrator is exercised with mocked git clients to pin down step order
and failure handling, and once end to end against a real repository with the
network-bound steps replaced.
"""

import base64
import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).parent))

from reposync.config import Config
from reposync.errors import GitNotAvailableError, GitOperationError
from reposync.git_source import provider
from reposync.git_source.auth import GitAuthHelper
from reposync.git_source.command import create_command_manager
from reposync.git_source.directory import DirectoryDisposition
from reposync.git_source.provider import SyncPhase, cleanup, get_source
from reposync.settings import SyncSettings
from reposync.state import JobState, REPOSITORY_PATH, SSH_KEY_PATH, SSH_KNOWN_HOSTS_PATH

HAS_GIT = shutil.which("git") is not None


class ProviderTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp()).resolve()
        self.repo_dir = self.temp_dir / "work"
        self.config = Config(
            temp_dir=self.temp_dir / "runner_temp",
            state_file=self.temp_dir / "state.jsonl",
            git_retry_attempts=1,
            git_retry_delay=0
        )
        self.job_state = JobState(self.config.state_file)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def settings(self, **overrides) -> SyncSettings:
        values = dict(
            repository_owner="octo",
            repository_name="widgets",
            repository_path=self.repo_dir,
            ref="refs/heads/main",
            commit="0123456789abcdef0123456789abcdef01234567",
            auth_token="abc",
            persist_credentials=False
        )
        values.update(overrides)
        return SyncSettings(**values)


class TestGetSourceWithMockedGit(ProviderTestCase):

    def setUp(self):
        super().setUp()
        self.git = MagicMock()
        self.git.try_disable_automatic_garbage_collection.return_value = True
        self.git.log1.return_value = "commit 0123456789abcdef0123456789abcdef01234567"
        self.auth = MagicMock()

        self.calls = MagicMock()
        self.calls.attach_mock(self.git, "git")
        self.calls.attach_mock(self.auth, "auth")

        self.bind_patcher = patch.object(provider, "create_command_manager", return_value=self.git)
        self.auth_patcher = patch.object(provider, "GitAuthHelper", return_value=self.auth)
        self.download_patcher = patch.object(provider, "download_repository")
        self.bind = self.bind_patcher.start()
        self.auth_patcher.start()
        self.download = self.download_patcher.start()

    def tearDown(self):
        self.bind_patcher.stop()
        self.auth_patcher.stop()
        self.download_patcher.stop()
        super().tearDown()

    def _call_names(self):
        return [call[0] for call in self.calls.method_calls]

    def test_steps_run_in_order_for_new_directory(self):
        result = get_source(self.settings(), self.config, self.job_state)

        names = self._call_names()
        expected = [
            "git.init",
            "git.remote_add",
            "git.try_disable_automatic_garbage_collection",
            "auth.configure_auth",
            "git.fetch",
            "git.checkout",
            "git.log1",
            "auth.remove_auth",
        ]
        self.assertEqual([name for name in names if name in expected], expected)

        self.assertTrue(result.success)
        self.assertEqual(result.phase, SyncPhase.AUTH_REMOVED)
        self.assertIsNone(result.disposition)
        self.assertFalse(result.used_archive)
        self.assertTrue(self.repo_dir.is_dir())
        self.git.remote_add.assert_called_once_with("origin", "https://github.com/octo/widgets")
        self.git.fetch.assert_called_once_with(
            1, ["+0123456789abcdef0123456789abcdef01234567:refs/remotes/origin/main"]
        )
        self.git.checkout.assert_called_once_with("main", "refs/remotes/origin/main")
        self.assertEqual(self.job_state.get(REPOSITORY_PATH), str(self.repo_dir))

    def test_credentials_removed_when_fetch_fails(self):
        self.git.fetch.side_effect = GitOperationError("fetch failed", exit_code=128)

        with self.assertLogs('reposync.git_source.provider', level='ERROR') as logs:
            with self.assertRaises(GitOperationError):
                get_source(self.settings(), self.config, self.job_state)

        self.assertTrue(any("after phase 'auth_configured'" in line for line in logs.output))
        self.auth.configure_auth.assert_called_once()
        self.auth.remove_auth.assert_called_once()
        self.git.checkout.assert_not_called()

    def test_credentials_removed_when_configuration_fails(self):
        self.auth.configure_auth.side_effect = RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            get_source(self.settings(), self.config, self.job_state)

        self.auth.remove_auth.assert_called_once()
        self.git.fetch.assert_not_called()

    def test_persisted_credentials_are_left_in_place(self):
        result = get_source(self.settings(persist_credentials=True), self.config, self.job_state)

        self.auth.remove_auth.assert_not_called()
        self.assertTrue(result.credentials_persisted)
        self.assertEqual(result.phase, SyncPhase.DONE)

    def test_persisted_credentials_left_in_place_on_failure(self):
        self.git.checkout.side_effect = GitOperationError("checkout failed")

        with self.assertRaises(GitOperationError):
            get_source(self.settings(persist_credentials=True), self.config, self.job_state)

        self.auth.remove_auth.assert_not_called()

    def test_gc_failure_is_only_a_warning(self):
        self.git.try_disable_automatic_garbage_collection.return_value = False

        with self.assertLogs('reposync.git_source.provider', level='WARNING'):
            result = get_source(self.settings(), self.config, self.job_state)

        self.assertTrue(result.success)

    def test_existing_metadata_skips_init(self):
        (self.repo_dir / ".git").mkdir(parents=True)

        with patch.object(provider, "prepare_existing_directory", return_value=DirectoryDisposition.REUSE) as prepare:
            result = get_source(self.settings(clean=False), self.config, self.job_state)

        prepare.assert_called_once_with(self.git, self.repo_dir, "https://github.com/octo/widgets", False)
        self.git.init.assert_not_called()
        self.assertEqual(result.disposition, DirectoryDisposition.REUSE)

    def test_ssh_key_switches_origin_url(self):
        get_source(self.settings(ssh_key="KEY"), self.config, self.job_state)

        self.git.remote_add.assert_called_once_with("origin", "ssh://git@github.com/octo/widgets.git")

    def test_file_at_repository_path_is_replaced(self):
        self.repo_dir.write_text("not a directory")

        result = get_source(self.settings(), self.config, self.job_state)

        self.assertTrue(self.repo_dir.is_dir())
        self.assertIsNone(result.disposition)

    def test_falls_back_to_archive_without_git(self):
        self.bind.side_effect = GitNotAvailableError("git not found")

        result = get_source(self.settings(), self.config, self.job_state)

        self.assertTrue(result.used_archive)
        self.download.assert_called_once()
        args = self.download.call_args[0]
        self.assertEqual(args[1:5], ("octo", "widgets", "refs/heads/main",
                                     "0123456789abcdef0123456789abcdef01234567"))
        provider.GitAuthHelper.assert_not_called()
        self.assertEqual(self.job_state.get(REPOSITORY_PATH), "")

    def test_lfs_requires_git(self):
        self.bind.side_effect = GitNotAvailableError("git-lfs not found")

        with self.assertRaises(GitNotAvailableError):
            get_source(self.settings(lfs=True), self.config, self.job_state)

        self.download.assert_not_called()

    def test_lfs_objects_fetched_before_checkout(self):
        get_source(self.settings(lfs=True), self.config, self.job_state)

        names = self._call_names()
        self.assertLess(names.index("git.lfs_install"), names.index("git.fetch"))
        self.assertLess(names.index("git.lfs_fetch"), names.index("git.checkout"))
        self.git.lfs_fetch.assert_called_once_with("refs/remotes/origin/main")


@unittest.skipUnless(HAS_GIT, "git is not installed")
class TestGetSourceWithRealGit(ProviderTestCase):
    """Full flow against a real repository; fetch and checkout are stubbed."""

    def test_token_present_during_fetch_and_gone_afterwards(self):
        seen_during_fetch = []

        def bind(path, lfs, config):
            manager = create_command_manager(path, lfs, config)
            manager.fetch = MagicMock(
                side_effect=lambda *args: seen_during_fetch.append((path / ".git" / "config").read_text())
            )
            manager.checkout = MagicMock()
            manager.log1 = MagicMock(return_value="commit 0123456")
            return manager

        with patch.object(provider, "create_command_manager", side_effect=bind):
            result = get_source(self.settings(), self.config, self.job_state)

        expected = base64.b64encode(b"x-access-token:abc").decode("ascii")
        self.assertEqual(len(seen_during_fetch), 1)
        self.assertIn(f"AUTHORIZATION: basic {expected}", seen_during_fetch[0])

        config_text = (self.repo_dir / ".git" / "config").read_text()
        self.assertNotIn("extraheader", config_text)
        self.assertIn("https://github.com/octo/widgets", config_text)
        self.assertEqual(result.commit_info, "commit 0123456")


@unittest.skipUnless(HAS_GIT, "git is not installed")
class TestCleanup(ProviderTestCase):
    """The post-job handler works from the job state record alone."""

    def setUp(self):
        super().setUp()
        self.repo_dir.mkdir()
        subprocess.run(["git", "init"], cwd=self.repo_dir, check=True, capture_output=True)
        self.config_path = self.repo_dir / ".git" / "config"
        self.pristine = self.config_path.read_bytes()

    def _leave_persisted_credentials(self):
        git = create_command_manager(self.repo_dir, False, self.config)
        helper = GitAuthHelper(git, self.settings(persist_credentials=True), self.config, self.job_state)
        helper.configure_auth()

        self.config.temp_dir.mkdir(parents=True, exist_ok=True)
        key_file = self.config.temp_dir / "key"
        known_hosts_file = self.config.temp_dir / "key_known_hosts"
        key_file.write_text("secret key")
        known_hosts_file.write_text("hosts")
        self.job_state.set(SSH_KEY_PATH, str(key_file))
        self.job_state.set(SSH_KNOWN_HOSTS_PATH, str(known_hosts_file))
        self.job_state.set(REPOSITORY_PATH, str(self.repo_dir))
        return key_file, known_hosts_file

    def test_cleanup_removes_recorded_credentials(self):
        key_file, known_hosts_file = self._leave_persisted_credentials()
        self.assertIn("extraheader", self.config_path.read_text())

        self.assertTrue(cleanup(None, self.config, self.job_state))

        self.assertFalse(key_file.exists())
        self.assertFalse(known_hosts_file.exists())
        self.assertEqual(self.config_path.read_bytes(), self.pristine)

    def test_cleanup_is_repeatable(self):
        self._leave_persisted_credentials()

        self.assertTrue(cleanup(self.repo_dir, self.config, self.job_state))
        self.assertTrue(cleanup(self.repo_dir, self.config, self.job_state))

        self.assertEqual(self.config_path.read_bytes(), self.pristine)

    def test_nothing_recorded_is_a_no_op(self):
        self.assertFalse(cleanup(None, self.config, self.job_state))

    def test_directory_without_repository_is_a_no_op(self):
        plain = self.temp_dir / "plain"
        plain.mkdir()

        self.assertFalse(cleanup(plain, self.config, self.job_state))

    def test_unbindable_client_is_skipped(self):
        with patch.object(provider, "create_command_manager", side_effect=GitNotAvailableError("no git")):
            self.assertFalse(cleanup(self.repo_dir, self.config, self.job_state))


if __name__ == "__main__":
    unittest.main(verbosity=2)
