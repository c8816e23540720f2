"""Git command execution bound to a single working directory, using GitPython."""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

# Let the module import on hosts without git; binding reports the problem instead
os.environ.setdefault("GIT_PYTHON_REFRESH", "quiet")

import git
from git.exc import CommandError

from ..config import Config
from ..errors import GitNotAvailableError, GitOperationError
from ..platform import find_executable, get_git_executable
from .operations import execute_with_retry

MINIMUM_GIT_VERSION = (2, 18)
MINIMUM_GIT_LFS_VERSION = (2, 1)


def format_version(version: Tuple[int, ...]) -> str:
    return ".".join(str(part) for part in version)


def parse_version(text: str) -> Optional[Tuple[int, ...]]:
    """Extract the first dotted version number from command output."""
    match = re.search(r'(\d+)\.(\d+)(?:\.(\d+))?', text or "")
    if not match:
        return None
    return tuple(int(part) for part in match.groups() if part is not None)


@dataclass
class GitOutput:
    exit_code: int
    stdout: str
    stderr: str = ""


class GitCommandManager:
    """
    Runs git subcommands in one working directory.

    Methods prefixed with `try_` report failure through their boolean return
    value; every other method raises `GitOperationError`.
    """

    def __init__(self, working_directory: Path, lfs: bool, config: Optional[Config] = None):
        self.working_directory = Path(working_directory)
        self.lfs = lfs
        self.sync_config = config or Config()
        self.logger = logging.getLogger('reposync.git_source.command')
        self.git_path = ""
        self._git = git.Git(str(self.working_directory))

    # --- initialization -------------------------------------------------

    def _initialize(self) -> None:
        self.git_path = find_executable(get_git_executable()) or ""
        if not self.git_path:
            raise GitNotAvailableError(
                f"Unable to locate executable file: {get_git_executable()}. "
                f"Add git {format_version(MINIMUM_GIT_VERSION)} or higher to the PATH"
            )

        output = self._exec_git(["version"])
        git_version = parse_version(output.stdout)
        if git_version is None:
            raise GitNotAvailableError("Unable to determine git version")
        if git_version < MINIMUM_GIT_VERSION:
            raise GitNotAvailableError(
                f"Minimum required git version is {format_version(MINIMUM_GIT_VERSION)}. "
                f"Your git ('{self.git_path}') is {format_version(git_version)}"
            )

        if self.lfs:
            output = self._exec_git(["lfs", "version"], allow_all_exit_codes=True)
            lfs_version = parse_version(output.stdout.replace("git-lfs/", "")) if output.exit_code == 0 else None
            if lfs_version is None:
                raise GitNotAvailableError(
                    f"Unable to determine git-lfs version. Git LFS {format_version(MINIMUM_GIT_LFS_VERSION)} "
                    f"or higher is required when LFS is enabled"
                )
            if lfs_version < MINIMUM_GIT_LFS_VERSION:
                raise GitNotAvailableError(
                    f"Minimum required git-lfs version is {format_version(MINIMUM_GIT_LFS_VERSION)}. "
                    f"Your git-lfs version is {format_version(lfs_version)}"
                )

        self.logger.debug(f"Using git {format_version(git_version)} at {self.git_path}")

        # Never block on credential prompts
        self._git.update_environment(GIT_TERMINAL_PROMPT="0", GCM_INTERACTIVE="Never")
        if self.lfs:
            # Objects are fetched explicitly by lfs_fetch, not one by one during checkout
            self._git.update_environment(GIT_LFS_SKIP_SMUDGE="1")

    # --- execution ------------------------------------------------------

    def _exec_git(self, args: List[str], allow_all_exit_codes: bool = False) -> GitOutput:
        command = [self.git_path or get_git_executable(), *args]
        self.logger.debug(f"Running: git {' '.join(args)}")
        try:
            status, stdout, stderr = self._git.execute(
                command,
                with_extended_output=True,
                with_exceptions=not allow_all_exit_codes
            )
        except CommandError as e:
            if allow_all_exit_codes and e.status is not None and isinstance(e.status, int):
                return GitOutput(exit_code=e.status, stdout=str(e.stdout or ""), stderr=str(e.stderr or ""))
            stderr = str(e.stderr or "").strip()
            raise GitOperationError(
                f"The git command 'git {args[0]}' failed: {stderr or e}",
                exit_code=e.status if isinstance(e.status, int) else None,
                stderr=stderr,
                context={"working_directory": str(self.working_directory)}
            ) from e

        return GitOutput(exit_code=status, stdout=stdout or "", stderr=stderr or "")

    # --- branches and refs ----------------------------------------------

    def branch_delete(self, remote: bool, branch: str) -> None:
        args = ["branch", "--delete", "--force"]
        if remote:
            args.append("--remote")
        args.append(branch)
        self._exec_git(args)

    def branch_exists(self, remote: bool, pattern: str) -> bool:
        args = ["branch", "--list"]
        if remote:
            args.append("--remote")
        args.append(pattern)
        output = self._exec_git(args)
        return bool(output.stdout.strip())

    def branch_list(self, remote: bool) -> List[str]:
        """
        List local branches (remote=False) or remote-tracking branches under origin.

        Uses rev-parse rather than `git branch` so the output format is stable.
        """
        args = ["rev-parse", "--symbolic-full-name"]
        args.append("--remotes=origin" if remote else "--branches")
        output = self._exec_git(args)

        prefix = "refs/remotes/" if remote else "refs/heads/"
        result = []
        for line in output.stdout.splitlines():
            branch = line.strip()
            if not branch:
                continue
            if branch.startswith(prefix):
                result.append(branch[len(prefix):])
            else:
                self.logger.debug(f"Unexpected branch format: {branch}")
        return result

    def tag_exists(self, pattern: str) -> bool:
        output = self._exec_git(["tag", "--list", pattern])
        return bool(output.stdout.strip())

    def is_detached(self) -> bool:
        # A symbolic HEAD resolves to refs/heads/<name>; a detached one stays "HEAD"
        output = self._exec_git(
            ["rev-parse", "--symbolic-full-name", "--verify", "--quiet", "HEAD"],
            allow_all_exit_codes=True
        )
        return output.stdout.strip() == "HEAD"

    # --- checkout -------------------------------------------------------

    def checkout(self, ref: str, start_point: str = "") -> None:
        args = ["checkout", "--progress", "--force"]
        if start_point:
            args.extend(["-B", ref, start_point])
        else:
            args.append(ref)
        self._exec_git(args)

    def checkout_detach(self) -> None:
        self._exec_git(["checkout", "--detach"])

    # --- config ---------------------------------------------------------

    def config(self, config_key: str, config_value: str) -> None:
        self._exec_git(["config", "--local", config_key, config_value])

    def config_exists(self, config_key: str) -> bool:
        pattern = re.escape(config_key)
        output = self._exec_git(
            ["config", "--local", "--name-only", "--get-regexp", pattern],
            allow_all_exit_codes=True
        )
        return output.exit_code == 0

    def try_config_unset(self, config_key: str) -> bool:
        output = self._exec_git(["config", "--local", "--unset-all", config_key], allow_all_exit_codes=True)
        return output.exit_code == 0

    def try_remove_config_section_if_empty(self, section: str) -> bool:
        """
        Remove a config section that has no keys left.

        Older git leaves an empty section header behind after `--unset`;
        removing it returns the file to its previous content. Newer git drops
        the header itself, so a missing section counts as removed.
        """
        pattern = "^" + re.escape(section + ".")
        remaining = self._exec_git(
            ["config", "--local", "--name-only", "--get-regexp", pattern],
            allow_all_exit_codes=True
        )
        if remaining.exit_code == 0 and remaining.stdout.strip():
            return False
        output = self._exec_git(["config", "--local", "--remove-section", section], allow_all_exit_codes=True)
        if output.exit_code == 0:
            return True
        return "no such section" in output.stderr.lower()

    def try_disable_automatic_garbage_collection(self) -> bool:
        output = self._exec_git(["config", "--local", "gc.auto", "0"], allow_all_exit_codes=True)
        return output.exit_code == 0

    def try_get_fetch_url(self) -> str:
        output = self._exec_git(["config", "--local", "--get", "remote.origin.url"], allow_all_exit_codes=True)
        if output.exit_code != 0:
            return ""
        return output.stdout.strip()

    # --- fetch ----------------------------------------------------------

    def fetch(self, fetch_depth: int, ref_spec: List[str]) -> None:
        args = ["-c", "protocol.version=2", "fetch", "--no-tags", "--prune", "--progress",
                "--no-recurse-submodules"]
        if fetch_depth > 0:
            args.append(f"--depth={fetch_depth}")
        elif (self.working_directory / ".git" / "shallow").exists():
            args.append("--unshallow")

        args.append("origin")
        args.extend(ref_spec)

        execute_with_retry(
            lambda: self._exec_git(args),
            "git fetch",
            self.sync_config,
            retry_on=(GitOperationError,)
        )

    def lfs_fetch(self, ref: str) -> None:
        args = ["lfs", "fetch", "origin", ref]
        execute_with_retry(
            lambda: self._exec_git(args),
            "git lfs fetch",
            self.sync_config,
            retry_on=(GitOperationError,)
        )

    def lfs_install(self) -> None:
        self._exec_git(["lfs", "install", "--local"])

    # --- repository -----------------------------------------------------

    def get_working_directory(self) -> Path:
        return self.working_directory

    def init(self) -> None:
        self._exec_git(["init", str(self.working_directory)])

    def log1(self) -> str:
        output = self._exec_git(["log", "-1"])
        first_line = output.stdout.splitlines()[0] if output.stdout else ""
        self.logger.info(output.stdout)
        return first_line

    def remote_add(self, remote_name: str, remote_url: str) -> None:
        self._exec_git(["remote", "add", remote_name, remote_url])

    def try_clean(self) -> bool:
        output = self._exec_git(["clean", "-ffdx"], allow_all_exit_codes=True)
        return output.exit_code == 0

    def try_reset(self) -> bool:
        output = self._exec_git(["reset", "--hard", "HEAD"], allow_all_exit_codes=True)
        return output.exit_code == 0

    # --- environment ----------------------------------------------------

    def set_environment_variable(self, name: str, value: str) -> None:
        self._git.update_environment(**{name: value})

    def remove_environment_variable(self, name: str) -> None:
        self._git.update_environment(**{name: None})

    def get_environment_variable(self, name: str) -> Optional[str]:
        return self._git.environment().get(name)


def create_command_manager(working_directory: Path, lfs: bool, config: Optional[Config] = None) -> GitCommandManager:
    """Bind a git client to working_directory. Raises GitNotAvailableError or GitOperationError."""
    manager = GitCommandManager(working_directory, lfs, config)
    manager._initialize()
    return manager
