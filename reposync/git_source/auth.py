"""
Ephemeral credential handling for git.

`GitAuthHelper.configure_auth` installs exactly the credential material the
settings call for: an HTTP extra header carrying the token and/or an SSH key
with a dedicated known-hosts file. `remove_auth` reverses every durable side
effect and is safe to call when nothing was configured, including from a
later process that only has the job state record to go on.
"""

import base64
import logging
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from ..config import Config
from ..errors import AuthPlaceholderError, ConfigurationError, SyncError
from ..platform import find_executable, get_platform_info, remove_path, write_owner_only_file
from ..redaction import Secret
from ..settings import SyncSettings
from ..state import JobState, SERVER_URL, SSH_KEY_PATH, SSH_KNOWN_HOSTS_PATH
from .command import GitCommandManager

SSH_COMMAND_KEY = "core.sshCommand"
SSH_COMMAND_ENV = "GIT_SSH_COMMAND"
TOKEN_PLACEHOLDER = "AUTHORIZATION: basic ***"
TOKEN_USERNAME = "x-access-token"

# Host keys trusted in addition to the user's known_hosts
KNOWN_HOST_KEYS = {
    "github.com": (
        "github.com ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABgQCj7ndNxQowgcQnjshcLrqPEiiphnt+VTTvDP6mHBL9j1aNUkY4Ue1gvwnGLVlOhGeYrnZaMgRK6+PKCUXaDbC7qtbW8gIkhL7aGCsOr/C56SJMy/BCZfxd1nWzAOxSDPgVsmerOBYfNqltV9/hWCqBywINIR+5dIg6JTJ72pcEpEjcYgXkE2YEFXV1JHnsKgbLWNlhScqb2UmyRkQyytRLtL+38TGxkxCflmO+5Z8CSSNY7GidjMIZ7Q4zMjA2n1nGrlTDkzwDCsw+wqFPGQA179cnfGWOWRVruj16z6XyvxvjJwbz0wQZ75XK5tKSb7FNyeIEs4TT4jk+S4dhPeAUC5y+bDYirYgM4GC7uEnztnZyaVWQ7B381AK4Qdrwt51ZqExKbQpTUNn+EjqoTwvqNj4kqx5QUCI0ThS/YkOxJCXmPUWZbhjpCg56i+2aB6CmK2JGhn57K5mj0MNdBXA4/WnwH6XoPWJzK5Nyu2zB3nAZp+S5hpQs+p1vN1/wsjk="
    ),
}


def extra_header_section(server_url: str) -> str:
    return f"http.{server_url.rstrip('/')}/"


def extra_header_key(server_url: str) -> str:
    return f"{extra_header_section(server_url)}.extraheader"


def user_known_hosts_path() -> Path:
    return Path.home() / ".ssh" / "known_hosts"


def _command_path(path: Path) -> str:
    # ssh under Git for Windows understands forward slashes only
    text = str(path)
    if get_platform_info().is_windows:
        text = text.replace("\\", "/")
    return text


class GitAuthHelper:
    """Installs and removes credentials for one git working directory."""

    def __init__(
        self,
        git: GitCommandManager,
        settings: Optional[SyncSettings] = None,
        config: Optional[Config] = None,
        job_state: Optional[JobState] = None
    ):
        """
        Args:
            git: Command manager bound to the working directory
            settings: Sync settings; None for the settings-less cleanup mode
            config: Process configuration (temp directory, server URL)
            job_state: Record of credential file paths shared with cleanup
        """
        self.git = git
        self.settings = settings
        self.config = config or Config()
        self.job_state = job_state or JobState(self.config.state_file)
        self.logger = logging.getLogger('reposync.git_source.auth')

        if settings:
            server_url = settings.server_url
            self.hostname = settings.hostname
        else:
            # Server recorded by the sync that wrote the header
            server_url = self._state_value(SERVER_URL) or self.config.server_url
            self.hostname = urlparse(server_url).hostname or self.config.server_hostname
        self.extra_header_section = extra_header_section(server_url)
        self.extra_header_key = extra_header_key(server_url)

        self.ssh_key_path = ""
        self.ssh_known_hosts_path = ""
        self.ssh_command = ""
        self.header_installed = False
        self.ssh_command_installed = False

    def configure_auth(self) -> None:
        if self.settings is None:
            raise ConfigurationError("Cannot configure authentication without sync settings")

        self.configure_token()
        self.configure_ssh()

    def remove_auth(self) -> None:
        self.remove_ssh()
        self.remove_token()

    # --- token ----------------------------------------------------------

    def configure_token(self) -> None:
        settings = self.settings

        # SSH alone is enough while the job runs
        if settings.ssh_key and not settings.persist_credentials:
            return

        # Recorded first so a later cleanup looks under the same header key
        self.job_state.set(SERVER_URL, settings.server_url)

        # Write a placeholder through git so the real value never appears in
        # a process command line, then substitute it in the file directly
        self.git.config(self.extra_header_key, TOKEN_PLACEHOLDER)
        self.header_installed = True

        basic_credential = Secret(base64.b64encode(
            f"{TOKEN_USERNAME}:{settings.auth_token.reveal()}".encode('utf-8')
        ).decode('ascii'))

        config_path = self.git.get_working_directory() / ".git" / "config"
        with open(config_path, 'r', encoding='utf-8', newline='') as f:
            content = f.read()
        occurrences = content.count(TOKEN_PLACEHOLDER)
        if occurrences != 1:
            raise AuthPlaceholderError(
                f"Unable to replace auth placeholder in {config_path}: "
                f"expected exactly one occurrence, found {occurrences}",
                context={"config_path": str(config_path)}
            )

        content = content.replace(TOKEN_PLACEHOLDER, f"AUTHORIZATION: basic {basic_credential.reveal()}")
        with open(config_path, 'w', encoding='utf-8', newline='') as f:
            f.write(content)

        self.logger.debug(f"Configured auth header '{self.extra_header_key}'")

    def remove_token(self) -> None:
        self._remove_git_config(self.extra_header_key)
        try:
            self.git.try_remove_config_section_if_empty(self.extra_header_section)
        except SyncError as e:
            self.logger.debug(f"Unable to remove config section '{self.extra_header_section}': {e}")
        self.header_installed = False

    # --- ssh ------------------------------------------------------------

    def configure_ssh(self) -> None:
        settings = self.settings
        if not settings.ssh_key:
            return

        temp_dir = self.config.temp_dir
        if temp_dir is None:
            raise ConfigurationError("RUNNER_TEMP is not defined")

        # Key file. The path is recorded before the file exists so a crash
        # between the two still leaves cleanup something to act on.
        unique_id = uuid.uuid4().hex
        key_path = temp_dir / unique_id
        self.ssh_key_path = str(key_path)
        self.job_state.set(SSH_KEY_PATH, self.ssh_key_path)
        write_owner_only_file(key_path, settings.ssh_key.reveal().strip() + "\n")

        # Known hosts
        known_hosts_path = temp_dir / f"{unique_id}_known_hosts"
        self.ssh_known_hosts_path = str(known_hosts_path)
        self.job_state.set(SSH_KNOWN_HOSTS_PATH, self.ssh_known_hosts_path)
        write_owner_only_file(known_hosts_path, self._build_known_hosts())

        ssh_path = find_executable("ssh")
        if not ssh_path:
            raise ConfigurationError("Unable to locate executable file: ssh")

        command = f'"{_command_path(Path(ssh_path))}" -i "{_command_path(key_path)}"'
        if settings.ssh_strict:
            command += " -o StrictHostKeyChecking=yes -o CheckHostIP=no"
        else:
            # Trust on first use: host key verification is deliberately off
            command += " -o StrictHostKeyChecking=no -o CheckHostIP=no"
        command += f' -o "UserKnownHostsFile={_command_path(known_hosts_path)}"'
        self.ssh_command = command

        self.logger.info(f"Temporarily overriding {SSH_COMMAND_ENV}={command}")
        self.git.set_environment_variable(SSH_COMMAND_ENV, command)

        if settings.persist_credentials:
            self.git.config(SSH_COMMAND_KEY, command)
            self.ssh_command_installed = True

    def _build_known_hosts(self) -> str:
        content = ""

        user_known_hosts = user_known_hosts_path()
        try:
            existing = user_known_hosts.read_text(encoding='utf-8')
        except FileNotFoundError:
            existing = ""
        if existing:
            content += f"# Begin from {user_known_hosts}\n{existing.rstrip()}\n# End from {user_known_hosts}\n"

        extra = self.settings.ssh_known_hosts.strip()
        if extra:
            content += f"{extra}\n"

        host_key = KNOWN_HOST_KEYS.get(self.hostname)
        if host_key:
            content += (f"# Begin implicitly added {self.hostname}\n"
                        f"{host_key}\n"
                        f"# End implicitly added {self.hostname}\n")
        return content

    def remove_ssh(self) -> None:
        key_path = self.ssh_key_path or self._state_value(SSH_KEY_PATH)
        if key_path:
            try:
                remove_path(key_path)
            except OSError as e:
                self.logger.warning(f"Failed to remove SSH key '{key_path}': {e}")

        known_hosts_path = self.ssh_known_hosts_path or self._state_value(SSH_KNOWN_HOSTS_PATH)
        if known_hosts_path:
            try:
                remove_path(known_hosts_path)
            except OSError as e:
                self.logger.debug(f"Failed to remove SSH known hosts '{known_hosts_path}': {e}")

        self.git.remove_environment_variable(SSH_COMMAND_ENV)
        self._remove_git_config(SSH_COMMAND_KEY)
        self.ssh_command_installed = False

    # --- helpers --------------------------------------------------------

    def _state_value(self, key: str) -> str:
        try:
            return self.job_state.get(key)
        except OSError as e:
            self.logger.warning(f"Unable to read job state '{key}': {e}")
            return ""

    def _remove_git_config(self, config_key: str) -> None:
        try:
            if self.git.config_exists(config_key) and not self.git.try_config_unset(config_key):
                self.logger.warning(f"Failed to remove '{config_key}' from the git config")
        except SyncError as e:
            self.logger.warning(f"Failed to remove '{config_key}' from the git config: {e}")
