"""Per-attempt synchronization settings."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from .config import DEFAULT_SERVER_URL
from .redaction import Secret


@dataclass(frozen=True)
class SyncSettings:
    """
    Everything one synchronization attempt needs from the caller.

    `ref` is symbolic (branch, tag, refs/...), `commit` pins an exact object;
    at least one of them must be set. `ssh_key` and `auth_token` are wrapped
    in `Secret` so they never render in logs.
    """
    repository_owner: str
    repository_name: str
    repository_path: Path
    ref: str = ""
    commit: str = ""
    fetch_depth: int = 1
    clean: bool = True
    lfs: bool = False
    ssh_key: Secret = field(default_factory=lambda: Secret(""))
    ssh_known_hosts: str = ""
    ssh_strict: bool = True
    auth_token: Secret = field(default_factory=lambda: Secret(""))
    persist_credentials: bool = True
    server_url: str = DEFAULT_SERVER_URL

    def __post_init__(self):
        # Accept plain strings from callers and wrap them
        if not isinstance(self.ssh_key, Secret):
            object.__setattr__(self, "ssh_key", Secret(self.ssh_key))
        if not isinstance(self.auth_token, Secret):
            object.__setattr__(self, "auth_token", Secret(self.auth_token))
        if not isinstance(self.repository_path, Path):
            object.__setattr__(self, "repository_path", Path(self.repository_path))
        object.__setattr__(self, "server_url", self.server_url.rstrip('/'))

        if not self.repository_owner or not self.repository_name:
            raise ValueError("repository_owner and repository_name are required")
        if self.fetch_depth < 0:
            raise ValueError("fetch_depth must be non-negative (0 fetches all history)")
        if not self.ref and not self.commit:
            raise ValueError("At least one of ref or commit must be provided")

    @property
    def qualified_name(self) -> str:
        return f"{self.repository_owner}/{self.repository_name}"

    @property
    def hostname(self) -> str:
        return self.server_url.split("://", 1)[-1].split("/", 1)[0]

    @property
    def repository_url(self) -> str:
        """HTTPS URL registered as origin when no SSH key is supplied."""
        return (f"{self.server_url}/{quote(self.repository_owner, safe='')}"
                f"/{quote(self.repository_name, safe='')}")

    @property
    def ssh_repository_url(self) -> str:
        """SSH URL registered as origin when an SSH key is supplied, else empty."""
        if not self.ssh_key:
            return ""
        return (f"ssh://git@{self.hostname}/{quote(self.repository_owner, safe='')}"
                f"/{quote(self.repository_name, safe='')}.git")

    @property
    def origin_url(self) -> str:
        return self.ssh_repository_url or self.repository_url
