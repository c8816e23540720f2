"""Result types for repository synchronization."""

from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .directory import DirectoryDisposition
    from .provider import SyncPhase


@dataclass
class SyncResult:
    """Outcome of a completed `get_source` call."""
    success: bool
    message: str
    operation: str
    phase: "SyncPhase"
    repository_path: str
    disposition: Optional["DirectoryDisposition"] = None
    used_archive: bool = False
    commit_info: Optional[str] = None
    credentials_persisted: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "operation": self.operation,
            "phase": self.phase.value,
            "repository_path": self.repository_path,
            "disposition": self.disposition.value if self.disposition else None,
            "used_archive": self.used_archive,
            "commit_info": self.commit_info,
            "credentials_persisted": self.credentials_persisted
        }


def create_sync_result(
    message: str,
    phase: "SyncPhase",
    repository_path: str,
    disposition: Optional["DirectoryDisposition"] = None,
    used_archive: bool = False,
    commit_info: Optional[str] = None,
    credentials_persisted: bool = False,
    operation: str = "get_source"
) -> SyncResult:
    """
    Helper to create a successful SyncResult.

    Failures are reported by raising `SyncError`, so results are always
    successful.
    """
    return SyncResult(
        success=True,
        message=message,
        operation=operation,
        phase=phase,
        repository_path=repository_path,
        disposition=disposition,
        used_archive=used_archive,
        commit_info=commit_info,
        credentials_persisted=credentials_persisted
    )
