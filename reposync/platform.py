"""Cross-platform compatibility utilities for reposync."""

import os
import platform
import shutil
import stat
import subprocess
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, Union


class PlatformType(Enum):
    """Supported platform types."""
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    UNKNOWN = "unknown"


class PlatformInfo:
    """Platform information and utilities."""

    def __init__(self):
        """Initialize platform detection."""
        self._platform_type = self._detect_platform()
        self._is_windows = self._platform_type == PlatformType.WINDOWS

    def _detect_platform(self) -> PlatformType:
        """Detect the current platform."""
        system = platform.system().lower()

        if system == "windows":
            return PlatformType.WINDOWS
        elif system == "darwin":
            return PlatformType.MACOS
        elif system == "linux":
            return PlatformType.LINUX
        else:
            return PlatformType.UNKNOWN

    @property
    def platform_type(self) -> PlatformType:
        return self._platform_type

    @property
    def is_windows(self) -> bool:
        return self._is_windows


# Global platform info instance
_platform_info: Optional[PlatformInfo] = None


def get_platform_info() -> PlatformInfo:
    """Get the global platform info instance."""
    global _platform_info
    if _platform_info is None:
        _platform_info = PlatformInfo()
    return _platform_info


def normalize_path(path: Union[str, Path]) -> Path:
    """
    Normalize a path for the current platform.

    Args:
        path: Path to normalize

    Returns:
        Normalized Path object
    """
    if isinstance(path, str):
        path = Path(path)

    # Expand user home directory (~) first, then resolve to absolute path
    return path.expanduser().resolve()


def get_platform_specific_defaults() -> Dict[str, Any]:
    """
    Get platform-specific configuration defaults.

    Returns:
        Dictionary of platform-specific defaults
    """
    platform_info = get_platform_info()

    defaults = {
        'log_level': "INFO",
        'git_retry_attempts': 3,
        'git_retry_delay': 10.0,
        'http_timeout': 60.0
    }

    if platform_info.is_windows:
        # Windows runners are slower to release file handles between attempts
        defaults.update({
            'git_retry_attempts': 5,
            'git_retry_delay': 15.0,
        })

    return defaults


def get_git_executable() -> str:
    """Get the Git executable name for the current platform."""
    if get_platform_info().is_windows:
        return "git.exe"
    return "git"


def find_executable(name: str) -> Optional[str]:
    """Return the absolute path of an executable on PATH, or None."""
    return shutil.which(name)


def write_owner_only_file(path: Path, content: str) -> None:
    """
    Create a new file readable and writable only by the current user.

    The file must not already exist. On Windows the inherited ACL entries are
    stripped and the current user is granted full control.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # O_EXCL so a pre-existing file is never reused with looser permissions
    fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
    with os.fdopen(fd, 'w', encoding='utf-8', newline='\n') as f:
        f.write(content)

    if get_platform_info().is_windows:
        restrict_windows_acl(path)


def restrict_windows_acl(path: Path) -> None:
    """Remove inherited permissions from a file and grant access to the current user only."""
    user = os.environ.get('USERNAME')
    if not user:
        raise OSError("Unable to determine the current user to restrict file permissions")

    subprocess.run(
        ["icacls", str(path), "/inheritance:r", "/grant:r", f"{user}:F"],
        check=True,
        capture_output=True,
        text=True
    )


def _make_writable_and_retry(func, path, _exc_info):
    """rmtree error hook: git marks object files read-only on Windows."""
    os.chmod(path, stat.S_IWRITE)
    func(path)


def remove_path(path: Union[str, Path]) -> None:
    """
    Remove a file, symlink or directory tree. A missing path is not an error.
    """
    path = Path(path)

    if path.is_symlink() or path.is_file():
        try:
            path.unlink()
        except PermissionError:
            os.chmod(path, stat.S_IWRITE)
            path.unlink()
    elif path.is_dir():
        shutil.rmtree(path, onerror=_make_writable_and_retry)
