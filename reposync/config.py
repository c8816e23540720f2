"""Configuration management for reposync."""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List
from urllib.parse import urlparse

from dotenv import load_dotenv

from .platform import get_platform_specific_defaults, normalize_path

load_dotenv()  # Load .env file if it exists

DEFAULT_SERVER_URL = "https://github.com"
STATE_FILE_NAME = "reposync-state.jsonl"


@dataclass
class Config:
    """Process-level configuration shared by the sync and cleanup invocations."""

    # Job temporary directory (RUNNER_TEMP); holds ephemeral credential files
    temp_dir: Optional[Path] = None

    # Job state record surviving between the main and post invocations
    state_file: Optional[Path] = None

    # Hosting service
    server_url: str = DEFAULT_SERVER_URL
    api_url: Optional[str] = None

    # Logging
    log_level: str = "INFO"

    # Network retries
    git_retry_attempts: int = 3
    git_retry_delay: float = 10.0
    http_timeout: float = 60.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.temp_dir, str):
            self.temp_dir = Path(self.temp_dir) if self.temp_dir else None
        if self.temp_dir is not None:
            self.temp_dir = normalize_path(self.temp_dir)

        if isinstance(self.state_file, str):
            self.state_file = Path(self.state_file) if self.state_file else None
        if self.state_file is None and self.temp_dir is not None:
            self.state_file = self.temp_dir / STATE_FILE_NAME
        if self.state_file is not None:
            self.state_file = normalize_path(self.state_file)

        self.server_url = self.server_url.rstrip('/')
        parsed = urlparse(self.server_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError(f"Invalid server URL: {self.server_url}")

        if not self.api_url:
            if parsed.hostname.lower() == "github.com":
                self.api_url = "https://api.github.com"
            else:
                self.api_url = f"{self.server_url}/api/v3"
        self.api_url = self.api_url.rstrip('/')

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        self.log_level = self.log_level.upper()
        if self.log_level not in valid_log_levels:
            raise ValueError(f"Invalid log level: {self.log_level}. Must be one of {valid_log_levels}")

        if self.git_retry_attempts < 1:
            raise ValueError("git_retry_attempts must be at least 1")

        if self.git_retry_delay < 0:
            raise ValueError("git_retry_delay must be non-negative")

        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be positive")

    @property
    def server_hostname(self) -> str:
        """Host name of the hosting service, e.g. github.com."""
        return urlparse(self.server_url).hostname


def load_configuration() -> Config:
    """Load configuration from environment variables with platform-specific defaults."""
    try:
        platform_defaults = get_platform_specific_defaults()

        runner_temp = os.getenv("RUNNER_TEMP", "")
        if not runner_temp:
            logging.getLogger('reposync.config').debug(
                "RUNNER_TEMP is not set; SSH key material cannot be written for this job"
            )

        return Config(
            temp_dir=Path(runner_temp) if runner_temp else None,
            state_file=os.getenv("REPOSYNC_STATE_FILE") or None,
            server_url=os.getenv("REPOSYNC_SERVER_URL", DEFAULT_SERVER_URL),
            api_url=os.getenv("REPOSYNC_API_URL") or None,
            log_level=os.getenv("REPOSYNC_LOG_LEVEL", platform_defaults['log_level']).upper(),
            git_retry_attempts=int(os.getenv("REPOSYNC_RETRY_ATTEMPTS", str(platform_defaults['git_retry_attempts']))),
            git_retry_delay=float(os.getenv("REPOSYNC_RETRY_DELAY", str(platform_defaults['git_retry_delay']))),
            http_timeout=float(os.getenv("REPOSYNC_HTTP_TIMEOUT", str(platform_defaults['http_timeout'])))
        )
    except (ValueError, TypeError) as e:
        raise ValueError(f"Configuration error: {e}")


def validate_configuration(config: Config) -> List[str]:
    """Validate configuration and return any errors or warnings."""
    errors = []

    if config.temp_dir is None:
        errors.append("WARNING: RUNNER_TEMP is not set; SSH authentication will be unavailable")
    else:
        try:
            config.temp_dir.mkdir(parents=True, exist_ok=True)
            test_file = config.temp_dir / ".reposync_write_test"
            test_file.write_text("test")
            test_file.unlink()
        except PermissionError:
            errors.append(f"ERROR: No write permission for temp directory: {config.temp_dir}")
        except OSError as e:
            errors.append(f"ERROR: Cannot access temp directory {config.temp_dir}: {e}")

    if config.state_file is None:
        errors.append("WARNING: No job state file configured; post-job cleanup cannot locate credentials")

    if not config.server_url.startswith("https://"):
        errors.append(f"WARNING: Server URL is not HTTPS: {config.server_url}")

    return errors
