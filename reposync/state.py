"""
Job state shared between the main sync invocation and the post-job cleanup.

The two invocations run in separate processes, so state lives in a small
append-only record file: one JSON object per line, later records for the same
key win. Records are never rewritten or deleted.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

# Keys
REPOSITORY_PATH = "repository_path"
SSH_KEY_PATH = "ssh_key_path"
SSH_KNOWN_HOSTS_PATH = "ssh_known_hosts_path"
SERVER_URL = "server_url"


class JobState:
    """Append-only key/value record file."""

    def __init__(self, path: Optional[Union[str, Path]]):
        self.path = Path(path) if path else None
        self.logger = logging.getLogger('reposync.state')

    def set(self, key: str, value: str) -> None:
        """Append a record. Raises OSError if the record cannot be written."""
        if self.path is None:
            self.logger.debug(f"No job state file configured, not saving '{key}'")
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps({"key": key, "value": str(value)})
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())

        self.logger.debug(f"Saved job state '{key}'")

    def get(self, key: str) -> str:
        """Return the most recent value recorded for key, or an empty string."""
        return self.read_all().get(key, "")

    def read_all(self) -> Dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}

        values: Dict[str, str] = {}
        with open(self.path, 'r', encoding='utf-8') as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                    values[record["key"]] = record["value"]
                except (ValueError, KeyError, TypeError):
                    # A torn final write from a killed process must not block cleanup
                    self.logger.debug(f"Skipping malformed job state record at line {line_number}")
        return values
