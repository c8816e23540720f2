"""
reposync - check out a repository revision into a job working directory.

Works with or without a local git client, reuses an existing checkout when it
is safe to do so, and keeps ephemeral credentials (SSH keys, tokens) out of
durable artifacts beyond the lifetime of the job.
"""

__version__ = "1.0.0"
__description__ = "Repository checkout with ephemeral credential handling for job runners"

from .settings import SyncSettings
from .git_source import get_source, cleanup

__all__ = ["SyncSettings", "get_source", "cleanup"]
