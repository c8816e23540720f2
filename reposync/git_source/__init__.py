"""Git source synchronization for reposync."""

from .provider import SyncPhase, get_source, cleanup
from .utils import SyncResult, create_sync_result
from .directory import DirectoryDisposition, decide_disposition, prepare_existing_directory
from .auth import GitAuthHelper
from .command import GitCommandManager, create_command_manager

__all__ = [
    'SyncPhase',
    'get_source',
    'cleanup',
    'SyncResult',
    'create_sync_result',
    'DirectoryDisposition',
    'decide_disposition',
    'prepare_existing_directory',
    'GitAuthHelper',
    'GitCommandManager',
    'create_command_manager'
]
