"""
Repository synchronization entry points.

`get_source` runs during the job: it prepares the working directory, picks
the git client or the archive fallback, configures credentials, fetches and
checks out, and always removes credentials again unless the caller asked for
them to persist. `cleanup` runs later, in a separate process, and removes
whatever credentials the job state record still points at.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..config import Config, load_configuration
from ..errors import SyncError
from ..platform import remove_path
from ..settings import SyncSettings
from ..state import JobState, REPOSITORY_PATH
from .archive import download_repository
from .auth import GitAuthHelper
from .command import GitCommandManager, MINIMUM_GIT_VERSION, create_command_manager, format_version
from .directory import prepare_existing_directory
from .performance_logger import PerformanceLogger
from .refs import get_checkout_info, get_ref_spec
from .utils import SyncResult, create_sync_result


class SyncPhase(Enum):
    """Progress of a single get_source call."""
    START = "start"
    DIRECTORY_PREPARED = "directory_prepared"
    CLIENT_SELECTED = "client_selected"
    AUTH_CONFIGURED = "auth_configured"
    FETCHED = "fetched"
    CHECKED_OUT = "checked_out"
    DONE = "done"
    AUTH_REMOVED = "auth_removed"


def _get_git_command_manager(settings: SyncSettings, repository_path: Path, config: Config) -> Optional[GitCommandManager]:
    """Bind a git client, or return None to fall back to the archive download."""
    logger = logging.getLogger('reposync.git_source.provider')
    logger.info(f"Working directory is '{repository_path}'")
    try:
        return create_command_manager(repository_path, settings.lfs, config)
    except (SyncError, OSError) as e:
        # LFS content cannot be materialized without git
        if settings.lfs:
            raise
        logger.debug(f"Git client unavailable, using the archive download instead: {e}")
        return None


def get_source(
    settings: SyncSettings,
    config: Optional[Config] = None,
    job_state: Optional[JobState] = None
) -> SyncResult:
    """
    Synchronize settings.repository_path with the requested revision.

    Raises:
        SyncError: on any fatal failure. Credentials have already been
            removed (unless persisted) by the time the error propagates.
    """
    logger = logging.getLogger('reposync.git_source.provider')
    config = config or load_configuration()
    job_state = job_state or JobState(config.state_file)
    perf = PerformanceLogger()

    repository_path = Path(settings.repository_path).absolute()
    phase = SyncPhase.START

    logger.info(f"Syncing repository: {settings.qualified_name}")

    # A plain file where the checkout should go
    if (repository_path.is_symlink() or repository_path.exists()) and not repository_path.is_dir():
        remove_path(repository_path)

    is_existing = repository_path.is_dir()
    if not is_existing:
        repository_path.mkdir(parents=True)

    git = _get_git_command_manager(settings, repository_path, config)

    disposition = None
    if is_existing:
        with perf.time_operation("prepare_existing_directory"):
            disposition = prepare_existing_directory(git, repository_path, settings.origin_url, settings.clean)
    phase = SyncPhase.DIRECTORY_PREPARED

    if git is None:
        logger.info("The repository will be downloaded using the REST API")
        logger.info(
            f"To create a local Git repository instead, add Git {format_version(MINIMUM_GIT_VERSION)} "
            f"or higher to the PATH"
        )
        with perf.time_operation("download_repository"):
            download_repository(
                settings.auth_token,
                settings.repository_owner,
                settings.repository_name,
                settings.ref,
                settings.commit,
                repository_path,
                config
            )
        phase = SyncPhase.DONE
        return create_sync_result(
            message=f"Downloaded {settings.qualified_name} without git",
            phase=phase,
            repository_path=str(repository_path),
            disposition=disposition,
            used_archive=True
        )

    phase = SyncPhase.CLIENT_SELECTED

    # Lets the post-job cleanup find this directory
    job_state.set(REPOSITORY_PATH, str(repository_path))

    if not (repository_path / ".git").is_dir():
        git.init()
        git.remote_add("origin", settings.origin_url)

    if not git.try_disable_automatic_garbage_collection():
        logger.warning(
            "Unable to turn off git automatic garbage collection. "
            "The git fetch operation may trigger garbage collection and cause a delay."
        )

    auth_helper = GitAuthHelper(git, settings, config, job_state)
    commit_info = None
    try:
        auth_helper.configure_auth()
        phase = SyncPhase.AUTH_CONFIGURED

        if settings.lfs:
            git.lfs_install()

        with perf.time_operation("fetch"):
            ref_spec = get_ref_spec(settings.ref, settings.commit)
            git.fetch(settings.fetch_depth, ref_spec)
        phase = SyncPhase.FETCHED

        checkout_info = get_checkout_info(git, settings.ref, settings.commit)

        # A dedicated LFS fetch downloads objects in parallel; checkout would fetch them one at a time
        if settings.lfs:
            with perf.time_operation("lfs_fetch"):
                git.lfs_fetch(checkout_info.start_point or checkout_info.ref)

        with perf.time_operation("checkout"):
            git.checkout(checkout_info.ref, checkout_info.start_point)
        phase = SyncPhase.CHECKED_OUT

        commit_info = git.log1()
        phase = SyncPhase.DONE
    except Exception:
        logger.error(f"Sync of {settings.qualified_name} failed after phase '{phase.value}'")
        raise
    finally:
        if not settings.persist_credentials:
            auth_helper.remove_auth()
            logger.debug(f"Credentials removed after phase '{phase.value}'")
            phase = SyncPhase.AUTH_REMOVED

    logger.debug(f"Phase timings: {perf.summary()}")

    return create_sync_result(
        message=f"Checked out {settings.qualified_name} at {settings.commit or settings.ref}",
        phase=phase,
        repository_path=str(repository_path),
        disposition=disposition,
        commit_info=commit_info,
        credentials_persisted=settings.persist_credentials
    )


def cleanup(
    repository_path: Optional[Union[str, Path]] = None,
    config: Optional[Config] = None,
    job_state: Optional[JobState] = None
) -> bool:
    """
    Remove lingering credentials for a previously synchronized directory.

    Runs without any in-memory state from get_source: the directory defaults
    to the one recorded in the job state, and credential file paths come
    from the same record. Returns True if removal was attempted.
    """
    logger = logging.getLogger('reposync.git_source.provider')
    config = config or load_configuration()
    job_state = job_state or JobState(config.state_file)

    if not repository_path:
        repository_path = job_state.get(REPOSITORY_PATH)
    if not repository_path:
        logger.debug("No repository path recorded, nothing to clean up")
        return False

    repository_path = Path(repository_path)
    if not (repository_path / ".git" / "config").is_file():
        logger.debug(f"No git repository at '{repository_path}', nothing to clean up")
        return False

    try:
        git = create_command_manager(repository_path, False, config)
    except Exception as e:
        logger.debug(f"Unable to bind git to '{repository_path}', skipping cleanup: {e}")
        return False

    auth_helper = GitAuthHelper(git, None, config, job_state)
    auth_helper.remove_auth()
    logger.info(f"Removed credentials from '{repository_path}'")
    return True
