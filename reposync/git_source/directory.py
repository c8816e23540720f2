"""Deciding whether an existing working directory can be reused."""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from ..platform import remove_path
from .command import GitCommandManager

LOCK_FILES = ("index.lock", "shallow.lock")


class DirectoryDisposition(Enum):
    """What happens to an existing working directory before fetching."""
    REUSE = "reuse"
    RESET_AND_REUSE = "reset_and_reuse"
    DISCARD = "discard"


def decide_disposition(
    client_available: bool,
    metadata_present: bool,
    url_matches: bool,
    clean_requested: bool,
    reconciled: bool = True,
    cleaned: Optional[bool] = None
) -> DirectoryDisposition:
    """
    Pure decision over the facts gathered about a directory.

    Args:
        client_available: A git client is bound (not archive fallback mode)
        metadata_present: The directory contains a .git directory
        url_matches: origin's fetch URL equals the expected repository URL
        clean_requested: The caller asked for a clean working tree
        reconciled: Detaching HEAD and deleting branches succeeded
        cleaned: Result of clean + reset; None when no clean was attempted
    """
    if not client_available:
        # The archive path writes a complete tree into an empty directory
        return DirectoryDisposition.DISCARD
    if not metadata_present or not url_matches:
        return DirectoryDisposition.DISCARD
    if not reconciled:
        return DirectoryDisposition.DISCARD
    if clean_requested:
        return DirectoryDisposition.RESET_AND_REUSE if cleaned else DirectoryDisposition.DISCARD
    return DirectoryDisposition.REUSE


def remove_lock_files(repository_path: Path) -> None:
    """Delete lock files left by a canceled run or crashed git process."""
    logger = logging.getLogger('reposync.git_source.directory')
    for name in LOCK_FILES:
        lock_path = repository_path / ".git" / name
        try:
            remove_path(lock_path)
        except OSError as e:
            logger.debug(f"Unable to delete '{lock_path}'. {e}")


def delete_branches(git: GitCommandManager) -> None:
    """Delete every local branch, then every remote-tracking branch under origin."""
    for branch in git.branch_list(False):
        git.branch_delete(False, branch)

    # Remote-tracking refs would otherwise conflict with the upcoming fetch
    for branch in git.branch_list(True):
        git.branch_delete(True, branch)


def _reconcile(git: GitCommandManager, repository_path: Path, clean: bool) -> Tuple[bool, Optional[bool]]:
    """Bring the checkout to a detached, branch-free state. Returns (reconciled, cleaned)."""
    logger = logging.getLogger('reposync.git_source.directory')

    remove_lock_files(repository_path)

    try:
        if not git.is_detached():
            git.checkout_detach()

        delete_branches(git)

        cleaned = None
        if clean:
            cleaned = True
            if not git.try_clean():
                logger.debug(
                    "The clean command failed. This might be caused by: 1) path too long, "
                    "2) permission issue, or 3) file in use. For further investigation, "
                    f"manually run 'git clean -ffdx' on the directory '{repository_path}'."
                )
                cleaned = False
            elif not git.try_reset():
                cleaned = False

            if not cleaned:
                logger.warning("Unable to clean or reset the repository. The repository will be recreated instead.")

        return True, cleaned
    except Exception as e:
        logger.warning(f"Unable to prepare the existing repository. The repository will be recreated instead. ({e})")
        return False, None


def delete_directory_contents(repository_path: Path) -> None:
    """Delete everything inside repository_path but keep the directory, which may be the cwd."""
    logger = logging.getLogger('reposync.git_source.directory')
    logger.info(f"Deleting the contents of '{repository_path}'")
    for entry in repository_path.iterdir():
        remove_path(entry)


def prepare_existing_directory(
    git: Optional[GitCommandManager],
    repository_path: Path,
    repository_url: str,
    clean: bool
) -> DirectoryDisposition:
    """
    Reconcile an existing working directory, or empty it when it cannot be reused.

    Errors while reconciling never propagate; they downgrade the disposition
    to DISCARD.
    """
    logger = logging.getLogger('reposync.git_source.directory')
    repository_path = Path(repository_path)

    client_available = git is not None
    metadata_present = (repository_path / ".git").is_dir()
    url_matches = False
    reconciled = False
    cleaned = None

    if client_available and metadata_present:
        try:
            fetch_url = git.try_get_fetch_url()
        except Exception as e:
            logger.warning(f"Unable to read the origin URL. The repository will be recreated instead. ({e})")
            fetch_url = ""
        url_matches = fetch_url == repository_url
        if not url_matches:
            logger.info(f"Existing origin '{fetch_url}' does not match '{repository_url}'")
        else:
            reconciled, cleaned = _reconcile(git, repository_path, clean)

    disposition = decide_disposition(
        client_available=client_available,
        metadata_present=metadata_present,
        url_matches=url_matches,
        clean_requested=clean,
        reconciled=reconciled,
        cleaned=cleaned
    )
    logger.debug(f"Directory disposition for '{repository_path}': {disposition.value}")

    if disposition is DirectoryDisposition.DISCARD:
        delete_directory_contents(repository_path)

    return disposition
