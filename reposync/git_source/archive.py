"""Materialize a repository tree through the hosting service's archive API, without git."""

import logging
import shutil
import tarfile
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import httpx

from ..config import Config
from ..errors import ArchiveDownloadError, ArchiveServerError, ConfigurationError
from ..platform import remove_path
from ..redaction import Secret
from .operations import execute_with_retry


def _archive_url(config: Config, owner: str, repo: str, ref: str) -> str:
    return (f"{config.api_url}/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"
            f"/tarball/{quote(ref, safe='/')}")


def _download(client: httpx.Client, url: str, headers: dict, archive_path: Path) -> None:
    with client.stream("GET", url, headers=headers) as response:
        if response.status_code != 200:
            response.read()
            status = response.status_code
            # Only server errors and rate limits are worth another attempt
            error_type = ArchiveServerError if status >= 500 or status == 429 else ArchiveDownloadError
            raise error_type(
                f"Unexpected response downloading archive: HTTP {status}",
                context={"status_code": status}
            )
        with open(archive_path, 'wb') as f:
            for chunk in response.iter_bytes():
                f.write(chunk)


def _check_member(member: tarfile.TarInfo, root: Path) -> None:
    target = (root / member.name).resolve()
    if not target.is_relative_to(root):
        raise ArchiveDownloadError(f"Archive member escapes extraction directory: {member.name}")

    if member.issym() or member.islnk():
        if Path(member.linkname).is_absolute():
            raise ArchiveDownloadError(f"Archive link has an absolute target: {member.name}")
        # Symlinks resolve against their own directory, hard links against the archive root
        base = (root / member.name).parent if member.issym() else root
        if not (base / member.linkname).resolve().is_relative_to(root):
            raise ArchiveDownloadError(f"Archive link points outside extraction directory: {member.name}")


def _extract(archive_path: Path, extract_path: Path,
             use_data_filter: bool = hasattr(tarfile, 'data_filter')) -> None:
    extract_path.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive_path, 'r:gz') as tar:
        if use_data_filter:
            tar.extractall(extract_path, filter='data')
        else:
            root = extract_path.resolve()
            for member in tar.getmembers():
                _check_member(member, root)
            tar.extractall(extract_path)


def download_repository(
    auth_token: Secret,
    owner: str,
    repo: str,
    ref: str,
    commit: str,
    repository_path: Path,
    config: Config,
    client: Optional[httpx.Client] = None
) -> None:
    """
    Download the tree at commit (or ref) and place its files in repository_path.

    The archive wraps everything in a single top-level directory; its contents
    are moved into repository_path. The archive and scratch directory are
    removed whether or not the download succeeds.
    """
    logger = logging.getLogger('reposync.git_source.archive')

    if config.temp_dir is None:
        raise ConfigurationError("RUNNER_TEMP is not defined; cannot download the repository archive")

    repository_path = Path(repository_path)
    repository_path.mkdir(parents=True, exist_ok=True)

    unique_id = uuid.uuid4().hex
    archive_path = config.temp_dir / f"{unique_id}.tar.gz"
    extract_path = config.temp_dir / unique_id
    config.temp_dir.mkdir(parents=True, exist_ok=True)

    url = _archive_url(config, owner, repo, commit or ref)
    headers = {"Accept": "application/vnd.github+json"}
    if auth_token:
        headers["Authorization"] = f"token {auth_token.reveal()}"

    own_client = client is None
    if own_client:
        client = httpx.Client(follow_redirects=True, timeout=config.http_timeout)

    try:
        logger.info(f"Downloading the archive for {owner}/{repo}@{commit or ref}")
        execute_with_retry(
            lambda: _download(client, url, headers, archive_path),
            "archive download",
            config,
            retry_on=(httpx.HTTPError, ArchiveServerError)
        )

        logger.info("Extracting the archive")
        _extract(archive_path, extract_path)

        entries = list(extract_path.iterdir())
        if len(entries) != 1 or not entries[0].is_dir():
            raise ArchiveDownloadError(
                f"Expected the archive to contain a single top-level directory, found {len(entries)} entries"
            )

        for entry in entries[0].iterdir():
            shutil.move(str(entry), str(repository_path / entry.name))

        logger.info(f"Repository files written to '{repository_path}'")

    except httpx.HTTPError as e:
        raise ArchiveDownloadError(f"Failed to download the repository archive: {e}") from e
    except (tarfile.TarError, OSError) as e:
        raise ArchiveDownloadError(f"Failed to extract the repository archive: {e}") from e
    finally:
        if own_client:
            client.close()
        for path in (archive_path, extract_path):
            try:
                remove_path(path)
            except OSError as e:
                logger.debug(f"Unable to remove '{path}': {e}")
