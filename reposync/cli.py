"""
Command line entry point.

A job runs `reposync sync` as its checkout step and `reposync post` as its
post-job hook. Secrets are read from the environment only
(REPOSYNC_TOKEN, REPOSYNC_SSH_KEY) so they never appear in a process listing.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

import typer

from .config import Config, load_configuration, validate_configuration
from .errors import error_handler
from .git_source import get_source, cleanup
from .redaction import secret_masker
from .settings import SyncSettings

app = typer.Typer(
    name="reposync",
    help="Check out a repository revision into a job working directory",
    add_completion=False
)


def setup_logging(config: Config) -> None:
    """Configure logging with structured operation prefixes and secret masking."""
    class StructuredFormatter(logging.Formatter):
        def format(self, record):
            # Add structured data if available
            if hasattr(record, 'operation'):
                record.msg = f"[{record.operation}] {record.msg}"
            return super().format(record)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    formatter = StructuredFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    for handler in logging.getLogger().handlers:
        handler.setFormatter(formatter)

    secret_masker.install()

    # GitPython logs every command line at debug level
    logging.getLogger('git').setLevel(logging.WARNING)


def _load(log_level: Optional[str]) -> Config:
    config = load_configuration()
    if log_level:
        config.log_level = log_level.upper()
    setup_logging(config)

    logger = logging.getLogger('reposync.cli')
    for problem in validate_configuration(config):
        if problem.startswith("ERROR"):
            logger.error(problem)
        else:
            logger.debug(problem)
    return config


def _split_repository(repository: str) -> tuple:
    parts = repository.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise typer.BadParameter(f"Invalid repository '{repository}'. Expected format {{owner}}/{{repo}}.")
    return parts[0], parts[1]


@app.command()
def sync(
    repository: str = typer.Option(..., envvar="REPOSYNC_REPOSITORY", help="Repository as owner/name"),
    path: Path = typer.Option(Path("."), envvar="REPOSYNC_PATH", help="Working directory to synchronize"),
    ref: str = typer.Option("", envvar="REPOSYNC_REF", help="Branch, tag or fully qualified ref"),
    commit: str = typer.Option("", envvar="REPOSYNC_COMMIT", help="Commit SHA to check out"),
    fetch_depth: int = typer.Option(1, envvar="REPOSYNC_FETCH_DEPTH", help="Number of commits to fetch, 0 for all history"),
    clean: bool = typer.Option(True, "--clean/--no-clean", envvar="REPOSYNC_CLEAN", help="Clean and reset an existing checkout"),
    lfs: bool = typer.Option(False, "--lfs/--no-lfs", envvar="REPOSYNC_LFS", help="Download Git LFS files"),
    ssh_known_hosts: str = typer.Option("", envvar="REPOSYNC_SSH_KNOWN_HOSTS", help="Additional known hosts entries"),
    ssh_strict: bool = typer.Option(True, "--ssh-strict/--no-ssh-strict", envvar="REPOSYNC_SSH_STRICT", help="Verify SSH host keys"),
    persist_credentials: bool = typer.Option(
        True, "--persist-credentials/--no-persist-credentials", envvar="REPOSYNC_PERSIST_CREDENTIALS",
        help="Leave credentials in the git config for later steps"
    ),
    log_level: Optional[str] = typer.Option(None, help="Override REPOSYNC_LOG_LEVEL")
):
    """Synchronize a working directory with a repository revision."""
    config = _load(log_level)
    owner, name = _split_repository(repository)

    try:
        settings = SyncSettings(
            repository_owner=owner,
            repository_name=name,
            repository_path=path,
            ref=ref,
            commit=commit,
            fetch_depth=fetch_depth,
            clean=clean,
            lfs=lfs,
            ssh_key=os.getenv("REPOSYNC_SSH_KEY", ""),
            ssh_known_hosts=ssh_known_hosts,
            ssh_strict=ssh_strict,
            auth_token=os.getenv("REPOSYNC_TOKEN", ""),
            persist_credentials=persist_credentials,
            server_url=config.server_url
        )
        result = get_source(settings, config)
    except Exception as e:
        response = error_handler.to_response(e, "sync", {"repository": repository})
        typer.echo(json.dumps(response.to_dict(), indent=2), err=True)
        raise typer.Exit(1)

    typer.echo(json.dumps(error_handler.create_success_response("sync", result.to_dict()), indent=2))


@app.command()
def post(
    path: Optional[Path] = typer.Option(None, envvar="REPOSYNC_POST_PATH", help="Directory to clean; defaults to the recorded one"),
    log_level: Optional[str] = typer.Option(None, help="Override REPOSYNC_LOG_LEVEL")
):
    """Remove credentials left behind by a previous sync."""
    config = _load(log_level)

    try:
        removed = cleanup(path, config)
    except Exception as e:
        response = error_handler.to_response(e, "post", {"repository_path": str(path) if path else None})
        typer.echo(json.dumps(response.to_dict(), indent=2), err=True)
        raise typer.Exit(1)

    typer.echo(json.dumps(error_handler.create_success_response("post", {"cleaned": removed}), indent=2))


def main():
    app()


if __name__ == "__main__":
    main()
