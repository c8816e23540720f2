"""MCP server exposing repository synchronization to agents over stdio."""

import logging
import os
import sys
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import Config, load_configuration, validate_configuration
from .errors import error_handler
from .git_source import get_source, cleanup
from .settings import SyncSettings


def register_tools(server: FastMCP, server_config: Config) -> None:
    """Register MCP tools with the server instance."""

    @server.tool()
    def sync_repository(
        repository: str,
        path: str,
        ref: str = "",
        commit: str = "",
        fetch_depth: int = 1,
        clean: bool = True,
        lfs: bool = False,
        persist_credentials: bool = False
    ) -> dict:
        """
        Check out a repository revision into a local working directory.

        Credentials are taken from the server's environment (REPOSYNC_TOKEN,
        REPOSYNC_SSH_KEY), never from tool arguments.

        Args:
            repository: Repository as "owner/name"
            path: Working directory to synchronize; an existing checkout of the
                same repository is reused
            ref: Branch, tag or fully qualified ref (e.g. "main", "refs/pull/1/merge")
            commit: Commit SHA to pin; takes precedence over ref for the fetch
            fetch_depth: Number of commits to fetch, 0 for full history
            clean: Clean and reset an existing checkout before fetching
            lfs: Download Git LFS files (requires git and git-lfs)
            persist_credentials: Leave the credentials configured after the checkout

        Returns:
            Dictionary describing the checkout, or a structured error
        """
        try:
            owner, _, name = repository.partition("/")
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
                ssh_strict=True,
                auth_token=os.getenv("REPOSYNC_TOKEN", ""),
                persist_credentials=persist_credentials,
                server_url=server_config.server_url
            )
            result = get_source(settings, server_config)
            return error_handler.create_success_response("sync_repository", result.to_dict())
        except Exception as e:
            return error_handler.to_response(e, "sync_repository", {"repository": repository}).to_dict()

    @server.tool()
    def cleanup_repository(path: Optional[str] = None) -> dict:
        """
        Remove credentials left in a working directory by sync_repository.

        Args:
            path: Working directory; defaults to the last one synchronized

        Returns:
            Dictionary with "cleaned" set when credentials were removed
        """
        try:
            removed = cleanup(path, server_config)
            return error_handler.create_success_response("cleanup_repository", {"cleaned": removed})
        except Exception as e:
            return error_handler.to_response(e, "cleanup_repository", {"repository_path": path}).to_dict()


def initialize_server(config: Optional[Config] = None) -> FastMCP:
    """Create the MCP server and register its tools."""
    from .cli import setup_logging

    config = config or load_configuration()
    setup_logging(config)

    init_logger = logging.getLogger('reposync.init')
    for problem in validate_configuration(config):
        init_logger.warning(problem)

    server = FastMCP("reposync")
    register_tools(server, config)
    init_logger.info("reposync MCP server initialized")
    return server


def main():
    """Main entry point for the MCP server with stdio transport."""
    # stdout carries the MCP protocol; logs go to stderr
    logging.basicConfig(level=logging.INFO, stream=sys.stderr,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    startup_logger = logging.getLogger('reposync.startup')

    try:
        server = initialize_server()
        startup_logger.info("Starting server with stdio transport")
        server.run(transport="stdio")
    except KeyboardInterrupt:
        startup_logger.info("Server stopped by user (Ctrl+C)")
    except Exception as e:
        startup_logger.critical(f"Server failed to start: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
