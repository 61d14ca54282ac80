"""
filesystem_server – FileSystem MCP server.

Exposes file, directory, search, diff, archive and watch tools plus cached
``file://`` resources over the MCP stdio transport.

Dependencies (Python ≥3.10):
    pip install mcp watchdog

Start the server:
    python -m filesystem_server
"""

import atexit
import json
import logging
import signal
import sys
from dataclasses import dataclass
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from filesystem_server import advanced_operations, directory_operations, file_operations
from filesystem_server.cache import TTLCache
from filesystem_server.config import ServerConfig
from filesystem_server.resources import RESOURCE_TEMPLATES, ResourceRouter
from filesystem_server.results import OperationResult
from filesystem_server.watchers import WatcherRegistry

logger = logging.getLogger(__name__)

JSON_MIME = "application/json"


def serialize(result: OperationResult) -> str:
    return json.dumps(result.to_dict(), indent=2, default=str)


@dataclass
class FileSystemServer:
    mcp: FastMCP
    config: ServerConfig
    cache: TTLCache
    registry: WatcherRegistry
    router: ResourceRouter

    def cleanup(self) -> int:
        """Release every watch handle; safe to call more than once."""
        return advanced_operations.cleanup(self.registry)


def create_server(
    config: Optional[ServerConfig] = None,
    cache: Optional[TTLCache] = None,
    registry: Optional[WatcherRegistry] = None,
) -> FileSystemServer:
    """Build the stores once and register every tool and resource on them."""
    config = config or ServerConfig()
    cache = cache if cache is not None else TTLCache(config.default_ttl, config.cache_max_entries)
    registry = registry if registry is not None else WatcherRegistry(config.watch_event_capacity)
    router = ResourceRouter(cache, registry, config)
    mcp = FastMCP(config.server_name)

    def respond(result: OperationResult, *changed: Optional[str]) -> str:
        if result.success:
            for path in changed:
                if path:
                    router.invalidate_path(path)
        return serialize(result)

    # --- File Tools ---

    @mcp.tool()
    def read_file(path: str, encoding: str = "utf8", offset: Optional[int] = None, limit: Optional[int] = None) -> str:
        """
        Read file content.
        - encoding: utf8, utf16le, latin1, ascii, binary, base64 or hex.
        - offset/limit select a byte range of the file.
        """
        return respond(file_operations.read_file(path, encoding, offset, limit))

    @mcp.tool()
    def write_file(
        path: str,
        content: str,
        encoding: str = "utf8",
        create_dirs: bool = False,
        append: bool = False,
    ) -> str:
        """Write content to a file, optionally creating parent directories or appending."""
        return respond(file_operations.write_file(path, content, encoding, create_dirs, append), path)

    @mcp.tool()
    def copy_file(source: str, destination: str, overwrite: bool = False, preserve_timestamps: bool = True) -> str:
        """Copy a file. Fails if the destination exists unless overwrite is set."""
        return respond(
            file_operations.copy_file(source, destination, overwrite, preserve_timestamps), destination
        )

    @mcp.tool()
    def move_file(source: str, destination: str, overwrite: bool = False) -> str:
        """Move or rename a file or directory within one volume."""
        return respond(file_operations.move_file(source, destination, overwrite), source, destination)

    @mcp.tool()
    def delete_file(path: str, recursive: bool = False, force: bool = False) -> str:
        """
        Delete a file or directory.
        - recursive is required for directories.
        - force reports a missing path as success.
        """
        return respond(file_operations.delete_file(path, recursive, force), path)

    @mcp.tool()
    def get_file_info(path: str, follow_symlinks: bool = True) -> str:
        """Get detailed information about a file or directory."""
        return respond(file_operations.get_file_info(path, follow_symlinks))

    # --- Directory Tools ---

    @mcp.tool()
    def create_directory(path: str, recursive: bool = False, mode: Optional[str] = None) -> str:
        """Create a directory. mode is an octal string such as '755'."""
        return respond(directory_operations.create_directory(path, recursive, mode), path)

    @mcp.tool()
    def list_directory(
        path: str,
        recursive: bool = False,
        include_hidden: bool = False,
        max_depth: Optional[int] = None,
        file_types: Optional[List[str]] = None,
        on_entry_error: str = "skip",
    ) -> str:
        """
        List directory contents.
        - file_types filters by 'file', 'directory' or 'symlink'.
        - on_entry_error: skip (default), collect or abort.
        """
        return respond(
            directory_operations.list_directory(path, recursive, include_hidden, max_depth, file_types, on_entry_error)
        )

    @mcp.tool()
    def find_files(
        pattern: str,
        directory: str = ".",
        include_hidden: bool = False,
        file_types: Optional[List[str]] = None,
        case_sensitive: bool = False,
        max_depth: Optional[int] = None,
        on_entry_error: str = "skip",
    ) -> str:
        """Find files with a glob pattern (e.g. '*.txt', '**/*.py') relative to directory."""
        return respond(
            directory_operations.find_files(
                pattern, directory, include_hidden, file_types, case_sensitive, max_depth, on_entry_error
            )
        )

    @mcp.tool()
    def get_directory_size(path: str, on_entry_error: str = "skip") -> str:
        """Calculate the total size and file/directory counts of a directory tree."""
        return respond(directory_operations.get_directory_size(path, on_entry_error))

    # --- Advanced Tools ---

    @mcp.tool()
    def search_in_files(
        pattern: str,
        directory: str = ".",
        file_pattern: Optional[str] = None,
        max_depth: Optional[int] = None,
        include_hidden: bool = False,
        case_sensitive: bool = False,
        whole_word: bool = False,
        context_lines: int = 2,
        on_entry_error: str = "skip",
    ) -> str:
        """Search file contents for a regular expression, with context lines around each match."""
        return respond(
            advanced_operations.search_in_files(
                pattern,
                directory,
                file_pattern,
                max_depth,
                include_hidden,
                case_sensitive,
                whole_word,
                context_lines,
                on_entry_error,
            )
        )

    @mcp.tool()
    def watch_file(
        path: str,
        recursive: bool = False,
        ignore_initial: bool = True,
        ignored: Optional[List[str]] = None,
    ) -> str:
        """Start watching a file or directory; an existing watch on the same path is replaced."""
        return respond(advanced_operations.watch_file(registry, path, recursive, ignore_initial, ignored), path)

    @mcp.tool()
    def stop_watching(path: str) -> str:
        """Stop watching a path previously passed to watch_file."""
        return respond(advanced_operations.stop_watching(registry, path), path)

    @mcp.tool()
    def compare_files(file1: str, file2: str, ignore_whitespace: bool = False, ignore_case: bool = False) -> str:
        """Compare two files line by line (positional, no alignment)."""
        return respond(advanced_operations.compare_files(file1, file2, ignore_whitespace, ignore_case))

    @mcp.tool()
    def archive_files(
        files: List[str],
        archive_path: str,
        format: str = "zip",
        compression_level: int = 6,
        include_hidden: bool = False,
        exclude_patterns: Optional[List[str]] = None,
    ) -> str:
        """Create a zip, tar or gzip (tar.gz) archive from files and directories."""
        return respond(
            advanced_operations.archive_files(
                files, archive_path, format, compression_level, include_hidden, exclude_patterns
            ),
            archive_path,
        )

    @mcp.tool()
    def extract_archive(archive_path: str, destination: str) -> str:
        """Extract a zip or tar archive into destination (created if missing)."""
        return respond(advanced_operations.extract_archive(archive_path, destination), destination)

    # --- Resources ---

    templates = {template["uri"]: template for template in RESOURCE_TEMPLATES}

    def resource(uri: str):
        template = templates[uri]
        return mcp.resource(
            uri, name=template["name"], description=template["description"], mime_type=JSON_MIME
        )

    def dump(payload: dict) -> str:
        return json.dumps(payload, indent=2, default=str)

    @resource("file://metadata/{path}")
    def metadata_resource(path: str) -> str:
        return dump(router.read(f"file://metadata/{path}"))

    @resource("file://directory/{path}")
    def directory_resource(path: str) -> str:
        return dump(router.read(f"file://directory/{path}"))

    @resource("file://search/cache/{query}")
    def search_resource(query: str) -> str:
        return dump(router.read(f"file://search/cache/{query}"))

    @resource("file://watch/status/{path}")
    def watch_status_resource(path: str) -> str:
        return dump(router.read(f"file://watch/status/{path}"))

    @resource("file://recent/{type}")
    def recent_resource(type: str) -> str:
        return dump(router.read(f"file://recent/{type}"))

    @resource("file://structure/{path}")
    def structure_resource(path: str) -> str:
        return dump(router.read(f"file://structure/{path}"))

    @resource("file://content/preview/{path}")
    def preview_resource(path: str) -> str:
        return dump(router.read(f"file://content/preview/{path}"))

    return FileSystemServer(mcp=mcp, config=config, cache=cache, registry=registry, router=router)

# --- Process lifecycle ---

def install_signal_handlers(server: FileSystemServer) -> None:
    def handle(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        server.cleanup()
        sys.exit(0)

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


def main() -> None:
    config = ServerConfig.from_env()
    # stdout carries the protocol; logs go to stderr.
    logging.basicConfig(level=config.log_level, format="[%(levelname)s] %(name)s: %(message)s", stream=sys.stderr)

    server = create_server(config)
    atexit.register(server.cleanup)
    install_signal_handlers(server)

    logger.info(f"MCP server '{config.server_name}' starting with STDIO transport")
    try:
        server.mcp.run()
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
        server.cleanup()
    except Exception as e:
        logger.exception(f"Server error: {e}")
        server.cleanup()
        sys.exit(1)


if __name__ == "__main__":
    main()
