"""
Resource router: resolves ``file://<category>/<argument>`` identifiers into
cached read-only views.

Every view is looked up in the TTL cache first. A hit is returned as a copy
tagged ``cached: true``; a miss is computed, stamped with a timestamp, stored
and returned tagged ``cached: false``.
"""

import codecs
import json
import logging
import mimetypes
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote

from filesystem_server.advanced_operations import search_in_files
from filesystem_server.cache import TTLCache, make_key
from filesystem_server.config import ServerConfig
from filesystem_server.directory_operations import list_directory
from filesystem_server.errors import UnsupportedError
from filesystem_server.file_operations import get_file_info
from filesystem_server.watchers import WatcherRegistry

logger = logging.getLogger(__name__)

SCHEME = "file://"

RESOURCE_TEMPLATES = [
    {
        "uri": "file://metadata/{path}",
        "name": "File/Directory Metadata",
        "description": "Cached metadata for files and directories including permissions, size and modification dates",
    },
    {
        "uri": "file://directory/{path}",
        "name": "Directory Contents Cache",
        "description": "Cached directory listing with file details, sizes and metadata for faster browsing",
    },
    {
        "uri": "file://search/cache/{query}",
        "name": "File Search Results Cache",
        "description": "Cached results from content searches under the configured search root",
    },
    {
        "uri": "file://watch/status/{path}",
        "name": "File Watch Status",
        "description": "Current status and recent events for file system watchers",
    },
    {
        "uri": "file://recent/{type}",
        "name": "Recently Accessed Files",
        "description": "Recently read, written or modified files of the given type (read/write/modified)",
    },
    {
        "uri": "file://structure/{path}",
        "name": "Directory Tree Structure",
        "description": "One level of directory structure with file counts and size summaries",
    },
    {
        "uri": "file://content/preview/{path}",
        "name": "File Content Preview",
        "description": "Cached preview of file content (first characters) for quick inspection",
    },
]

# Cache kinds keyed by a single path argument.
PATH_KINDS = ("metadata", "directory", "watch_status", "directory_structure", "content_preview")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ResourceRouter:
    def __init__(
        self,
        cache: TTLCache,
        registry: WatcherRegistry,
        config: Optional[ServerConfig] = None,
    ):
        self.cache = cache
        self.registry = registry
        self.config = config or ServerConfig()
        self._routes: List[Tuple[str, Callable[[str], Dict[str, Any]]]] = [
            ("metadata/", self.metadata),
            ("directory/", self.directory),
            ("search/cache/", self.search),
            ("watch/status/", self.watch_status),
            ("recent/", self.recent),
            ("structure/", self.structure),
            ("content/preview/", self.preview),
        ]

    def read(self, uri: str) -> Dict[str, Any]:
        """Dispatch a full resource URI to its view."""
        if uri.startswith(SCHEME):
            rest = uri[len(SCHEME):]
            for prefix, handler in self._routes:
                if rest.startswith(prefix):
                    return handler(rest[len(prefix):])
        raise UnsupportedError(f"Unknown resource: {uri}")

    def _cached(
        self,
        kind: str,
        params: Dict[str, Any],
        compute: Callable[[], Dict[str, Any]],
        ttl: Optional[float] = None,
    ) -> Dict[str, Any]:
        key = make_key(kind, params)
        payload = self.cache.get(key)
        if payload is not None:
            return {**payload, "cached": True}

        payload = {**compute(), "cached": False, "timestamp": _now()}
        self.cache.set(key, payload, self.config.default_ttl if ttl is None else ttl)
        return dict(payload)

    def invalidate_path(self, path: str) -> int:
        """Drop cached views of ``path``, of everything below it, and of its
        parent directory listing and structure."""
        target = path.rstrip("/\\") or path
        parent = os.path.dirname(target)
        base = target.rstrip("/\\")
        prefixes = tuple({base + "/", base + os.sep})

        def stale(key: str) -> bool:
            kind, _, raw = key.partition(":")
            if kind not in PATH_KINDS:
                return False
            cached = json.loads(raw).get("path")
            if not isinstance(cached, str):
                return False
            cached = cached.rstrip("/\\") or cached
            if cached == target or cached.startswith(prefixes):
                return True
            return bool(parent) and cached == parent and kind in ("directory", "directory_structure")

        removed = self.cache.delete_where(stale)
        if removed:
            logger.debug(f"Invalidated {removed} cached view(s) for {path}")
        return removed

    # --- Views ---

    def metadata(self, argument: str) -> Dict[str, Any]:
        path = unquote(argument)
        return self._cached(
            "metadata",
            {"path": path},
            lambda: {"path": path, "metadata": get_file_info(path).to_dict()},
        )

    def directory(self, argument: str) -> Dict[str, Any]:
        path = unquote(argument)
        return self._cached(
            "directory",
            {"path": path},
            lambda: {"path": path, "contents": list_directory(path).to_dict()},
        )

    def search(self, argument: str) -> Dict[str, Any]:
        query = unquote(argument)
        directory = str(self.config.search_root)
        return self._cached(
            "search_cache",
            {"query": query, "directory": directory},
            lambda: {
                "query": query,
                "directory": directory,
                "results": search_in_files(query, directory, context_lines=2).to_dict(),
            },
        )

    def watch_status(self, argument: str) -> Dict[str, Any]:
        path = unquote(argument)

        def compute() -> Dict[str, Any]:
            registration = self.registry.get(path)
            if registration is None:
                return {"path": path, "is_watching": False, "recursive": False, "last_events": []}
            return registration.status()

        return self._cached("watch_status", {"path": path}, compute, ttl=self.config.watch_status_ttl)

    def recent(self, argument: str) -> Dict[str, Any]:
        # No access tracking exists, so the list is always empty.
        access_type = unquote(argument)
        return self._cached(
            "recent_files",
            {"type": access_type},
            lambda: {"type": access_type, "files": [], "count": 0},
        )

    def structure(self, argument: str) -> Dict[str, Any]:
        path = unquote(argument)
        return self._cached(
            "directory_structure",
            {"path": path},
            lambda: {"path": path, "structure": self._structure(path)},
        )

    def preview(self, argument: str) -> Dict[str, Any]:
        path = unquote(argument)
        return self._cached(
            "content_preview",
            {"path": path},
            lambda: {"path": path, "preview": self._preview(path)},
        )

    # --- Computations ---

    def _structure(self, path: str) -> Dict[str, Any]:
        """One level of children with eagerly computed counts; not recursive."""
        name = os.path.basename(path.rstrip("/\\")) or path
        stats = {"total_files": 0, "total_dirs": 0, "total_size": 0}
        listing = list_directory(path)
        if not listing.success:
            return {"name": name, "path": path, "error": listing.error, "children": [], "stats": stats}

        children = []
        for item in listing.data["items"]:
            size = item.get("size") or 0
            if item["type"] == "directory":
                stats["total_dirs"] += 1
            else:
                stats["total_files"] += 1
                stats["total_size"] += size
            children.append({"name": item["name"], "path": item["path"], "type": item["type"], "size": size})
        return {"name": name, "path": path, "children": children, "stats": stats}

    def _preview(self, path: str) -> Dict[str, Any]:
        info_result = get_file_info(path)
        if not info_result.success:
            return {
                "path": path,
                "preview": "Unable to get file info",
                "can_preview": False,
                "error": info_result.error,
            }

        info = info_result.data
        if info["is_directory"]:
            return {"path": path, "preview": "Directory contents", "size": info["size"], "can_preview": False}

        preview = "Binary file or read error"
        can_preview = False
        try:
            with open(path, "rb") as handle:
                raw = handle.read(self.config.preview_bytes)
            if b"\x00" not in raw:
                # A multi-byte character cut at the byte limit is dropped.
                text = codecs.getincrementaldecoder("utf-8")().decode(raw, final=False)
                preview = text[: self.config.preview_chars]
                can_preview = True
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Preview unavailable for {path}: {e}")

        return {
            "path": path,
            "preview": preview,
            "can_preview": can_preview,
            "size": info["size"],
            "mime_type": info.get("mime_type") or mimetypes.guess_type(path)[0] or "application/octet-stream",
            "encoding": "utf8" if can_preview else "binary",
        }
