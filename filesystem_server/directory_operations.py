"""
Directory operations: create, list, find by glob pattern and size.

Traversals stat every kept entry on its own; an entry that cannot be read is
handled by the caller's EntryErrors policy (skipped silently by default).
"""

import fnmatch
import logging
import os
from typing import Iterator, List, Optional, Sequence, Tuple

from filesystem_server.errors import (
    EntryErrors,
    NotFoundError,
    PathNotDirectoryError,
    ValidationError,
    require_text,
)
from filesystem_server.models import FILE_TYPES, FileInfo, stat_path
from filesystem_server.results import OperationResult, format_bytes, operation

logger = logging.getLogger(__name__)

# --- Helper Functions ---

def check_file_types(file_types: Optional[Sequence[str]]) -> Optional[List[str]]:
    if file_types is None:
        return None
    unknown = [kind for kind in file_types if kind not in FILE_TYPES]
    if unknown:
        raise ValidationError(f"Invalid file types: {', '.join(unknown)}")
    return list(file_types)


def check_max_depth(max_depth: Optional[int]) -> Optional[int]:
    if max_depth is not None and max_depth < 1:
        raise ValidationError("max_depth must be >= 1")
    return max_depth


def ensure_directory(path: str) -> None:
    if not os.path.lexists(path):
        raise NotFoundError(f"Path not found: {path}")
    if not os.path.isdir(path):
        raise PathNotDirectoryError(f"Not a directory: {path}")


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def split_pattern(pattern: str) -> List[str]:
    return [part for part in pattern.replace("\\", "/").split("/") if part not in ("", ".")]


def relative_pattern(directory: str, pattern: str) -> str:
    if not os.path.isabs(pattern):
        return pattern
    relative = os.path.relpath(pattern, os.path.abspath(directory))
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        raise ValidationError(f"Pattern {pattern} is outside of {directory}")
    return relative


def match_parts(pattern: Sequence[str], parts: Sequence[str], case_sensitive: bool) -> bool:
    """Match path segments against glob segments; ``**`` spans any number of them."""
    if not pattern:
        return not parts
    head = pattern[0]
    if head == "**":
        return any(
            match_parts(pattern[1:], parts[index:], case_sensitive)
            for index in range(len(parts) + 1)
        )
    if not parts:
        return False
    name = parts[0]
    if not case_sensitive:
        name, head = name.lower(), head.lower()
    return fnmatch.fnmatchcase(name, head) and match_parts(pattern[1:], parts[1:], case_sensitive)


def iter_glob(
    directory: str,
    pattern: str,
    include_hidden: bool = False,
    case_sensitive: bool = False,
    max_depth: Optional[int] = None,
    errors: Optional[EntryErrors] = None,
) -> Iterator[str]:
    """Yield paths under ``directory`` whose relative path matches ``pattern``.

    Paths come out in enumeration order, each entry before its children.
    Symlinked directories are not descended into. An absolute pattern is
    taken relative to ``directory`` and must lie inside it.
    """
    pattern = relative_pattern(directory, pattern)
    parts = split_pattern(pattern)
    if not parts:
        return
    errors = errors or EntryErrors()
    limit = None if "**" in parts else len(parts)
    if max_depth is not None:
        limit = max_depth if limit is None else min(limit, max_depth)
    yield from _walk_glob(directory, (), parts, limit, include_hidden, case_sensitive, errors)


def _walk_glob(
    root: str,
    prefix: Tuple[str, ...],
    parts: List[str],
    limit: Optional[int],
    include_hidden: bool,
    case_sensitive: bool,
    errors: EntryErrors,
) -> Iterator[str]:
    current = os.path.join(root, *prefix)
    try:
        with os.scandir(current) as it:
            entries = list(it)
    except OSError as e:
        errors.handle(current, e)
        return

    for entry in entries:
        if not include_hidden and is_hidden(entry.name):
            continue
        relative = prefix + (entry.name,)
        if match_parts(parts, relative, case_sensitive):
            yield entry.path
        try:
            descend = entry.is_dir(follow_symlinks=False)
        except OSError:
            descend = False
        if descend and (limit is None or len(relative) < limit):
            yield from _walk_glob(root, relative, parts, limit, include_hidden, case_sensitive, errors)


def _traverse(
    path: str,
    items: List[FileInfo],
    depth: int,
    max_depth: float,
    recursive: bool,
    include_hidden: bool,
    file_types: Optional[List[str]],
    errors: EntryErrors,
) -> None:
    if depth >= max_depth:
        return
    try:
        with os.scandir(path) as it:
            entries = list(it)
    except OSError as e:
        errors.handle(path, e)
        return

    for entry in entries:
        if not include_hidden and is_hidden(entry.name):
            continue
        try:
            info = stat_path(entry.path)
            descend = entry.is_dir(follow_symlinks=False)
        except OSError as e:
            errors.handle(entry.path, e)
            continue
        if file_types is None or info.type in file_types:
            items.append(info)
        if recursive and descend and depth < max_depth - 1:
            _traverse(entry.path, items, depth + 1, max_depth, recursive, include_hidden, file_types, errors)

# --- Operations ---

@operation("create directory")
def create_directory(path: str, recursive: bool = False, mode: Optional[str] = None) -> OperationResult:
    require_text(path, "path")
    permissions = 0o777
    if mode is not None:
        try:
            permissions = int(mode, 8)
        except ValueError as e:
            raise ValidationError(f"Invalid octal mode: {mode}") from e

    if recursive:
        os.makedirs(path, mode=permissions, exist_ok=True)
    else:
        os.mkdir(path, permissions)

    return OperationResult.ok(
        "Directory created successfully", path, {"created": True, "recursive": recursive}
    )


@operation("list directory")
def list_directory(
    path: str,
    recursive: bool = False,
    include_hidden: bool = False,
    max_depth: Optional[int] = None,
    file_types: Optional[List[str]] = None,
    on_entry_error: str = "skip",
) -> OperationResult:
    """
    List a directory. Without ``recursive`` only direct children are listed;
    with ``recursive`` and no ``max_depth`` the walk is unbounded.
    """
    require_text(path, "path")
    file_types = check_file_types(file_types)
    check_max_depth(max_depth)
    errors = EntryErrors(on_entry_error)
    ensure_directory(path)

    effective_depth = max_depth or (float("inf") if recursive else 1)
    items: List[FileInfo] = []
    _traverse(path, items, 0, effective_depth, recursive, include_hidden, file_types, errors)

    data = {
        "items": [item.to_dict() for item in items],
        "count": len(items),
        "recursive": recursive,
        "include_hidden": include_hidden,
    }
    return OperationResult.ok(
        f"Directory listed successfully ({len(items)} items)", path, errors.annotate(data)
    )


@operation("find files", path_param="directory")
def find_files(
    pattern: str,
    directory: str = ".",
    include_hidden: bool = False,
    file_types: Optional[List[str]] = None,
    case_sensitive: bool = False,
    max_depth: Optional[int] = None,
    on_entry_error: str = "skip",
) -> OperationResult:
    require_text(pattern, "pattern")
    file_types = check_file_types(file_types)
    check_max_depth(max_depth)
    errors = EntryErrors(on_entry_error)
    resolved = os.path.abspath(directory)
    ensure_directory(resolved)

    files: List[FileInfo] = []
    for match in iter_glob(resolved, pattern, include_hidden, case_sensitive, max_depth, errors):
        try:
            info = stat_path(match)
        except OSError as e:
            errors.handle(match, e)
            continue
        if file_types is None or info.type in file_types:
            files.append(info)

    data = {
        "files": [info.to_dict() for info in files],
        "count": len(files),
        "pattern": pattern,
        "directory": resolved,
    }
    return OperationResult.ok(
        f"Found {len(files)} files matching pattern", directory, errors.annotate(data)
    )


@operation("calculate directory size")
def get_directory_size(path: str, on_entry_error: str = "skip") -> OperationResult:
    require_text(path, "path")
    errors = EntryErrors(on_entry_error)
    ensure_directory(path)

    total_size = 0
    file_count = 0
    dir_count = 0
    pending = [path]
    while pending:
        current = pending.pop()
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError as e:
            errors.handle(current, e)
            continue
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    dir_count += 1
                    pending.append(entry.path)
                else:
                    total_size += entry.stat().st_size
                    file_count += 1
            except OSError as e:
                errors.handle(entry.path, e)

    data = {
        "total_size": total_size,
        "file_count": file_count,
        "dir_count": dir_count,
        "human_readable": format_bytes(total_size),
    }
    return OperationResult.ok("Directory size calculated successfully", path, errors.annotate(data))
