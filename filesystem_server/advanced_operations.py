"""
Advanced operations: text search across files, positional file comparison,
archive creation/extraction and the watch front ends over WatcherRegistry.
"""

import fnmatch
import logging
import os
import re
import tarfile
import zipfile
from typing import Dict, List, Optional, Tuple

from filesystem_server.directory_operations import check_max_depth, ensure_directory, is_hidden, iter_glob
from filesystem_server.errors import (
    EntryErrors,
    UnsupportedError,
    ValidationError,
    require_text,
)
from filesystem_server.file_operations import ensure_exists, ensure_parent
from filesystem_server.models import SearchMatch, SearchResult, stat_path
from filesystem_server.results import OperationResult, format_bytes, operation
from filesystem_server.watchers import WatcherRegistry

logger = logging.getLogger(__name__)

ARCHIVE_FORMATS = ("zip", "tar", "gzip")

# --- Search ---

def compile_search_pattern(pattern: str, case_sensitive: bool, whole_word: bool) -> "re.Pattern[str]":
    expression = rf"\b{pattern}\b" if whole_word else pattern
    try:
        return re.compile(expression, 0 if case_sensitive else re.IGNORECASE)
    except re.error as e:
        raise ValidationError(f"Invalid search pattern: {e}") from e


def scan_lines(lines: List[str], regex: "re.Pattern[str]", context_lines: int) -> List[SearchMatch]:
    """Collect matches line by line, each with its surrounding context block."""
    matches = []
    last = len(lines) - 1
    for index, line in enumerate(lines):
        if not line:
            continue
        for match in regex.finditer(line):
            start = max(0, index - context_lines)
            end = min(last, index + context_lines)
            matches.append(
                SearchMatch(
                    line=index + 1,
                    column=match.start() + 1,
                    text=match.group(0),
                    context="\n".join(lines[start:end + 1]),
                )
            )
    return matches


@operation("search in files", path_param="directory")
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
) -> OperationResult:
    """
    Search text files under ``directory`` for a regular expression.

    Candidate files come from the glob ``file_pattern`` (every file by
    default). Files that cannot be read as UTF-8 text are skipped.
    """
    require_text(pattern, "pattern")
    check_max_depth(max_depth)
    if context_lines < 0:
        raise ValidationError("context_lines must be >= 0")
    errors = EntryErrors(on_entry_error)
    regex = compile_search_pattern(pattern, case_sensitive, whole_word)
    resolved = os.path.abspath(directory)
    ensure_directory(resolved)

    results: List[SearchResult] = []
    files_searched = 0
    candidates = iter_glob(resolved, file_pattern or "**/*", include_hidden, case_sensitive, max_depth, errors)
    for candidate in candidates:
        try:
            info = stat_path(candidate)
            if not info.is_file:
                continue
            with open(candidate, "r", encoding="utf-8") as handle:
                content = handle.read()
        except (OSError, UnicodeDecodeError) as e:
            errors.handle(candidate, e)
            continue

        files_searched += 1
        matches = scan_lines(content.split("\n"), regex, context_lines)
        if matches:
            results.append(SearchResult(path=candidate, file_info=info, matches=matches))

    data = {
        "results": [result.to_dict() for result in results],
        "total_matches": sum(len(result.matches) for result in results),
        "files_searched": files_searched,
        "pattern": pattern,
        "directory": resolved,
    }
    return OperationResult.ok(
        f"Search completed: {len(results)} files with matches", directory, errors.annotate(data)
    )

# --- Compare ---

def normalize_text(content: str, ignore_whitespace: bool, ignore_case: bool) -> str:
    if ignore_whitespace:
        content = re.sub(r"\s+", " ", content).strip()
    if ignore_case:
        content = content.lower()
    return content


def positional_diff(lines1: List[str], lines2: List[str]) -> List[Dict]:
    """Compare line i of one file with line i of the other.

    No alignment is attempted: one inserted line turns every following line
    into a ``modified`` entry.
    """
    differences = []
    for index in range(max(len(lines1), len(lines2))):
        line1 = lines1[index] if index < len(lines1) else ""
        line2 = lines2[index] if index < len(lines2) else ""
        if line1 == line2:
            continue
        if index >= len(lines1):
            differences.append({"line": index + 1, "type": "added", "content": line2})
        elif index >= len(lines2):
            differences.append({"line": index + 1, "type": "removed", "content": line1})
        else:
            differences.append({"line": index + 1, "type": "modified", "content": f"- {line1}\n+ {line2}"})
    return differences


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="replace") as handle:
        return handle.read()


@operation("compare files", path_param="file1")
def compare_files(
    file1: str,
    file2: str,
    ignore_whitespace: bool = False,
    ignore_case: bool = False,
) -> OperationResult:
    require_text(file1, "file1")
    require_text(file2, "file2")
    ensure_exists(file1)
    ensure_exists(file2)

    content1 = _read_text(file1)
    content2 = _read_text(file2)
    lines1 = normalize_text(content1, ignore_whitespace, ignore_case).split("\n")
    lines2 = normalize_text(content2, ignore_whitespace, ignore_case).split("\n")

    differences = positional_diff(lines1, lines2)
    identical = not differences
    message = "Files are identical" if identical else f"Files differ: {len(differences)} differences found"
    return OperationResult.ok(
        message,
        file1,
        {
            "identical": identical,
            "differences": differences,
            "total_differences": len(differences),
            "file1": {"path": file1, "lines": len(lines1), "size": len(content1)},
            "file2": {"path": file2, "lines": len(lines2), "size": len(content2)},
            "options": {"ignore_whitespace": ignore_whitespace, "ignore_case": ignore_case},
        },
    )

# --- Archives ---

def _excluded(name: str, exclude_patterns: Optional[List[str]]) -> bool:
    if not exclude_patterns:
        return False
    basename = os.path.basename(name)
    return any(fnmatch.fnmatch(name, p) or fnmatch.fnmatch(basename, p) for p in exclude_patterns)


def collect_members(
    files: List[str],
    archive_path: str,
    include_hidden: bool,
    exclude_patterns: Optional[List[str]],
) -> List[Tuple[str, str, bool]]:
    """Expand the inputs into (path, member name, is_dir) tuples.

    Explicitly named files are always kept; hidden and excluded filters only
    apply to the contents of directory inputs.
    """
    archive_abs = os.path.abspath(archive_path)
    members = []
    for item in files:
        base = os.path.basename(os.path.normpath(item))
        if not os.path.isdir(item):
            members.append((item, base, False))
            continue
        members.append((item, base, True))
        for root, dirs, names in os.walk(item):
            rel_root = os.path.relpath(root, item)
            prefix = base if rel_root == "." else f"{base}/{rel_root.replace(os.sep, '/')}"
            dirs[:] = [
                d for d in dirs
                if (include_hidden or not is_hidden(d)) and not _excluded(f"{prefix}/{d}", exclude_patterns)
            ]
            for d in dirs:
                members.append((os.path.join(root, d), f"{prefix}/{d}", True))
            for name in names:
                full = os.path.join(root, name)
                if not include_hidden and is_hidden(name):
                    continue
                if _excluded(f"{prefix}/{name}", exclude_patterns) or os.path.abspath(full) == archive_abs:
                    continue
                members.append((full, f"{prefix}/{name}", False))
    return members


def _write_zip(archive_path: str, members: List[Tuple[str, str, bool]], level: int) -> None:
    if level == 0:
        archive = zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_STORED)
    else:
        archive = zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=level)
    with archive:
        for path, name, is_dir in members:
            archive.write(path, name + "/" if is_dir else name)


def _write_tar(archive_path: str, members: List[Tuple[str, str, bool]], fmt: str, level: int) -> None:
    if fmt == "gzip":
        archive = tarfile.open(archive_path, "w:gz", compresslevel=level)
    else:
        archive = tarfile.open(archive_path, "w")
    with archive:
        for path, name, _ in members:
            archive.add(path, arcname=name, recursive=False)


@operation("create archive", path_param="archive_path")
def archive_files(
    files: List[str],
    archive_path: str,
    format: str = "zip",
    compression_level: int = 6,
    include_hidden: bool = False,
    exclude_patterns: Optional[List[str]] = None,
) -> OperationResult:
    if not files:
        raise ValidationError("At least one file is required")
    require_text(archive_path, "archive_path")
    if format not in ARCHIVE_FORMATS:
        raise ValidationError(f"Unsupported archive format '{format}', expected one of {', '.join(ARCHIVE_FORMATS)}")
    if not 0 <= compression_level <= 9:
        raise ValidationError("compression_level must be between 0 and 9")

    # Every input must exist before anything is written.
    for item in files:
        ensure_exists(item)

    members = collect_members(files, archive_path, include_hidden, exclude_patterns)
    ensure_parent(archive_path)
    if format == "zip":
        _write_zip(archive_path, members, compression_level)
    else:
        _write_tar(archive_path, members, format, compression_level)

    size = os.stat(archive_path).st_size
    files_count = sum(1 for _, _, is_dir in members if not is_dir)
    logger.info(f"Created {format} archive {archive_path} with {files_count} file(s)")
    return OperationResult.ok(
        "Archive created successfully",
        archive_path,
        {
            "archive_path": archive_path,
            "format": format,
            "compression_level": compression_level,
            "size": size,
            "files_count": files_count,
            "human_readable": format_bytes(size),
        },
    )


@operation("extract archive", path_param="destination")
def extract_archive(archive_path: str, destination: str) -> OperationResult:
    """Extract a zip or tar archive; the container type is detected from content."""
    require_text(archive_path, "archive_path")
    require_text(destination, "destination")
    ensure_exists(archive_path)
    os.makedirs(destination, exist_ok=True)

    if zipfile.is_zipfile(archive_path):
        detected = "zip"
        with zipfile.ZipFile(archive_path) as archive:
            files_count = sum(1 for info in archive.infolist() if not info.is_dir())
            archive.extractall(destination)
    elif tarfile.is_tarfile(archive_path):
        detected = "tar"
        with tarfile.open(archive_path, "r:*") as archive:
            files_count = sum(1 for member in archive.getmembers() if member.isfile())
            if hasattr(tarfile, "data_filter"):
                archive.extractall(destination, filter="data")
            else:
                archive.extractall(destination)
    else:
        raise UnsupportedError(f"Unrecognized archive format: {archive_path}")

    return OperationResult.ok(
        "Archive extracted successfully",
        destination,
        {
            "archive_path": archive_path,
            "destination": destination,
            "format": detected,
            "extracted": True,
            "files_count": files_count,
        },
    )

# --- Watching ---

@operation("start watching")
def watch_file(
    registry: WatcherRegistry,
    path: str,
    recursive: bool = False,
    ignore_initial: bool = True,
    ignored: Optional[List[str]] = None,
) -> OperationResult:
    require_text(path, "path")
    registration = registry.start(path, recursive=recursive, ignore_initial=ignore_initial, ignored=ignored)
    return OperationResult.ok(
        "File watching started successfully",
        path,
        {
            "watching": True,
            "recursive": recursive,
            "ignore_initial": ignore_initial,
            "events": registration.recent_events(),
        },
    )


@operation("stop watching")
def stop_watching(registry: WatcherRegistry, path: str) -> OperationResult:
    require_text(path, "path")
    registry.stop(path)
    return OperationResult.ok("Watching stopped successfully", path, {"watching": False})


def cleanup(registry: WatcherRegistry) -> int:
    """Close every active watcher; used on shutdown."""
    return registry.cleanup()
