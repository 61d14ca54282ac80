"""Data records shared by the operation sets, the registry and the resources."""

import mimetypes
import os
import stat
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

FILE_TYPES = ("file", "directory", "symlink")


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def _kind(mode: int) -> str:
    if stat.S_ISLNK(mode):
        return "symlink"
    if stat.S_ISDIR(mode):
        return "directory"
    if stat.S_ISREG(mode):
        return "file"
    return "unknown"


@dataclass
class FileInfo:
    """Point-in-time metadata for one path, built from a single stat call."""

    name: str
    path: str
    type: str
    size: int
    is_directory: bool
    is_file: bool
    is_symlink: bool
    permissions: str
    created_at: str
    modified_at: str
    accessed_at: str
    extension: Optional[str] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_stat(cls, path: str, st: os.stat_result) -> "FileInfo":
        kind = _kind(st.st_mode)
        extension = Path(path).suffix or None
        mime_type = mimetypes.guess_type(path)[0] if extension else None
        created = getattr(st, "st_birthtime", None) or st.st_ctime
        return cls(
            name=os.path.basename(os.path.normpath(path)) or path,
            path=path,
            type=kind,
            size=st.st_size,
            is_directory=kind == "directory",
            is_file=kind == "file",
            is_symlink=kind == "symlink",
            permissions=format(st.st_mode, "o"),
            created_at=_timestamp(created),
            modified_at=_timestamp(st.st_mtime),
            accessed_at=_timestamp(st.st_atime),
            extension=extension,
            mime_type=mime_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def stat_path(path: str, follow_symlinks: bool = True) -> FileInfo:
    """Stat ``path`` and wrap the result; OSErrors propagate to the caller."""
    st = os.stat(path) if follow_symlinks else os.lstat(path)
    return FileInfo.from_stat(path, st)


@dataclass
class SearchMatch:
    line: int
    column: int
    text: str
    context: str


@dataclass
class SearchResult:
    path: str
    file_info: FileInfo
    matches: List[SearchMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "matches": [asdict(match) for match in self.matches],
            "file_info": self.file_info.to_dict(),
        }


WATCH_EVENT_TYPES = ("add", "change", "unlink", "addDir", "unlinkDir")


@dataclass
class FileWatchEvent:
    type: str
    path: str
    stats: Optional[FileInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type, "path": self.path}
        if self.stats is not None:
            result["stats"] = self.stats.to_dict()
        return result
