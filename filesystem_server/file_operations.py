"""
Single-file operations: read, write, copy, move, delete and stat.

Every public function returns an OperationResult; failures never escape.
"""

import base64
import binascii
import logging
import os
import shutil
import stat
from typing import Optional

from filesystem_server.errors import (
    AlreadyExistsError,
    NotFoundError,
    PathIsDirectoryError,
    ValidationError,
    require_text,
)
from filesystem_server.models import stat_path
from filesystem_server.results import OperationResult, operation

logger = logging.getLogger(__name__)

TEXT_ENCODINGS = {
    "utf8": "utf-8",
    "utf-8": "utf-8",
    "utf16le": "utf-16-le",
    "latin1": "latin-1",
    "ascii": "ascii",
    "binary": "latin-1",
}
BYTE_ENCODINGS = ("base64", "hex")
ENCODINGS = tuple(TEXT_ENCODINGS) + BYTE_ENCODINGS

# --- Helper Functions ---

def check_encoding(encoding: str) -> str:
    if encoding not in ENCODINGS:
        raise ValidationError(f"Unsupported encoding '{encoding}', expected one of {', '.join(ENCODINGS)}")
    return encoding


def decode_bytes(raw: bytes, encoding: str) -> str:
    """Turn raw file bytes into the string form requested by ``encoding``."""
    if encoding == "base64":
        return base64.b64encode(raw).decode("ascii")
    if encoding == "hex":
        return raw.hex()
    return raw.decode(TEXT_ENCODINGS[encoding], errors="replace")


def encode_text(content: str, encoding: str) -> bytes:
    """Inverse of decode_bytes for content supplied by a caller."""
    try:
        if encoding == "base64":
            return base64.b64decode(content, validate=True)
        if encoding == "hex":
            return bytes.fromhex(content)
        return content.encode(TEXT_ENCODINGS[encoding])
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Content is not valid {encoding}: {e}") from e


def ensure_exists(path: str) -> None:
    if not os.path.lexists(path):
        raise NotFoundError(f"Path not found: {path}")


def ensure_parent(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _check_destination(destination: str, overwrite: bool) -> None:
    # Existence probe, not atomic with the copy/rename that follows.
    if os.path.lexists(destination) and not overwrite:
        raise AlreadyExistsError("Destination file exists and overwrite is disabled")

# --- Operations ---

@operation("read file")
def read_file(
    path: str,
    encoding: str = "utf8",
    offset: Optional[int] = None,
    limit: Optional[int] = None,
) -> OperationResult:
    """
    Read a file. With ``offset``/``limit`` the whole file is loaded and the
    byte range ``[offset, offset + limit)`` is sliced out of it.
    """
    require_text(path, "path")
    check_encoding(encoding)
    if offset is not None and offset < 0:
        raise ValidationError("offset must be >= 0")
    if limit is not None and limit < 1:
        raise ValidationError("limit must be >= 1")

    ensure_exists(path)
    if os.path.isdir(path):
        raise PathIsDirectoryError(f"Path is a directory: {path}")

    with open(path, "rb") as handle:
        raw = handle.read()
    if offset is not None or limit is not None:
        start = offset or 0
        end = start + limit if limit is not None else len(raw)
        raw = raw[start:end]

    return OperationResult.ok(
        "File read successfully",
        path,
        {"content": decode_bytes(raw, encoding), "encoding": encoding, "size": len(raw)},
    )


@operation("write file")
def write_file(
    path: str,
    content: str,
    encoding: str = "utf8",
    create_dirs: bool = False,
    append: bool = False,
) -> OperationResult:
    require_text(path, "path")
    check_encoding(encoding)
    if not isinstance(content, str):
        raise ValidationError("content must be a string")
    data = encode_text(content, encoding)

    if create_dirs:
        ensure_parent(path)
    with open(path, "ab" if append else "wb") as handle:
        handle.write(data)

    return OperationResult.ok(
        f"File {'appended to' if append else 'written'} successfully",
        path,
        {"size": len(data), "encoding": encoding, "created": not append},
    )


@operation("copy file", path_param="destination")
def copy_file(
    source: str,
    destination: str,
    overwrite: bool = False,
    preserve_timestamps: bool = True,
) -> OperationResult:
    require_text(source, "source")
    require_text(destination, "destination")
    ensure_exists(source)
    if os.path.isdir(source):
        raise PathIsDirectoryError(f"Source is a directory: {source}")
    _check_destination(destination, overwrite)

    ensure_parent(destination)
    shutil.copyfile(source, destination)
    if preserve_timestamps:
        st = os.stat(source)
        os.utime(destination, (st.st_atime, st.st_mtime))

    return OperationResult.ok(
        "File copied successfully",
        destination,
        {"source": source, "destination": destination, "size": os.stat(destination).st_size},
    )


@operation("move file", path_param="destination")
def move_file(source: str, destination: str, overwrite: bool = False) -> OperationResult:
    """Rename ``source`` to ``destination``; cross-volume moves surface as errors."""
    require_text(source, "source")
    require_text(destination, "destination")
    ensure_exists(source)
    _check_destination(destination, overwrite)

    ensure_parent(destination)
    os.replace(source, destination)

    return OperationResult.ok(
        "File moved successfully",
        destination,
        {"source": source, "destination": destination, "size": os.lstat(destination).st_size},
    )


@operation("delete")
def delete_file(path: str, recursive: bool = False, force: bool = False) -> OperationResult:
    require_text(path, "path")
    if not os.path.lexists(path):
        if not force:
            raise NotFoundError(f"Path not found: {path}")
        return OperationResult.ok("Path does not exist (ignored due to force flag)", path)

    st = os.lstat(path)
    is_dir = stat.S_ISDIR(st.st_mode)
    if is_dir:
        if not recursive:
            raise PathIsDirectoryError("Cannot delete directory without recursive flag")
        shutil.rmtree(path)
    else:
        os.unlink(path)

    logger.info(f"Deleted {'directory' if is_dir else 'file'}: {path}")
    return OperationResult.ok(
        f"{'Directory' if is_dir else 'File'} deleted successfully",
        path,
        {"type": "directory" if is_dir else "file", "size": st.st_size},
    )


@operation("get file info")
def get_file_info(path: str, follow_symlinks: bool = True) -> OperationResult:
    require_text(path, "path")
    info = stat_path(path, follow_symlinks=follow_symlinks)
    return OperationResult.ok("File information retrieved successfully", path, info.to_dict())
