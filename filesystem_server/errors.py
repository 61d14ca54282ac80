"""Error taxonomy for filesystem tools and the per-entry error policy."""

import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class FileSystemToolError(Exception):
    """Base class for failures reported through a result envelope."""

    code = "IOError"


class ValidationError(FileSystemToolError):
    code = "ValidationError"


class NotFoundError(FileSystemToolError):
    code = "NotFound"


class AlreadyExistsError(FileSystemToolError):
    code = "AlreadyExists"


class PathIsDirectoryError(FileSystemToolError):
    code = "IsADirectory"


class PathNotDirectoryError(FileSystemToolError):
    code = "NotADirectory"


class UnsupportedError(FileSystemToolError):
    code = "Unsupported"


def translate_os_error(exc: OSError) -> FileSystemToolError:
    """Map an OSError onto the taxonomy, keeping the OS message."""
    message = exc.strerror or str(exc)
    if exc.filename is not None:
        message = f"{message}: {exc.filename}"
    if isinstance(exc, FileNotFoundError):
        return NotFoundError(message)
    if isinstance(exc, FileExistsError):
        return AlreadyExistsError(message)
    if isinstance(exc, IsADirectoryError):
        return PathIsDirectoryError(message)
    if isinstance(exc, NotADirectoryError):
        return PathNotDirectoryError(message)
    return FileSystemToolError(message)


ENTRY_ERROR_POLICIES = ("skip", "collect", "abort")


class EntryErrors:
    """Applies the traversal policy to errors raised by individual entries.

    ``skip`` drops the entry silently, ``collect`` records it so the caller can
    report it, and ``abort`` re-raises so the enclosing operation fails.
    """

    def __init__(self, policy: str = "skip"):
        if policy not in ENTRY_ERROR_POLICIES:
            raise ValidationError(
                f"Invalid on_entry_error '{policy}', expected one of {', '.join(ENTRY_ERROR_POLICIES)}"
            )
        self.policy = policy
        self.skipped: List[Dict[str, str]] = []

    def handle(self, path: str, exc: Exception) -> None:
        if self.policy == "abort":
            if isinstance(exc, OSError):
                raise translate_os_error(exc) from exc
            raise exc
        logger.debug(f"Skipping unreadable entry {path}: {exc}")
        if self.policy == "collect":
            self.skipped.append({"path": path, "error": str(exc)})

    def annotate(self, data: Dict) -> Dict:
        """Add the ``skipped`` list to a payload when collecting."""
        if self.policy == "collect":
            data["skipped"] = self.skipped
        return data


def require_text(value: Optional[str], name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{name} is required")
    return value
