"""Uniform success/failure envelope returned by every filesystem operation."""

import functools
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from filesystem_server.errors import FileSystemToolError, translate_os_error

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    success: bool
    message: str
    path: Optional[str] = None
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def ok(cls, message: str, path: Optional[str] = None, data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, path=path, data=data)

    @classmethod
    def failure(cls, action: str, exc: Exception, path: Optional[str] = None) -> "OperationResult":
        """Build a failed envelope from any exception raised inside an operation."""
        if isinstance(exc, OSError):
            exc = translate_os_error(exc)
        if isinstance(exc, FileSystemToolError):
            error_type = exc.code
        else:
            error_type = "IOError"
        error = str(exc) or exc.__class__.__name__
        return cls(
            success=False,
            message=f"Failed to {action}: {error}",
            path=path,
            error=error,
            error_type=error_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "message": self.message}
        for key in ("path", "data", "error", "error_type"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


def operation(action: str, path_param: Optional[str] = "path") -> Callable:
    """Catch every failure at the operation boundary and return an envelope.

    ``action`` completes the sentence "Failed to ..."; ``path_param`` names the
    argument echoed back as the envelope's ``path`` on failure.
    """

    def decorator(func: Callable[..., OperationResult]) -> Callable[..., OperationResult]:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> OperationResult:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                path = None
                if path_param is not None:
                    try:
                        bound = signature.bind_partial(*args, **kwargs)
                        bound.apply_defaults()
                        value = bound.arguments.get(path_param)
                        path = str(value) if value is not None else None
                    except TypeError:
                        path = None
                logger.warning(f"Failed to {action} ({path}): {e}")
                return OperationResult.failure(action, e, path=path)

        return wrapper

    return decorator


def format_bytes(size: int) -> str:
    """Format a byte count as a human readable string (1024 steps)."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB", "PB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
