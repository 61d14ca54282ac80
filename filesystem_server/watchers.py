"""
Watcher registry: live watchdog observers keyed by the path string a caller
asked to watch, each with a small ring buffer of recent events.

Keys are the literal strings supplied by callers; ``./a`` and ``/abs/a`` are
two independent registrations.
"""

import fnmatch
import logging
import os
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from filesystem_server.errors import NotFoundError
from filesystem_server.models import FileWatchEvent, stat_path

logger = logging.getLogger(__name__)

DEFAULT_EVENT_CAPACITY = 10

# Dotfiles are ignored unless the caller supplies its own patterns.
DEFAULT_IGNORED = re.compile(r"(^|[/\\])\.")


@dataclass
class WatchRegistration:
    path: str
    target: str
    recursive: bool
    ignore_initial: bool
    ignored: Optional[List[str]]
    events: Deque[FileWatchEvent]
    watches_file: bool = False
    observer: Any = None
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def is_ignored(self, path: str) -> bool:
        relative = os.path.relpath(path, self.target)
        if relative == ".":
            return False
        if self.ignored is None:
            return DEFAULT_IGNORED.search(relative) is not None
        name = os.path.basename(path)
        return any(
            fnmatch.fnmatch(relative, pattern)
            or fnmatch.fnmatch(name, pattern)
            or fnmatch.fnmatch(path, pattern)
            for pattern in self.ignored
        )

    def record(self, kind: str, path: str) -> None:
        """Append an event; the deque drops the oldest entry once full."""
        if self.is_ignored(path):
            return
        stats = None
        if kind in ("add", "change", "addDir"):
            try:
                stats = stat_path(path)
            except OSError:
                stats = None
        self.events.append(FileWatchEvent(type=kind, path=path, stats=stats))

    def recent_events(self) -> List[Dict[str, Any]]:
        return [event.to_dict() for event in list(self.events)]

    def status(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "is_watching": True,
            "recursive": self.recursive,
            "ignore_initial": self.ignore_initial,
            "started_at": self.started_at,
            "last_events": self.recent_events(),
        }


class WatchEventHandler(FileSystemEventHandler):
    """Translates watchdog events into add/change/unlink/addDir/unlinkDir."""

    def __init__(self, registration: WatchRegistration):
        super().__init__()
        self.registration = registration

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception:
            logger.exception(f"Watcher error for {self.registration.path}")

    def _accepts(self, path: str) -> bool:
        if self.registration.watches_file:
            return path == self.registration.target
        return True

    def _record(self, kind: str, raw_path: Any) -> None:
        path = os.fsdecode(raw_path)
        if self._accepts(path):
            self.registration.record(kind, path)

    def on_created(self, event: FileSystemEvent) -> None:
        self._record("addDir" if event.is_directory else "add", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record("change", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._record("unlinkDir" if event.is_directory else "unlink", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._record("unlinkDir" if event.is_directory else "unlink", event.src_path)
        self._record("addDir" if event.is_directory else "add", event.dest_path)

    def emit_initial(self) -> None:
        """Report entries that already exist, as a fresh scan would."""
        registration = self.registration
        if registration.watches_file:
            registration.record("add", registration.target)
            return
        for root, dirs, files in os.walk(registration.target):
            dirs[:] = [name for name in dirs if not registration.is_ignored(os.path.join(root, name))]
            for name in dirs:
                registration.record("addDir", os.path.join(root, name))
            for name in files:
                registration.record("add", os.path.join(root, name))
            if not registration.recursive:
                break


class WatcherRegistry:
    """Process-wide store of watch registrations.

    Constructed once at start-up and handed to whoever needs it. Registration
    and replacement are not atomic; callers run on a single event loop.
    """

    def __init__(
        self,
        event_capacity: int = DEFAULT_EVENT_CAPACITY,
        observer_factory: Callable[[], Any] = Observer,
        join_timeout: float = 5.0,
    ):
        self.event_capacity = event_capacity
        self.observer_factory = observer_factory
        self.join_timeout = join_timeout
        self._registrations: Dict[str, WatchRegistration] = {}

    def __contains__(self, path: str) -> bool:
        return path in self._registrations

    def __len__(self) -> int:
        return len(self._registrations)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._registrations))

    def get(self, path: str) -> Optional[WatchRegistration]:
        return self._registrations.get(path)

    def start(
        self,
        path: str,
        recursive: bool = False,
        ignore_initial: bool = True,
        ignored: Optional[List[str]] = None,
    ) -> WatchRegistration:
        """Watch ``path``, replacing any registration under the same string."""
        target = os.path.abspath(path)
        if not os.path.exists(target):
            raise NotFoundError(f"Path not found: {path}")

        if path in self._registrations:
            logger.info(f"Replacing existing watcher for {path}")
            self.stop(path)

        registration = WatchRegistration(
            path=path,
            target=target,
            recursive=recursive,
            ignore_initial=ignore_initial,
            ignored=list(ignored) if ignored is not None else None,
            events=deque(maxlen=self.event_capacity),
            watches_file=not os.path.isdir(target),
        )
        handler = WatchEventHandler(registration)
        if not ignore_initial:
            handler.emit_initial()

        watch_root = os.path.dirname(target) if registration.watches_file else target
        observer = self.observer_factory()
        observer.schedule(handler, watch_root, recursive=recursive and not registration.watches_file)
        observer.start()
        registration.observer = observer

        self._registrations[path] = registration
        logger.info(f"Started watching {path} (recursive={recursive})")
        return registration

    def stop(self, path: str) -> WatchRegistration:
        registration = self._registrations.pop(path, None)
        if registration is None:
            raise NotFoundError(f"No active watcher found for path: {path}")
        self._close(registration)
        logger.info(f"Stopped watching {path}")
        return registration

    def _close(self, registration: WatchRegistration) -> None:
        observer = registration.observer
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=self.join_timeout)

    def cleanup(self) -> int:
        """Close every registration; errors on individual handles are logged."""
        closed = 0
        for path, registration in list(self._registrations.items()):
            try:
                self._close(registration)
                closed += 1
            except Exception as e:
                logger.warning(f"Failed to close watcher for {path}: {e}")
        self._registrations.clear()
        if closed:
            logger.info(f"Closed {closed} watcher(s)")
        return closed
