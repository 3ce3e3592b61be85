# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""File watching for tracked project roots.

Only events that can change the set of paths matter: creations, deletions
and moves. Content modifications are ignored. Events are debounced so a burst
(e.g. a checkout touching hundreds of files) produces one notification per
path after the burst settles.
"""

import logging
import os
import threading
from typing import Callable, Dict, Optional, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from pogo.search.ignore_patterns import should_ignore_path

logger = logging.getLogger(__name__)


class ProjectEventHandler(FileSystemEventHandler):
    """Event handler for one project root."""

    def __init__(
        self,
        root: str,
        on_change: Callable[[str], None],
        skip_dirs: Optional[Set[str]] = None,
        debounce_delay: float = 0.2,
    ):
        """Initialize the handler.

        Args:
            root: Absolute, normalized project root
            on_change: Callback receiving each changed path
            skip_dirs: Directory names whose contents are ignored
            debounce_delay: Seconds of quiet before notifying
        """
        super().__init__()
        self.root = root
        self.on_change = on_change
        self.skip_dirs = skip_dirs
        self._debounce_lock = threading.Lock()
        self._pending_changes: Set[str] = set()
        self._debounce_timer: Optional[threading.Timer] = None
        self._debounce_delay = debounce_delay
        self.root_removed = False

    def _should_process(self, path: str) -> bool:
        return not should_ignore_path(path, self.root, self.skip_dirs)

    def _debounced_notify(self) -> None:
        """Notify of changes after debounce period."""
        with self._debounce_lock:
            changes = sorted(self._pending_changes)
            self._pending_changes.clear()
            self._debounce_timer = None

        for path in changes:
            try:
                self.on_change(path)
            except Exception as e:
                logger.warning(f"Error in file change callback for {path}: {e}")

    def _schedule_notification(self, path: str) -> None:
        with self._debounce_lock:
            self._pending_changes.add(path)

            if self._debounce_timer:
                self._debounce_timer.cancel()

            self._debounce_timer = threading.Timer(self._debounce_delay, self._debounced_notify)
            self._debounce_timer.daemon = True
            self._debounce_timer.start()

    def _record(self, event_path) -> None:
        path = os.fsdecode(event_path)
        if self._should_process(path):
            logger.info(f"File update: {path}")
            self._schedule_notification(path)

    def on_created(self, event: FileSystemEvent) -> None:
        self._record(event.src_path)

    def _check_root(self, event_path) -> None:
        if os.fsdecode(event_path) == self.root:
            logger.warning(f"Watched root {self.root} was removed")
            self.root_removed = True

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._check_root(event.src_path)
        self._record(event.src_path)

    def on_moved(self, event: FileSystemMovedEvent) -> None:
        self._check_root(event.src_path)
        self._record(event.src_path)
        self._record(event.dest_path)

    def cancel(self) -> None:
        """Drop pending notifications."""
        with self._debounce_lock:
            if self._debounce_timer:
                self._debounce_timer.cancel()
                self._debounce_timer = None
            self._pending_changes.clear()


def _identity(path: str) -> Optional[Tuple[int, int]]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st.st_dev, st.st_ino


class ProjectWatcher:
    """Watches project roots recursively and reports path-set changes.

    If the OS watch facility cannot be opened the watcher stays unavailable;
    callers keep working, they just never hear about changes.
    """

    def __init__(
        self,
        on_change: Callable[[str], None],
        skip_dirs: Optional[Set[str]] = None,
        debounce_seconds: float = 0.2,
    ):
        self.on_change = on_change
        self.skip_dirs = skip_dirs
        self.debounce_seconds = debounce_seconds
        self._observer: Optional[Observer] = None
        self._watches: Dict[str, ObservedWatch] = {}
        self._handlers: Dict[str, ProjectEventHandler] = {}
        self._identities: Dict[str, Tuple[int, int]] = {}
        self._lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> bool:
        """Start the observer thread.

        Returns:
            True if file watching is available
        """
        if self.available:
            return True
        try:
            observer = Observer()
            observer.daemon = True
            observer.start()
        except (OSError, RuntimeError) as e:
            logger.error(
                f"Could not create file watcher ({e}). "
                "Indexes will only refresh on explicit requests."
            )
            return False
        self._observer = observer
        logger.debug("File watcher started")
        return True

    def watch(self, root: str) -> bool:
        """Watch a root and everything below it.

        A watch whose root was deleted, moved away or replaced by a new
        directory is dropped and scheduled again.

        Returns:
            True if the root is being watched
        """
        with self._lock:
            if self._is_live(root):
                return True
            if root in self._watches:
                self._drop(root)
            if not self.available:
                return False

            handler = ProjectEventHandler(
                root,
                self.on_change,
                skip_dirs=self.skip_dirs,
                debounce_delay=self.debounce_seconds,
            )
            try:
                watch = self._observer.schedule(handler, root, recursive=True)
            except OSError as e:
                logger.warning(
                    f"Could not watch {root} ({e}). Index may go stale until next explicit request."
                )
                return False

            self._watches[root] = watch
            self._handlers[root] = handler
            identity = _identity(root)
            if identity is not None:
                self._identities[root] = identity
            logger.info(f"Watching {root}")
            return True

    def is_watching(self, root: str) -> bool:
        with self._lock:
            return self._is_live(root)

    def _is_live(self, root: str) -> bool:
        handler = self._handlers.get(root)
        if handler is None or handler.root_removed:
            return False
        return _identity(root) == self._identities.get(root)

    def _drop(self, root: str) -> None:
        watch = self._watches.pop(root)
        self._handlers.pop(root).cancel()
        self._identities.pop(root, None)
        if self._observer is None:
            return
        try:
            self._observer.unschedule(watch)
        except (KeyError, OSError) as e:
            logger.debug(f"Stale watch for {root} already gone: {e}")
        logger.info(f"Dropped stale watch on {root}")

    def stop(self) -> None:
        """Stop the observer and drop all watches."""
        with self._lock:
            for handler in self._handlers.values():
                handler.cancel()
            self._handlers.clear()
            self._watches.clear()
            self._identities.clear()
            observer, self._observer = self._observer, None

        if observer is not None:
            observer.stop()
            observer.join(timeout=5.0)
            logger.debug("File watcher stopped")
