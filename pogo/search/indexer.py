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

"""File listing index for tracked project roots.

Each tracked root moves through UNTRACKED -> INDEXING -> READY, and back to
INDEXING whenever the watcher reports a created, deleted or moved path below
it. Every build is a full walk of the root; there is no incremental diffing.

Concurrency:
- Builds run on a bounded thread pool. Builds for different roots run in
  parallel, builds for the same root never do: a trigger that arrives while
  a build is running marks the root for exactly one more build afterwards.
- Snapshots are replaced whole under the store lock, so `get_files` sees
  either the previous listing or the new one.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Set

from pogo.config import SearchConfig
from pogo.errors import NotFoundError, SchemaError
from pogo.search.ignore_patterns import get_effective_skip_dirs, is_within, prune_dirs
from pogo.search.models import IndexedProject, IndexStatus
from pogo.search.watcher import ProjectWatcher

logger = logging.getLogger(__name__)


def normalize_root(path: str) -> str:
    """Absolute, normalized form of a project path used as registry key."""
    return os.path.normpath(os.path.abspath(os.path.expanduser(path)))


def _as_text(path: str) -> str:
    try:
        path.encode("utf-8")
    except UnicodeEncodeError:
        # Surrogate-escaped bytes from the filesystem cannot be serialized
        return os.fsencode(path).decode("utf-8", errors="replace")
    return path


def collect_paths(root: str, skip_dirs: Optional[Set[str]] = None) -> List[str]:
    """Walk `root` and return the sorted absolute paths of all files below it.

    Symlinked directories are listed by os.walk but not descended into, so
    every returned path stays lexically inside `root`. Names that are not
    valid UTF-8 are listed with U+FFFD in place of the undecodable bytes.
    """

    def _on_error(error: OSError) -> None:
        logger.warning(f"Skipping unreadable path {error.filename}: {error.strerror}")

    paths: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error, followlinks=False):
        prune_dirs(dirnames, skip_dirs)
        for name in filenames:
            paths.append(_as_text(os.path.join(dirpath, name)))
    paths.sort()
    return paths


class _ProjectState:
    __slots__ = ("status", "snapshot", "building", "rebuild_requested", "ready")

    def __init__(self) -> None:
        self.status = IndexStatus.UNTRACKED
        self.snapshot: Optional[IndexedProject] = None
        self.building = False
        self.rebuild_requested = False
        self.ready = threading.Event()


class ProjectStore:
    """Lock-guarded registry of project root -> latest snapshot.

    The only writers are build start/finish; readers get whole snapshots.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._projects: Dict[str, _ProjectState] = {}

    def track(self, root: str) -> bool:
        """Register a root. Returns True if it was not tracked before."""
        with self._lock:
            if root in self._projects:
                return False
            self._projects[root] = _ProjectState()
            return True

    def begin_build(self, root: str) -> bool:
        """Claim the build slot for a root.

        Returns:
            True if the caller must run the build, False if one is already
            running (it will run once more when it finishes)
        """
        with self._lock:
            state = self._projects.get(root)
            if state is None:
                return False
            state.status = IndexStatus.INDEXING
            if state.building:
                state.rebuild_requested = True
                return False
            state.building = True
            return True

    def finish_build(self, root: str, snapshot: IndexedProject) -> bool:
        """Install a finished snapshot.

        Returns:
            True if another build was requested meanwhile and the caller
            should build again while keeping the slot
        """
        with self._lock:
            state = self._projects[root]
            state.snapshot = snapshot
            if state.rebuild_requested:
                state.rebuild_requested = False
                return True
            state.building = False
            state.status = IndexStatus.READY
            state.ready.set()
            return False

    def abort_build(self, root: str) -> None:
        """Release the build slot after a failed build, keeping the old snapshot."""
        with self._lock:
            state = self._projects.get(root)
            if state is None:
                return
            state.building = False
            state.rebuild_requested = False
            if state.snapshot is None:
                # Never indexed: forget the root so the next request starts over
                del self._projects[root]
                state.ready.set()
            else:
                state.status = IndexStatus.READY

    def get(self, root: str) -> Optional[IndexedProject]:
        with self._lock:
            state = self._projects.get(root)
            return state.snapshot if state is not None else None

    def status(self, root: str) -> IndexStatus:
        with self._lock:
            state = self._projects.get(root)
            return state.status if state is not None else IndexStatus.UNTRACKED

    def roots(self) -> List[str]:
        with self._lock:
            return sorted(self._projects)

    def ready_event(self, root: str) -> Optional[threading.Event]:
        with self._lock:
            state = self._projects.get(root)
            return state.ready if state is not None else None


class ProjectIndexer:
    """Builds and serves file listings for project roots."""

    def __init__(self, config: Optional[SearchConfig] = None):
        """Initialize the indexer and, if enabled, start the file watcher.

        Args:
            config: Search configuration (defaults used if None)
        """
        self.config = config or SearchConfig()
        self.skip_dirs = get_effective_skip_dirs(self.config.skip_dirs)
        self._store = ProjectStore()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="pogo-index"
        )
        self._closed = False

        self._watcher: Optional[ProjectWatcher] = None
        if self.config.enable_watcher:
            self._watcher = ProjectWatcher(
                self.reindex,
                skip_dirs=self.skip_dirs,
                debounce_seconds=self.config.debounce_seconds,
            )
            self._watcher.start()
        else:
            logger.info("File watching disabled; indexes refresh only on explicit requests")

    @property
    def watching(self) -> bool:
        """Whether filesystem changes trigger rebuilds."""
        return self._watcher is not None and self._watcher.available

    def process_project(self, path: str) -> str:
        """Start tracking a project root and schedule a build.

        Returns immediately. A root that is already tracked gets a rebuild,
        coalesced with any build in flight.

        Returns:
            The normalized root

        Raises:
            SchemaError: If the path is empty or not a directory
        """
        if not path or not path.strip():
            raise SchemaError("Project path is required.")
        root = normalize_root(path)
        if not os.path.isdir(root):
            raise SchemaError(f"Project path is not a directory: {root}")

        if self._store.track(root):
            logger.info(f"Tracking new project {root}")
        else:
            logger.debug(f"Project {root} already tracked, requesting rebuild")
        self._schedule(root)
        return root

    def reindex(self, path: str) -> None:
        """Rebuild every tracked root that contains `path`."""
        path = normalize_root(path)
        roots = [root for root in self._store.roots() if is_within(path, root)]
        if not roots:
            logger.debug(f"No tracked project contains {path}")
            return
        for root in roots:
            self._schedule(root)

    def get_files(self, root: str) -> IndexedProject:
        """Return the current snapshot for a root.

        Never waits for a running build.

        Raises:
            NotFoundError: If the root has no snapshot yet
        """
        key = normalize_root(root) if root else root
        snapshot = self._store.get(key) if key else None
        if snapshot is None:
            raise NotFoundError(f"Project {root!r} has not been indexed.")
        return snapshot

    def status(self, root: str) -> IndexStatus:
        return self._store.status(normalize_root(root))

    def projects(self) -> List[str]:
        return self._store.roots()

    def wait_until_ready(self, root: str, timeout: Optional[float] = None) -> bool:
        """Block until the first build of a root completes.

        Returns:
            True if a snapshot is available
        """
        key = normalize_root(root)
        event = self._store.ready_event(key)
        if event is None:
            return False
        event.wait(timeout)
        return self._store.get(key) is not None

    def index(self, root: str) -> None:
        """Run full builds for a root until no further build is pending.

        The caller must hold the root's build slot (see ProjectStore.begin_build).
        """
        try:
            while True:
                if self._watcher is not None and not self._watcher.is_watching(root):
                    self._watcher.watch(root)

                paths = collect_paths(root, self.skip_dirs)
                snapshot = IndexedProject(root=root, paths=paths)
                logger.info(f"Indexed {len(paths)} files under {root}")
                if not self._store.finish_build(root, snapshot):
                    break
                if self._closed:
                    self._store.abort_build(root)
                    break
        except Exception as e:
            logger.exception(f"Index build failed for {root}: {e}")
            self._store.abort_build(root)

    def _schedule(self, root: str) -> None:
        if self._closed:
            logger.debug(f"Indexer closed, ignoring build request for {root}")
            return
        if not self._store.begin_build(root):
            logger.debug(f"Build already running for {root}, coalescing")
            return
        try:
            self._executor.submit(self.index, root)
        except RuntimeError:
            # Executor shut down between the closed check and submit
            self._store.abort_build(root)

    def close(self, wait: bool = True) -> None:
        """Stop watching and stop accepting builds.

        Args:
            wait: Wait for in-flight builds to finish
        """
        if self._closed:
            return
        self._closed = True
        if self._watcher is not None:
            self._watcher.stop()
        self._executor.shutdown(wait=wait, cancel_futures=True)
        logger.debug("Indexer closed")
