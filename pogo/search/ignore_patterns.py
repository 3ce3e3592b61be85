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

"""Path filtering shared by the index walker and the file watcher.

Both sides must agree on what is excluded, otherwise a change inside an
excluded directory would trigger a rebuild that finds nothing new.
"""

import os
from typing import Iterable, List, Optional, Set

# VCS metadata and pogo's own per-project directory
DEFAULT_SKIP_DIRS: Set[str] = {".git", ".pogo"}


def is_within(path: str, root: str) -> bool:
    """Check whether `path` is `root` or lies below it.

    Both arguments must be absolute and normalized.
    """
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


def should_ignore_path(
    path: str,
    root: str,
    skip_dirs: Optional[Set[str]] = None,
) -> bool:
    """Check if a path under `root` is excluded from the index.

    Only components below the root are checked, so a project that itself
    lives inside e.g. a `.git` directory is still indexed.

    Example:
        >>> should_ignore_path("/p/src/main.py", "/p")
        False
        >>> should_ignore_path("/p/.git/config", "/p")
        True
        >>> should_ignore_path("/elsewhere/a.txt", "/p")
        True
    """
    if not is_within(path, root):
        return True
    effective_skip_dirs = skip_dirs if skip_dirs is not None else DEFAULT_SKIP_DIRS
    rel_path = os.path.relpath(path, root)
    return any(part in effective_skip_dirs for part in rel_path.split(os.sep))


def prune_dirs(dirnames: List[str], skip_dirs: Optional[Set[str]] = None) -> None:
    """Remove skipped names from an os.walk() dirnames list in place."""
    effective_skip_dirs = skip_dirs if skip_dirs is not None else DEFAULT_SKIP_DIRS
    dirnames[:] = [d for d in dirnames if d not in effective_skip_dirs]


def get_effective_skip_dirs(
    base_skip_dirs: Optional[Iterable[str]] = None,
    extra_skip_dirs: Optional[Iterable[str]] = None,
) -> Set[str]:
    """Get the effective set of directory names to skip.

    Args:
        base_skip_dirs: Base names to skip. Defaults to DEFAULT_SKIP_DIRS.
        extra_skip_dirs: Additional names to skip.
    """
    effective = set(base_skip_dirs) if base_skip_dirs is not None else DEFAULT_SKIP_DIRS.copy()
    if extra_skip_dirs:
        effective |= set(extra_skip_dirs)
    return effective
