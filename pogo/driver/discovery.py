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

"""Discovery of plugin executables."""

import logging
import os
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)


def discover_plugins(plugin_dir: Union[str, Path]) -> List[str]:
    """Find candidate plugin executables.

    Candidates are regular, executable, non-hidden files directly inside
    `plugin_dir`. Whether a candidate really is a plugin is decided later by
    the handshake.

    Args:
        plugin_dir: Directory to scan

    Returns:
        Absolute paths sorted by file name
    """
    root = Path(plugin_dir).expanduser()
    if not root.is_dir():
        logger.warning(f"Plugin directory does not exist: {root}")
        return []

    candidates = []
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if entry.name.startswith("."):
            continue
        if not entry.is_file():
            continue
        if not os.access(entry, os.X_OK):
            logger.debug(f"Skipping non-executable file {entry}")
            continue
        candidates.append(os.path.abspath(entry))

    logger.debug(f"Found {len(candidates)} plugin candidate(s) in {root}")
    return candidates
