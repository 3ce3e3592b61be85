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

"""Shared fixtures for pogo tests."""

import os
import stat
import sys
import textwrap
import time
from pathlib import Path
from typing import Callable

import pytest

from pogo.config import HostConfig, SearchConfig
from pogo.search.indexer import ProjectIndexer

REPO_ROOT = Path(__file__).resolve().parents[1]


def _wait_for(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.05) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_for():
    """Poll a predicate until it holds or the timeout expires."""
    return _wait_for


@pytest.fixture
def project(tmp_path):
    """A small project tree: a.txt and b/c.txt."""
    root = tmp_path / "proj"
    (root / "b").mkdir(parents=True)
    (root / "a.txt").write_text("a")
    (root / "b" / "c.txt").write_text("c")
    return root


@pytest.fixture
def indexer():
    """Indexer without file watching; builds only run on explicit requests."""
    idx = ProjectIndexer(SearchConfig(enable_watcher=False))
    yield idx
    idx.close()


@pytest.fixture
def plugin_dir(tmp_path, monkeypatch):
    """Empty plugin directory; child processes can import pogo from the repo."""
    directory = tmp_path / "plugins"
    directory.mkdir()
    python_path = os.environ.get("PYTHONPATH")
    monkeypatch.setenv(
        "PYTHONPATH", str(REPO_ROOT) + (os.pathsep + python_path if python_path else "")
    )
    return directory


@pytest.fixture
def make_plugin(plugin_dir):
    """Write an executable Python script into the plugin directory."""

    def _make(name: str, body: str, executable: bool = True) -> Path:
        path = plugin_dir / name
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        if executable:
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def host_config(plugin_dir):
    return HostConfig(
        plugin_dir=str(plugin_dir),
        start_timeout=15.0,
        call_timeout=15.0,
        shutdown_timeout=5.0,
    )


@pytest.fixture
def search_plugin(make_plugin):
    """The real search plugin, installed as an executable."""
    return make_plugin(
        "search",
        """
        from pogo.search.__main__ import main

        main()
        """,
    )
