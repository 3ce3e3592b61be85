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

"""Tests for plugin discovery and the plugin driver.

These start real plugin processes from executable scripts written into a
temporary plugin directory.
"""

import logging
import os
import stat
import subprocess
import threading

import pytest

from pogo.config import HostConfig
from pogo.driver import discovery
from pogo.driver.client import PluginClient
from pogo.driver.manager import (
    PluginDriver,
    get_plugin_driver,
    reset_plugin_driver,
    set_plugin_driver,
)
from pogo.errors import InternalError, NotFoundError, PluginProcessError, SchemaError
from pogo.plugin import codec
from pogo.search.models import SearchRequest, SearchResponse
from pogo.search.plugin import HANDSHAKE

STUB_PLUGIN = """
import os
import sys

from pogo.config import HandshakeConfig
from pogo.plugin.interface import PluginInfo, PogoPlugin
from pogo.plugin.server import PluginServer


class Stub(PogoPlugin):
    def info(self):
        return PluginInfo(version=VERSION)

    def execute(self, request):
        if request == "crash":
            os._exit(3)
        return request.upper()

    def process_project(self, req):
        pass


server = PluginServer(Stub(), HandshakeConfig(**HANDSHAKE), sys.stdin.fileno(), sys.stdout.buffer)
server.serve_forever()
"""


@pytest.fixture
def make_stub(make_plugin):
    """Write a stub plugin with the given handshake overrides and API version."""

    def _make(name: str, version: str = "0.0.1", **handshake):
        body = STUB_PLUGIN.replace("VERSION", repr(version), 1).replace(
            "HANDSHAKE", repr(handshake)
        )
        return make_plugin(name, body)

    return _make


@pytest.fixture
def driver(host_config):
    plugin_driver = PluginDriver(host_config)
    yield plugin_driver
    plugin_driver.kill()


class TestDiscovery:
    """Tests for discover_plugins."""

    def test_missing_directory(self, tmp_path):
        assert discovery.discover_plugins(tmp_path / "missing") == []

    def test_only_executable_regular_visible_files(self, plugin_dir, make_plugin):
        make_plugin("b-plugin", "pass\n")
        make_plugin("a-plugin", "pass\n")
        make_plugin("notes", "pass\n", executable=False)
        make_plugin(".hidden", "pass\n")
        (plugin_dir / "subdir").mkdir()

        assert discovery.discover_plugins(plugin_dir) == [
            str(plugin_dir / "a-plugin"),
            str(plugin_dir / "b-plugin"),
        ]


class TestHandshakeRejection:
    """Plugins that fail negotiation are excluded, others still start."""

    def test_wrong_cookie_value(self, driver, make_stub):
        make_stub("bad-cookie", magic_cookie_value="not-the-cookie")
        good = make_stub("good")
        driver.init()
        assert driver.get_plugin_paths() == [str(good)]

    def test_wrong_protocol_version(self, driver, make_stub):
        make_stub("future", protocol_version=99)
        driver.init()
        assert driver.get_plugin_paths() == []

    def test_unsupported_api_version(self, driver, make_stub):
        make_stub("too-new", version="2.0.0")
        driver.init()
        assert driver.get_plugin_paths() == []

    def test_not_a_plugin(self, driver, plugin_dir):
        script = plugin_dir / "hello"
        script.write_text("#!/bin/sh\necho hello\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR)
        driver.init()
        assert driver.get_plugin_paths() == []

    def test_rejected_plugin_process_is_gone(self, host_config, make_stub):
        make_stub("bad-cookie", magic_cookie_value="not-the-cookie")
        plugin_driver = PluginDriver(host_config)
        plugin_driver.init()
        assert plugin_driver.get_status() == {}
        plugin_driver.kill()

    def test_unexpected_start_failure_is_contained(self, driver, make_stub, monkeypatch):
        make_stub("a-broken")
        good = make_stub("b-good")
        original_start = PluginClient.start

        def _start(client):
            if client.name == "a-broken":
                raise RuntimeError("boom")
            return original_start(client)

        monkeypatch.setattr(PluginClient, "start", _start)
        driver.init()
        assert driver.get_plugin_paths() == [str(good)]

    def test_malformed_api_range_excludes_plugins(self, host_config, make_stub):
        path = make_stub("stub")
        plugin_driver = PluginDriver(host_config.model_copy(update={"min_api_version": "x.y"}))
        try:
            plugin_driver.init()
            assert plugin_driver.get_plugin_paths() == []
            assert plugin_driver.get_plugin(str(path)) is None
        finally:
            plugin_driver.kill()


class TestStubPlugin:
    """RPC round trips against a minimal plugin."""

    def test_info_and_execute(self, driver, make_stub):
        path = str(make_stub("stub"))
        driver.init()

        assert driver.get_plugin_info(path).version == "0.0.1"
        assert driver.execute(path, "hello") == "HELLO"
        driver.process_project(path, "/anywhere")

    def test_concurrent_calls_get_their_own_replies(self, driver, make_stub):
        path = str(make_stub("stub"))
        driver.init()
        results = {}

        def _call(i: int):
            results[i] = driver.execute(path, f"req-{i}")

        threads = [threading.Thread(target=_call, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == {i: f"REQ-{i}" for i in range(8)}

    def test_status(self, driver, make_stub):
        path = str(make_stub("stub"))
        driver.init()

        status = driver.get_status()[path]
        assert status.name == "stub"
        assert status.running
        assert status.version == "0.0.1"
        assert status.protocol_version == 2
        assert status.pid is not None

    def test_crash_fails_call(self, driver, make_stub):
        path = str(make_stub("stub"))
        driver.init()

        with pytest.raises(PluginProcessError) as exc_info:
            driver.execute(path, "crash")
        assert isinstance(exc_info.value, InternalError)

        with pytest.raises(InternalError):
            driver.execute(path, "again")

    def test_unknown_plugin(self, driver, make_stub, plugin_dir):
        make_stub("stub")
        driver.init()

        assert driver.get_plugin(str(plugin_dir / "other")) is None
        assert driver.get_plugin("") is None
        with pytest.raises(NotFoundError):
            driver.get_plugin_info(str(plugin_dir / "other"))
        with pytest.raises(NotFoundError):
            driver.execute(str(plugin_dir / "other"), "x")

    def test_init_and_kill_are_idempotent(self, driver, make_stub):
        path = str(make_stub("stub"))
        driver.init()
        pid = driver.get_status()[path].pid
        driver.init()
        assert driver.get_status()[path].pid == pid

        driver.kill()
        driver.kill()
        assert driver.get_plugin_paths() == []

        driver.init()
        assert driver.get_plugin_paths() == [path]

    def test_context_manager_stops_plugins(self, host_config, make_stub):
        path = str(make_stub("stub"))
        with PluginDriver(host_config) as plugin_driver:
            plugin_driver.init()
            plugin = plugin_driver.get_plugin(path)
            assert plugin.is_running
        assert not plugin.is_running
        assert plugin_driver.get_plugin_paths() == []

    def test_missing_plugin_dir(self, tmp_path):
        plugin_driver = PluginDriver(HostConfig(plugin_dir=str(tmp_path / "missing")))
        plugin_driver.init()
        assert plugin_driver.get_plugin_paths() == []
        plugin_driver.kill()


class TestSearchPlugin:
    """End to end through the real search plugin executable."""

    def test_files_listing(self, driver, search_plugin, project, wait_for):
        path = str(search_plugin)
        driver.init()
        assert driver.get_plugin_paths() == [path]
        assert driver.get_plugin_info(path).version == "0.0.1"

        driver.process_project(path, str(project))
        request = codec.encode(SearchRequest(type="files", project_root=str(project)))

        def _indexed():
            response = codec.decode(driver.execute(path, request), SearchResponse)
            return response.error == ""

        assert wait_for(_indexed)
        response = codec.decode(driver.execute(path, request), SearchResponse)
        assert response.index.root == str(project)
        assert response.index.paths == [str(project / "a.txt"), str(project / "b" / "c.txt")]

    def test_bad_project_path_is_reported(self, driver, search_plugin, tmp_path):
        driver.init()
        with pytest.raises(SchemaError):
            driver.process_project(str(search_plugin), str(tmp_path / "missing"))

    def test_plugin_logs_reach_host(self, driver, search_plugin, caplog, wait_for):
        caplog.set_level(logging.DEBUG)
        driver.init()
        driver.get_plugin_info(str(search_plugin))

        assert wait_for(
            lambda: any(
                r.name == "pogo.plugin.search" and "Returning version" in r.getMessage()
                for r in caplog.records
            )
        )

    def test_refuses_to_run_without_host(self, search_plugin):
        env = {k: v for k, v in os.environ.items() if k != HANDSHAKE.magic_cookie_key}
        result = subprocess.run(
            [str(search_plugin)],
            env=env,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            timeout=30,
        )
        assert result.returncode == 1
        assert b"This binary is a plugin" in result.stderr


class TestGlobalDriver:
    """Tests for the module-level driver accessors."""

    def test_set_get_reset(self, host_config):
        reset_plugin_driver()
        custom = PluginDriver(host_config)
        set_plugin_driver(custom)
        assert get_plugin_driver() is custom

        reset_plugin_driver()
        fresh = get_plugin_driver()
        assert fresh is not custom
        reset_plugin_driver()
