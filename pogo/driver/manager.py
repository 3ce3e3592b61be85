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

"""Plugin driver: starts, tracks and stops every plugin process."""

import atexit
import logging
import os
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from pogo.config import HostConfig
from pogo.driver.client import PluginClient
from pogo.driver.discovery import discover_plugins
from pogo.errors import HandshakeError, InternalError, NotFoundError, PogoError
from pogo.plugin.interface import PluginInfo

logger = logging.getLogger(__name__)


@dataclass
class PluginStatus:
    """Status of a registered plugin."""

    path: str
    name: str
    running: bool
    version: Optional[str]
    protocol_version: Optional[int]
    pid: Optional[int]


class PluginDriver:
    """Registry of running plugins keyed by executable path.

    The registry only changes in `init()` and `kill()`; lookups and calls
    may run concurrently from any number of threads. Process isolation keeps
    a misbehaving plugin from corrupting the host, but the handshake is not
    a security check: a hostile executable in the plugin directory is not
    defended against.

    Usage:
        with PluginDriver(config) as driver:
            driver.init()
            response = driver.execute(path, request)
        # All plugins automatically stopped on exit
    """

    def __init__(self, config: Optional[HostConfig] = None):
        """Initialize the driver.

        Args:
            config: Host configuration (defaults used if None)
        """
        self.config = config or HostConfig()
        self._plugins: Dict[str, PluginClient] = {}
        self._lock = threading.Lock()
        self._initialized = False
        self._atexit_registered = False

    def __enter__(self) -> "PluginDriver":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.kill()

    def init(self) -> None:
        """Discover and start every plugin.

        A plugin that fails to start or handshake is logged and left out;
        it never prevents the others from starting. Calling init() again
        while plugins are running does nothing.
        """
        with self._lock:
            if self._initialized:
                logger.debug("Plugin driver already initialized")
                return
            self._initialized = True

            if not self._atexit_registered:
                atexit.register(self.kill)
                self._atexit_registered = True

            for path in discover_plugins(self.config.plugin_path):
                client = PluginClient(path, self.config)
                try:
                    client.start()
                except HandshakeError as e:
                    logger.error(f"Plugin {path} excluded: {e.message}")
                    continue
                except Exception as e:
                    logger.exception(f"Plugin {path} excluded, failed to start: {e}")
                    client.terminate()
                    continue
                self._plugins[path] = client

            logger.info(f"Started {len(self._plugins)} plugin(s)")

    def kill(self) -> None:
        """Stop every plugin process. Safe to call more than once."""
        with self._lock:
            clients = list(self._plugins.values())
            self._plugins.clear()
            self._initialized = False

        for client in clients:
            try:
                client.stop()
            except Exception as e:
                logger.warning(f"Error stopping plugin {client.path}: {e}")

    def get_plugin_paths(self) -> List[str]:
        """Paths of all successfully registered plugins, sorted."""
        with self._lock:
            return sorted(self._plugins)

    def get_plugin(self, path: str) -> Optional[PluginClient]:
        """Look up a registered plugin by path."""
        with self._lock:
            return self._plugins.get(os.path.abspath(path)) if path else None

    def get_plugin_info(self, path: str) -> PluginInfo:
        """Ask a plugin for its info.

        Raises:
            NotFoundError: If no plugin is registered under `path`
            InternalError: If the remote call fails
        """
        plugin = self._require(path)
        try:
            return plugin.get_info()
        except PogoError as e:
            logger.error(f"Info call to plugin {path} failed: {e.message}")
            raise InternalError(f"could not get info from plugin {path}: {e.message}") from e

    def execute(self, path: str, request: str) -> str:
        """Forward an opaque request to a plugin and return its raw response.

        Raises:
            NotFoundError: If no plugin is registered under `path`
            InternalError: If the plugin process fails during the call
        """
        plugin = self._require(path)
        logger.debug(f"Executing request on plugin {plugin.name}")
        return plugin.execute(request)

    def process_project(self, path: str, project_root: str) -> None:
        """Ask a plugin to start tracking a project root.

        Raises:
            NotFoundError: If no plugin is registered under `path`
            SchemaError: If the plugin rejected the request
            InternalError: If the plugin process fails during the call
        """
        plugin = self._require(path)
        plugin.process_project(project_root)

    def get_status(self) -> Dict[str, PluginStatus]:
        """Get status of all registered plugins."""
        with self._lock:
            clients = dict(self._plugins)

        return {
            path: PluginStatus(
                path=path,
                name=client.name,
                running=client.is_running,
                version=client.plugin_info.version if client.plugin_info else None,
                protocol_version=client.protocol_version,
                pid=client.pid,
            )
            for path, client in clients.items()
        }

    def _require(self, path: str) -> PluginClient:
        plugin = self.get_plugin(path)
        if plugin is None:
            raise NotFoundError(f"No plugin registered at {path!r}")
        return plugin


# Global instance
_plugin_driver: Optional[PluginDriver] = None


def get_plugin_driver() -> PluginDriver:
    """Get or create the global plugin driver."""
    global _plugin_driver
    if _plugin_driver is None:
        _plugin_driver = PluginDriver()
    return _plugin_driver


def set_plugin_driver(driver: PluginDriver) -> None:
    """Set the global plugin driver."""
    global _plugin_driver
    _plugin_driver = driver


def reset_plugin_driver() -> None:
    """Kill and forget the global plugin driver (for testing)."""
    global _plugin_driver
    if _plugin_driver is not None:
        _plugin_driver.kill()
    _plugin_driver = None
