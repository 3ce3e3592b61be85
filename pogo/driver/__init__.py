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

"""Plugin host: discovery, process lifecycle and call forwarding."""

from pogo.driver.client import PluginClient
from pogo.driver.discovery import discover_plugins
from pogo.driver.manager import (
    PluginDriver,
    PluginStatus,
    get_plugin_driver,
    reset_plugin_driver,
    set_plugin_driver,
)

__all__ = [
    "PluginClient",
    "PluginDriver",
    "PluginStatus",
    "discover_plugins",
    "get_plugin_driver",
    "reset_plugin_driver",
    "set_plugin_driver",
]
