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

"""Plugin contract, payload codec and wire protocol.

Plugin executables implement PogoPlugin and call `serve()`; the host side of
the protocol lives in `pogo.driver`.
"""

from pogo.plugin.codec import ErrorResponse, decode, encode
from pogo.plugin.interface import PluginInfo, PogoPlugin, ProcessProjectRequest
from pogo.plugin.server import PluginServer, serve

__all__ = [
    "ErrorResponse",
    "PluginInfo",
    "PluginServer",
    "PogoPlugin",
    "ProcessProjectRequest",
    "decode",
    "encode",
    "serve",
]
