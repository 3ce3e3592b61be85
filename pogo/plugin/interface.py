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

"""Capability contract every pogo plugin implements."""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class PluginInfo(BaseModel):
    """API revision a plugin implements."""

    version: str


class ProcessProjectRequest(BaseModel):
    """Request to begin tracking a project root."""

    path: str


class PogoPlugin(ABC):
    """Abstract base class for plugins served over the pogo protocol.

    Implementations run inside their own process; `pogo.plugin.server.serve`
    routes RPC calls from the host to these methods.
    """

    @abstractmethod
    def info(self) -> PluginInfo:
        """Return the plugin API version.

        Must be free of side effects and callable before anything else.
        """

    @abstractmethod
    def execute(self, request: str) -> str:
        """Handle one opaque, encoded request and return an encoded response.

        Failures are reported inside the returned string, never raised.
        """

    @abstractmethod
    def process_project(self, req: ProcessProjectRequest) -> None:
        """Start tracking a project root.

        Returns once the request is validated; any real work happens in the
        background.

        Raises:
            SchemaError: If the request is invalid
        """
