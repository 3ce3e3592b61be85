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

"""Basic file-system search plugin."""

import logging
from typing import Callable, Dict, Optional

from pogo.config import HandshakeConfig, SearchConfig
from pogo.errors import (
    BAD_REQUEST,
    INTERNAL_ERROR,
    NotFoundError,
    SchemaError,
    TransportError,
    UnknownRequestTypeError,
)
from pogo.plugin import codec
from pogo.plugin.interface import PluginInfo, PogoPlugin, ProcessProjectRequest
from pogo.search.indexer import ProjectIndexer
from pogo.search.models import FILES_REQUEST, IndexedProject, SearchRequest, SearchResponse

logger = logging.getLogger(__name__)

# API version of this plugin
VERSION = "0.0.1"

HANDSHAKE = HandshakeConfig(
    protocol_version=2,
    magic_cookie_key="SEARCH_PLUGIN",
    magic_cookie_value="93f6bc9f97c03ed00fa85c904aca15a92752e549",
)

NO_RESULTS_MESSAGE = "No results. See logs for further details."

RequestHandler = Callable[[SearchRequest], str]


class BasicSearch(PogoPlugin):
    """Serves file listings of tracked projects.

    Requests are URL-escaped JSON `SearchRequest`s. The only request type is
    "files", which returns the current listing of `projectRoot`.
    """

    def __init__(self, indexer: Optional[ProjectIndexer] = None, config: Optional[SearchConfig] = None):
        self.indexer = indexer or ProjectIndexer(config)
        self._handlers: Dict[str, RequestHandler] = {
            FILES_REQUEST: self._handle_files,
        }

    def info(self) -> PluginInfo:
        logger.debug(f"Returning version {VERSION}")
        return PluginInfo(version=VERSION)

    def execute(self, request: str) -> str:
        logger.debug("Executing request.")
        try:
            search_request = codec.decode(request, SearchRequest)
            handler = self._handler_for(search_request.type)
        except TransportError as e:
            logger.error(f"500 Could not query decode request: {e.message}")
            return codec.error_response(INTERNAL_ERROR, "Could not query decode request.")
        except UnknownRequestTypeError as e:
            logger.info(f"404 {e.message}")
            return codec.error_response(e.code, "Unknown request type.")
        except SchemaError as e:
            logger.info(f"400 Invalid request: {e.message}")
            return codec.error_response(BAD_REQUEST, "Invalid request.")
        return handler(search_request)

    def process_project(self, req: ProcessProjectRequest) -> None:
        logger.debug(f"Processing project {req.path}")
        self.indexer.process_project(req.path)

    def close(self) -> None:
        self.indexer.close(wait=False)

    def _handler_for(self, request_type: str) -> RequestHandler:
        handler = self._handlers.get(request_type)
        if handler is None:
            raise UnknownRequestTypeError(request_type)
        return handler

    def _handle_files(self, request: SearchRequest) -> str:
        try:
            project = self.indexer.get_files(request.project_root)
        except NotFoundError as e:
            logger.info(e.message)
            return self._search_response(None)
        except Exception as e:
            logger.error(f"500 Error retrieving files: {e}")
            return codec.error_response(INTERNAL_ERROR, "Error retrieving files.")
        return self._search_response(project)

    def _search_response(self, index: Optional[IndexedProject]) -> str:
        if index is None:
            response = SearchResponse(index=IndexedProject(root="", paths=[]), error=NO_RESULTS_MESSAGE)
        else:
            response = SearchResponse(index=index, error="")

        try:
            return codec.encode(response)
        except (TypeError, ValueError) as e:
            logger.error(f"Error writing search response: {e}")
            return codec.error_response(INTERNAL_ERROR, "Error writing search response")
