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

"""Plugin-side RPC loop.

A plugin executable builds its PogoPlugin implementation and hands it to
`serve()`, which performs the handshake and then answers host calls until the
host asks it to exit or closes its stdin.
"""

import logging
import os
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import IO, Any, Callable, Dict

from pogo.config import HandshakeConfig
from pogo.errors import PogoError, SchemaError
from pogo.plugin import protocol
from pogo.plugin.interface import PogoPlugin, ProcessProjectRequest

logger = logging.getLogger(__name__)

NOT_A_PLUGIN_MESSAGE = (
    "This binary is a plugin. These are not meant to be executed directly.\n"
    "Please execute the program that consumes these plugins, which will\n"
    "load any plugins automatically.\n"
)

Handler = Callable[[Any], Any]


class PluginServer:
    """Answers host RPC calls for one plugin implementation.

    Requests are handled on a small thread pool so a slow `execute` does not
    hold up `info` calls; replies are written under a lock.
    """

    def __init__(
        self,
        plugin: PogoPlugin,
        handshake: HandshakeConfig,
        in_fd: int,
        out_stream: IO[bytes],
        max_workers: int = 4,
    ):
        self.plugin = plugin
        self.handshake = handshake
        self._reader = protocol.MessageReader(in_fd)
        self._out = out_stream
        self._write_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pogo-rpc")
        self._shutdown_requested = False
        self._handlers: Dict[str, Handler] = {
            protocol.INFO_METHOD: self._handle_info,
            protocol.EXECUTE_METHOD: self._handle_execute,
            protocol.PROCESS_PROJECT_METHOD: self._handle_process_project,
        }

    def serve_forever(self) -> None:
        """Send the handshake and process messages until exit or EOF."""
        self._send(protocol.build_handshake(self.handshake))
        logger.debug("Handshake sent, serving requests")

        try:
            while True:
                message = self._reader.read_message()
                if message is None:
                    logger.info("Host closed the connection")
                    break

                method = message.get("method")
                if method == protocol.EXIT_METHOD:
                    logger.debug("Exit requested")
                    break
                if "id" not in message:
                    logger.debug(f"Ignoring notification {method!r}")
                    continue
                if method == protocol.SHUTDOWN_METHOD:
                    self._shutdown_requested = True
                    self._send(protocol.result_response(message["id"], None))
                    continue

                self._executor.submit(self._dispatch, message)
        finally:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _dispatch(self, message: Dict[str, Any]) -> None:
        request_id = message.get("id")
        method = message.get("method")

        if self._shutdown_requested:
            self._send(protocol.error_response(request_id, protocol.INVALID_REQUEST, "shutting down"))
            return

        handler = self._handlers.get(method)
        if handler is None:
            self._send(
                protocol.error_response(
                    request_id, protocol.METHOD_NOT_FOUND, f"unknown method {method!r}"
                )
            )
            return

        try:
            result = handler(message.get("params"))
        except PogoError as e:
            logger.info(f"{method} failed: {e.message}")
            self._send(protocol.error_response(request_id, e.code, e.message))
        except Exception as e:
            logger.exception(f"Unhandled error in {method}: {e}")
            self._send(protocol.error_response(request_id, 500, "internal plugin error"))
        else:
            self._send(protocol.result_response(request_id, result))

    def _send(self, message: Dict[str, Any]) -> None:
        try:
            protocol.write_message(self._out, message, self._write_lock)
        except (BrokenPipeError, OSError) as e:
            logger.error(f"Failed to write to host: {e}")

    def _handle_info(self, params: Any) -> Dict[str, Any]:
        return self.plugin.info().model_dump()

    def _handle_execute(self, params: Any) -> str:
        if not isinstance(params, dict) or not isinstance(params.get("request"), str):
            raise SchemaError("execute expects a string 'request' parameter")
        return self.plugin.execute(params["request"])

    def _handle_process_project(self, params: Any) -> None:
        if not isinstance(params, dict) or not isinstance(params.get("path"), str):
            raise SchemaError("processProject expects a string 'path' parameter")
        self.plugin.process_project(ProcessProjectRequest(path=params["path"]))
        return None


def serve(plugin: PogoPlugin, handshake: HandshakeConfig) -> int:
    """Serve a plugin over stdin/stdout.

    Refuses to run when the host's magic cookie is missing from the
    environment, which is how a plugin tells it was started by hand.

    Returns:
        Process exit status
    """
    if os.environ.get(handshake.magic_cookie_key) != handshake.magic_cookie_value:
        sys.stderr.write(NOT_A_PLUGIN_MESSAGE)
        return 1

    offered = os.environ.get(protocol.PROTOCOL_VERSIONS_ENV, "")
    offered_versions = {v.strip() for v in offered.split(",") if v.strip()}
    if offered_versions and str(handshake.protocol_version) not in offered_versions:
        logger.warning(
            f"Host offers protocol versions {sorted(offered_versions)}, "
            f"plugin speaks {handshake.protocol_version}"
        )

    # stdout carries RPC frames only; stray prints go to stderr
    out_stream = sys.stdout.buffer
    sys.stdout = sys.stderr

    server = PluginServer(plugin, handshake, sys.stdin.fileno(), out_stream)
    server.serve_forever()
    return 0
