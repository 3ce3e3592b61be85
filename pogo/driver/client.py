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

"""Client for one plugin process."""

import logging
import os
import subprocess
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Any, Dict, List, Optional

from pogo.config import HostConfig
from pogo.errors import HandshakeError, PluginProcessError, PogoError, code_to_error
from pogo.log import relay_plugin_log_line
from pogo.plugin import protocol
from pogo.plugin.interface import PluginInfo

logger = logging.getLogger(__name__)


class PluginClient:
    """Handle to a running plugin process.

    Owns the child process, a reader thread that matches replies to pending
    requests, and a thread that relays the plugin's stderr logs. Calls may
    be made from several threads at once.
    """

    def __init__(self, path: str, config: HostConfig):
        """Initialize the client.

        Args:
            path: Plugin executable; also the plugin's identity
            config: Host configuration
        """
        self.path = path
        self.config = config
        self.protocol_version: Optional[int] = None
        self.plugin_info: Optional[PluginInfo] = None
        self._process: Optional[subprocess.Popen] = None
        self._request_id = 0
        self._id_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._pending_lock = threading.Lock()
        self._pending_requests: Dict[int, Future] = {}
        self._connection_closed = False
        self._handshake: Future = Future()
        self._threads: List[threading.Thread] = []
        self._plugin_logger = logging.getLogger(f"pogo.plugin.{self.name}")

    @property
    def name(self) -> str:
        return Path(self.path).name

    @property
    def is_running(self) -> bool:
        """Check if the plugin process is running."""
        return self._process is not None and self._process.poll() is None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    def start(self) -> PluginInfo:
        """Spawn the plugin and negotiate with it.

        Returns:
            The plugin's declared info

        Raises:
            HandshakeError: If the process cannot be started, fails the
                handshake, or declares an unsupported API version. The
                process is terminated before raising.
        """
        if self.is_running and self.plugin_info is not None:
            logger.warning(f"Plugin {self.name} already running")
            return self.plugin_info

        logger.info(f"Starting plugin: {self.path}")
        self._handshake = Future()
        self._connection_closed = False
        try:
            self._process = subprocess.Popen(  # noqa: S603
                [self.path],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self._build_env(),
                cwd=str(Path(self.path).parent),
            )
        except OSError as e:
            raise HandshakeError(f"could not start {self.path}: {e}") from e

        self._start_thread(self._read_messages, "reader")
        self._start_thread(self._relay_stderr, "stderr")

        try:
            message = self._handshake.result(timeout=self.config.start_timeout)
        except FutureTimeoutError:
            self.terminate()
            raise HandshakeError(
                f"plugin {self.name} sent no handshake within {self.config.start_timeout}s"
            )

        try:
            self.protocol_version = protocol.check_handshake(
                message, self.config.handshake, self.config.accepted_protocol_versions
            )
            info = self.get_info()
        except HandshakeError:
            self.terminate()
            raise
        except PogoError as e:
            self.terminate()
            raise HandshakeError(f"plugin {self.name} failed to report info: {e.message}") from e

        if not protocol.version_in_range(
            info.version, self.config.min_api_version, self.config.max_api_version
        ):
            self.terminate()
            raise HandshakeError(
                f"plugin {self.name} implements API {info.version}, host accepts "
                f">={self.config.min_api_version},<{self.config.max_api_version}"
            )

        self.plugin_info = info
        logger.info(
            f"Plugin {self.name} ready (protocol {self.protocol_version}, API {info.version})"
        )
        return info

    def stop(self) -> None:
        """Ask the plugin to shut down, killing it if it does not exit in time."""
        if self._process is None:
            return

        timeout = self.config.shutdown_timeout
        try:
            if self.is_running:
                try:
                    self._send_request(protocol.SHUTDOWN_METHOD, None, timeout=timeout)
                except PogoError as e:
                    logger.debug(f"Plugin {self.name} shutdown request failed: {e.message}")
                self._send_notification(protocol.EXIT_METHOD, None)
                self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Plugin {self.name} did not exit in {timeout}s, killing it")
            self._process.kill()
            self._process.wait()
        finally:
            self._cleanup()
        logger.info(f"Stopped plugin {self.name}")

    def get_info(self) -> PluginInfo:
        """Call the plugin's `info` method."""
        result = self._send_request(protocol.INFO_METHOD, None)
        if not isinstance(result, dict) or not isinstance(result.get("version"), str):
            raise PluginProcessError(f"plugin {self.name} returned malformed info: {result!r}")
        return PluginInfo(version=result["version"])

    def execute(self, request: str) -> str:
        """Forward an opaque request string and return the opaque response."""
        result = self._send_request(protocol.EXECUTE_METHOD, {"request": request})
        if not isinstance(result, str):
            raise PluginProcessError(f"plugin {self.name} returned a non-string response")
        return result

    def process_project(self, path: str) -> None:
        """Ask the plugin to start tracking a project root."""
        self._send_request(protocol.PROCESS_PROJECT_METHOD, {"path": path})

    def _build_env(self) -> Dict[str, str]:
        handshake = self.config.handshake
        versions = ",".join(str(v) for v in sorted(set(self.config.accepted_protocol_versions)))
        return {
            **os.environ,
            "PYTHONUNBUFFERED": "1",
            handshake.magic_cookie_key: handshake.magic_cookie_value,
            protocol.PROTOCOL_VERSIONS_ENV: versions,
        }

    def _start_thread(self, target, role: str) -> None:
        thread = threading.Thread(target=target, name=f"plugin-{self.name}-{role}", daemon=True)
        thread.start()
        self._threads.append(thread)

    def _get_next_id(self) -> int:
        with self._id_lock:
            self._request_id += 1
            return self._request_id

    def _send_request(self, method: str, params: Any, timeout: Optional[float] = None) -> Any:
        """Send a request and block until its reply arrives.

        Raises:
            PluginProcessError: If the plugin is gone or does not answer in time
            PogoError: The error the plugin replied with
        """
        if not self.is_running:
            raise PluginProcessError(f"plugin {self.name} is not running")

        request_id = self._get_next_id()
        future: Future = Future()
        with self._pending_lock:
            if self._connection_closed:
                raise PluginProcessError(f"plugin {self.name} connection closed")
            self._pending_requests[request_id] = future

        try:
            self._write_message(protocol.request(request_id, method, params))
        except (BrokenPipeError, OSError) as e:
            self._pop_pending(request_id)
            raise PluginProcessError(f"failed to write to plugin {self.name}: {e}") from e

        wait = timeout if timeout is not None else self.config.call_timeout
        try:
            return future.result(timeout=wait)
        except FutureTimeoutError:
            self._pop_pending(request_id)
            raise PluginProcessError(f"request {method} to plugin {self.name} timed out")

    def _send_notification(self, method: str, params: Any) -> None:
        """Send a notification (no response expected)."""
        if not self.is_running:
            return
        try:
            self._write_message(protocol.notification(method, params))
        except (BrokenPipeError, OSError) as e:
            logger.error(f"Failed to write to plugin {self.name}: {e}")

    def _write_message(self, message: Dict[str, Any]) -> None:
        if not self._process or not self._process.stdin:
            raise BrokenPipeError("plugin stdin is closed")
        protocol.write_message(self._process.stdin, message, self._write_lock)

    def _pop_pending(self, request_id: int) -> Optional[Future]:
        with self._pending_lock:
            return self._pending_requests.pop(request_id, None)

    def _read_messages(self) -> None:
        """Read messages from the plugin until its stdout closes."""
        process = self._process
        if process is None or process.stdout is None:
            return

        reader = protocol.MessageReader(process.stdout.fileno())
        while True:
            message = reader.read_message()
            if message is None:
                break
            if not self._handshake.done():
                self._handshake.set_result(message)
                continue
            self._handle_message(message)

        if not self._handshake.done():
            self._handshake.set_result(None)
        self._fail_pending(PluginProcessError(f"plugin {self.name} exited"))

    def _handle_message(self, message: Dict[str, Any]) -> None:
        if "id" not in message or "method" in message:
            logger.debug(f"Ignoring message from plugin {self.name}: {message.get('method')!r}")
            return

        future = self._pop_pending(message["id"])
        if future is None:
            logger.debug(f"Reply for unknown request {message['id']!r} from plugin {self.name}")
            return

        error = message.get("error")
        if error is not None:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            future.set_exception(
                code_to_error(error.get("code", 500), error.get("message", "Unknown error"))
            )
        else:
            future.set_result(message.get("result"))

    def _fail_pending(self, error: PogoError) -> None:
        with self._pending_lock:
            self._connection_closed = True
            pending = list(self._pending_requests.values())
            self._pending_requests.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

    def _relay_stderr(self) -> None:
        process = self._process
        if process is None or process.stderr is None:
            return
        for raw_line in process.stderr:
            relay_plugin_log_line(self._plugin_logger, raw_line.decode("utf-8", errors="replace"))

    def terminate(self) -> None:
        """Kill the process without the shutdown exchange."""
        if self._process is not None and self._process.poll() is None:
            self._process.kill()
            self._process.wait()
        self._cleanup()

    def _cleanup(self) -> None:
        process = self._process
        if process is None:
            return
        if process.stdin:
            try:
                process.stdin.close()
            except OSError:
                pass
        for thread in self._threads:
            thread.join(timeout=2.0)
        self._threads.clear()
        for stream in (process.stdout, process.stderr):
            if stream:
                stream.close()
        self._fail_pending(PluginProcessError(f"plugin {self.name} stopped"))
        self._process = None
        self.plugin_info = None
