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

"""Wire protocol between the plugin host and plugin processes.

Messages are JSON-RPC 2.0 objects framed with a `Content-Length` header,
the same framing language servers use, exchanged over the plugin's stdin and
stdout. The first message a plugin writes is a `handshake` notification that
the host checks before it sends anything.
"""

import json
import logging
import os
import threading
from typing import IO, Any, Dict, Iterable, Optional, Tuple

from pogo.config import HandshakeConfig
from pogo.errors import HandshakeError

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSIONS_ENV = "POGO_PLUGIN_PROTOCOL_VERSIONS"

HANDSHAKE_METHOD = "handshake"
INFO_METHOD = "info"
EXECUTE_METHOD = "execute"
PROCESS_PROJECT_METHOD = "processProject"
SHUTDOWN_METHOD = "shutdown"
EXIT_METHOD = "exit"

# JSON-RPC reserved error codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601

_HEADER_END = b"\r\n\r\n"
_READ_SIZE = 4096


def encode_message(message: Dict[str, Any]) -> bytes:
    """Frame a message for the wire."""
    content = json.dumps(message).encode("utf-8")
    header = f"Content-Length: {len(content)}\r\n\r\n".encode("ascii")
    return header + content


def write_message(
    stream: IO[bytes], message: Dict[str, Any], lock: Optional[threading.Lock] = None
) -> None:
    """Write one framed message and flush it.

    Args:
        stream: Binary stream to write to
        message: JSON-RPC message
        lock: Held while writing so concurrent writers never interleave frames
    """
    data = encode_message(message)
    if lock is None:
        stream.write(data)
        stream.flush()
        return
    with lock:
        stream.write(data)
        stream.flush()


def parse_message(buffer: bytes) -> Tuple[Optional[Dict[str, Any]], bytes]:
    """Parse a message from the front of the buffer.

    Returns:
        Tuple of (message or None, remaining buffer). None with an unchanged
        buffer means more bytes are needed.
    """
    header_end = buffer.find(_HEADER_END)
    if header_end == -1:
        return None, buffer

    header = buffer[:header_end].decode("ascii", errors="replace")
    content_length = 0
    for line in header.split("\r\n"):
        if line.lower().startswith("content-length:"):
            try:
                content_length = int(line.split(":", 1)[1].strip())
            except ValueError:
                content_length = 0
            break

    content_start = header_end + len(_HEADER_END)
    if content_length <= 0:
        logger.error(f"Dropping frame with bad header: {header[:100]!r}")
        return None, buffer[content_start:]

    content_end = content_start + content_length
    if len(buffer) < content_end:
        return None, buffer

    content = buffer[content_start:content_end]
    remaining = buffer[content_end:]
    try:
        message = json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.error(f"Failed to parse message: {content[:100]!r}")
        return None, remaining
    if not isinstance(message, dict):
        logger.error(f"Ignoring non-object message: {content[:100]!r}")
        return None, remaining
    return message, remaining


class MessageReader:
    """Blocking reader of framed messages from a file descriptor."""

    def __init__(self, fd: int):
        self._fd = fd
        self._buffer = b""

    def read_message(self) -> Optional[Dict[str, Any]]:
        """Return the next message, or None once the stream is closed."""
        while True:
            while self._buffer:
                before = len(self._buffer)
                message, self._buffer = parse_message(self._buffer)
                if message is not None:
                    return message
                if len(self._buffer) == before:
                    break

            try:
                chunk = os.read(self._fd, _READ_SIZE)
            except OSError as e:
                logger.debug(f"Read failed on fd {self._fd}: {e}")
                return None
            if not chunk:
                return None
            self._buffer += chunk


def request(request_id: int, method: str, params: Any = None) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params}


def notification(method: str, params: Any = None) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "method": method, "params": params}


def result_response(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def build_handshake(config: HandshakeConfig) -> Dict[str, Any]:
    """Build the handshake notification a plugin sends first."""
    return notification(
        HANDSHAKE_METHOD,
        {
            "protocolVersion": config.protocol_version,
            "magicCookieKey": config.magic_cookie_key,
            "magicCookieValue": config.magic_cookie_value,
        },
    )


def check_handshake(
    message: Optional[Dict[str, Any]],
    config: HandshakeConfig,
    accepted_versions: Iterable[int],
) -> int:
    """Validate a plugin's handshake against the host configuration.

    Args:
        message: First message received from the plugin
        config: Cookie the host expects
        accepted_versions: Protocol versions the host can speak

    Returns:
        The negotiated protocol version

    Raises:
        HandshakeError: If the message is not a matching handshake
    """
    if message is None:
        raise HandshakeError("plugin exited before completing the handshake")
    if message.get("method") != HANDSHAKE_METHOD or "id" in message:
        raise HandshakeError(f"expected handshake, got {message.get('method')!r}")

    params = message.get("params") or {}
    if not isinstance(params, dict):
        raise HandshakeError("handshake parameters must be an object")

    if params.get("magicCookieKey") != config.magic_cookie_key:
        raise HandshakeError("magic cookie key mismatch")
    if params.get("magicCookieValue") != config.magic_cookie_value:
        raise HandshakeError("magic cookie value mismatch")

    version = params.get("protocolVersion")
    accepted = sorted(set(accepted_versions))
    if not isinstance(version, int) or version not in accepted:
        raise HandshakeError(
            f"unsupported protocol version {version!r} (host accepts {accepted})"
        )
    return version


def parse_version(version: str) -> Tuple[int, ...]:
    """Parse a dotted numeric version ("0.0.1") into a comparable tuple.

    Raises:
        ValueError: If a component is not an integer
    """
    return tuple(int(part) for part in version.strip().split("."))


def version_in_range(version: str, minimum: str, maximum: str) -> bool:
    """Check `minimum <= version < maximum` for dotted numeric versions."""
    try:
        parsed = parse_version(version)
    except ValueError:
        return False
    return parse_version(minimum) <= parsed < parse_version(maximum)
