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

"""Tests for the wire protocol and the plugin-side server loop."""

import io
import os
import threading

import pytest

from pogo.config import HandshakeConfig
from pogo.errors import HandshakeError, SchemaError
from pogo.plugin import protocol
from pogo.plugin.interface import PluginInfo, PogoPlugin, ProcessProjectRequest
from pogo.plugin.server import PluginServer


class TestFraming:
    """Tests for Content-Length framing."""

    def test_parse_complete_message(self):
        data = protocol.encode_message({"jsonrpc": "2.0", "id": 1, "result": "ok"})
        message, rest = protocol.parse_message(data + b"tail")
        assert message == {"jsonrpc": "2.0", "id": 1, "result": "ok"}
        assert rest == b"tail"

    def test_partial_message_waits_for_more(self):
        data = protocol.encode_message({"id": 1, "result": "x" * 100})
        message, rest = protocol.parse_message(data[:-10])
        assert message is None
        assert rest == data[:-10]

    def test_content_length_counts_bytes(self):
        data = protocol.encode_message({"result": "ü"})
        message, rest = protocol.parse_message(data)
        assert message == {"result": "ü"}
        assert rest == b""

    def test_invalid_json_body_is_dropped(self):
        data = b"Content-Length: 5\r\n\r\n{oops" + protocol.encode_message({"id": 2})
        message, rest = protocol.parse_message(data)
        assert message is None
        message, rest = protocol.parse_message(rest)
        assert message == {"id": 2}

    def test_reader_reads_across_chunks(self):
        read_fd, write_fd = os.pipe()
        with os.fdopen(write_fd, "wb") as writer:
            for i in range(3):
                protocol.write_message(writer, {"id": i, "result": "r" * 5000})
        reader = protocol.MessageReader(read_fd)
        try:
            assert [reader.read_message()["id"] for _ in range(3)] == [0, 1, 2]
            assert reader.read_message() is None
        finally:
            os.close(read_fd)

    def test_write_message_flushes(self):
        stream = io.BytesIO()
        protocol.write_message(stream, {"id": 1}, threading.Lock())
        message, _ = protocol.parse_message(stream.getvalue())
        assert message == {"id": 1}


class TestHandshake:
    """Tests for handshake validation."""

    @pytest.fixture
    def config(self):
        return HandshakeConfig(protocol_version=2, magic_cookie_key="K", magic_cookie_value="V")

    def test_matching_handshake(self, config):
        assert protocol.check_handshake(protocol.build_handshake(config), config, [2]) == 2

    def test_wrong_cookie_value(self, config):
        other = config.model_copy(update={"magic_cookie_value": "nope"})
        with pytest.raises(HandshakeError, match="value"):
            protocol.check_handshake(protocol.build_handshake(other), config, [2])

    def test_wrong_cookie_key(self, config):
        other = config.model_copy(update={"magic_cookie_key": "OTHER"})
        with pytest.raises(HandshakeError, match="key"):
            protocol.check_handshake(protocol.build_handshake(other), config, [2])

    def test_unsupported_protocol_version(self, config):
        other = config.model_copy(update={"protocol_version": 3})
        with pytest.raises(HandshakeError, match="protocol version"):
            protocol.check_handshake(protocol.build_handshake(other), config, [1, 2])

    def test_process_exit_before_handshake(self, config):
        with pytest.raises(HandshakeError, match="exited"):
            protocol.check_handshake(None, config, [2])

    def test_other_first_message(self, config):
        with pytest.raises(HandshakeError, match="expected handshake"):
            protocol.check_handshake(protocol.result_response(1, None), config, [2])


class TestVersionRange:
    """Tests for plugin API version checks."""

    @pytest.mark.parametrize(
        "version,expected",
        [("0.0.1", True), ("0.9.12", True), ("1.0.0", False), ("0.0.0", False), ("abc", False)],
    )
    def test_version_in_range(self, version, expected):
        assert protocol.version_in_range(version, "0.0.1", "1.0.0") is expected


class _EchoPlugin(PogoPlugin):
    def __init__(self):
        self.projects = []

    def info(self) -> PluginInfo:
        return PluginInfo(version="0.0.1")

    def execute(self, request: str) -> str:
        return request[::-1]

    def process_project(self, req: ProcessProjectRequest) -> None:
        if not req.path:
            raise SchemaError("Project path is required.")
        self.projects.append(req.path)


class TestPluginServer:
    """Drive a PluginServer over pipes the way the host does."""

    @pytest.fixture
    def channel(self):
        handshake = HandshakeConfig()
        plugin = _EchoPlugin()
        host_to_plugin_r, host_to_plugin_w = os.pipe()
        plugin_to_host_r, plugin_to_host_w = os.pipe()
        out_stream = os.fdopen(plugin_to_host_w, "wb")
        server = PluginServer(plugin, handshake, host_to_plugin_r, out_stream)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()

        host_out = os.fdopen(host_to_plugin_w, "wb")
        reader = protocol.MessageReader(plugin_to_host_r)
        yield plugin, handshake, host_out, reader, thread

        if not host_out.closed:
            host_out.close()
        thread.join(timeout=5)
        out_stream.close()
        os.close(host_to_plugin_r)
        os.close(plugin_to_host_r)

    def _call(self, host_out, reader, request_id, method, params=None):
        protocol.write_message(host_out, protocol.request(request_id, method, params))
        return reader.read_message()

    def test_handshake_is_first_message(self, channel):
        _, handshake, _, reader, _ = channel
        assert protocol.check_handshake(reader.read_message(), handshake, [2]) == 2

    def test_info_and_execute(self, channel):
        _, _, host_out, reader, _ = channel
        reader.read_message()

        reply = self._call(host_out, reader, 1, protocol.INFO_METHOD)
        assert reply == {"jsonrpc": "2.0", "id": 1, "result": {"version": "0.0.1"}}

        reply = self._call(host_out, reader, 2, protocol.EXECUTE_METHOD, {"request": "abc"})
        assert reply["result"] == "cba"

    def test_process_project_validation_error(self, channel):
        plugin, _, host_out, reader, _ = channel
        reader.read_message()

        reply = self._call(host_out, reader, 1, protocol.PROCESS_PROJECT_METHOD, {"path": ""})
        assert reply["error"]["code"] == 400

        reply = self._call(host_out, reader, 2, protocol.PROCESS_PROJECT_METHOD, {"path": "/p"})
        assert reply["result"] is None
        assert plugin.projects == ["/p"]

    def test_bad_params_and_unknown_method(self, channel):
        _, _, host_out, reader, _ = channel
        reader.read_message()

        reply = self._call(host_out, reader, 1, protocol.EXECUTE_METHOD, {"request": 5})
        assert reply["error"]["code"] == 400

        reply = self._call(host_out, reader, 2, "bogus")
        assert reply["error"]["code"] == protocol.METHOD_NOT_FOUND

    def test_shutdown_then_exit_stops_server(self, channel):
        _, _, host_out, reader, thread = channel
        reader.read_message()

        reply = self._call(host_out, reader, 1, protocol.SHUTDOWN_METHOD)
        assert reply["result"] is None
        protocol.write_message(host_out, protocol.notification(protocol.EXIT_METHOD))
        thread.join(timeout=5)
        assert not thread.is_alive()

    def test_host_closing_stdin_stops_server(self, channel):
        _, _, host_out, reader, thread = channel
        reader.read_message()

        host_out.close()
        thread.join(timeout=5)
        assert not thread.is_alive()
