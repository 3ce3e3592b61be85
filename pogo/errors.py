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

"""Error taxonomy shared by the plugin host and plugins.

Every error carries a numeric code that mirrors the HTTP status the outer
HTTP layer reports for it:

- 400: the request could not be understood (bad shape, failed validation)
- 404: the request referenced something unknown (request kind, project, plugin)
- 500: something failed on our side (filesystem, remote process, encoding)
"""

from typing import Dict, Type

BAD_REQUEST = 400
NOT_FOUND = 404
INTERNAL_ERROR = 500


class PogoError(Exception):
    """Base exception for pogo errors."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, code: int = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class TransportError(PogoError):
    """A request string could not be un-escaped."""

    code = INTERNAL_ERROR


class SchemaError(PogoError):
    """A request was decoded but its fields are missing or invalid."""

    code = BAD_REQUEST


class UnknownRequestTypeError(SchemaError):
    """A request named a request kind the plugin does not handle."""

    code = NOT_FOUND

    def __init__(self, request_type: str):
        super().__init__(f"Unknown request type: {request_type!r}")
        self.request_type = request_type


class NotFoundError(PogoError):
    """A referenced project root or plugin path is unknown."""

    code = NOT_FOUND


class InternalError(PogoError):
    """Filesystem, remote process or serialization failure."""

    code = INTERNAL_ERROR


class HandshakeError(PogoError):
    """A spawned process failed the plugin handshake."""

    code = INTERNAL_ERROR


class PluginProcessError(InternalError):
    """A plugin process died or stopped responding during a call."""


_CODE_TO_ERROR: Dict[int, Type[PogoError]] = {
    BAD_REQUEST: SchemaError,
    NOT_FOUND: NotFoundError,
    INTERNAL_ERROR: InternalError,
}


def code_to_error(code: int, message: str) -> PogoError:
    """Rebuild a typed error from a wire error object.

    Unknown codes (including JSON-RPC protocol codes) become InternalError
    since the caller cannot act on them.
    """
    error_cls = _CODE_TO_ERROR.get(code, InternalError)
    return error_cls(message, code=code if code in _CODE_TO_ERROR else INTERNAL_ERROR)
