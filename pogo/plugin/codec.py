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

"""String encoding for payloads crossing the plugin boundary.

Payloads are serialized to JSON and then query-escaped so they survive the
string-only `execute` call unchanged. The host never looks inside them.
"""

import re
from typing import Type, TypeVar
from urllib.parse import quote_plus, unquote_plus

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pogo.errors import SchemaError, TransportError

ModelT = TypeVar("ModelT", bound=BaseModel)


class ErrorResponse(BaseModel):
    """Failure reported before a plugin-specific response could be formed."""

    model_config = ConfigDict(populate_by_name=True)

    error_code: int = Field(alias="errorCode")
    error: str


# A '%' must introduce exactly two hex digits
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def escape(text: str) -> str:
    """Query-escape a string (spaces become '+')."""
    return quote_plus(text, safe="")


def unescape(encoded: str) -> str:
    """Reverse escape().

    Raises:
        TransportError: If the string has malformed percent escapes
    """
    match = _BAD_ESCAPE.search(encoded)
    if match:
        raise TransportError(f"invalid escape sequence at offset {match.start()}")
    try:
        return unquote_plus(encoded, errors="strict")
    except UnicodeDecodeError as e:
        raise TransportError(f"escaped bytes are not valid UTF-8: {e}") from e


def encode(model: BaseModel) -> str:
    """Serialize a model to the transport string."""
    return escape(model.model_dump_json(by_alias=True))


def decode(encoded: str, model_cls: Type[ModelT]) -> ModelT:
    """Parse a transport string into a model.

    A JSON `null` decodes like an empty object, leaving every field at its
    default.

    Raises:
        TransportError: The string could not be un-escaped
        SchemaError: The JSON was malformed or did not match the model
    """
    text = unescape(encoded)
    try:
        if text.strip() == "null":
            return model_cls.model_validate({})
        return model_cls.model_validate_json(text)
    except ValidationError as e:
        raise SchemaError(f"invalid {model_cls.__name__}: {e.error_count()} error(s)") from e


def error_response(code: int, message: str) -> str:
    """Encode an ErrorResponse payload."""
    return encode(ErrorResponse(error_code=code, error=message))
