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

"""Request and response payloads of the search plugin."""

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from pogo.plugin.codec import ErrorResponse

__all__ = [
    "ErrorResponse",
    "IndexStatus",
    "IndexedProject",
    "SearchRequest",
    "SearchResponse",
]

FILES_REQUEST = "files"


class IndexStatus(str, Enum):
    """Lifecycle of a tracked project root."""

    UNTRACKED = "untracked"
    INDEXING = "indexing"
    READY = "ready"


class IndexedProject(BaseModel):
    """File listing snapshot for one project root.

    Snapshots are replaced as a whole, never edited in place, so a reader
    holding one always sees a complete listing.
    """

    root: str = ""
    paths: List[str] = Field(default_factory=list)


class SearchRequest(BaseModel):
    """Input to `execute`. Missing fields decode as empty strings."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = ""
    project_root: str = Field(default="", alias="projectRoot")


class SearchResponse(BaseModel):
    """Result of a search: either a populated index or an error message.

    Decoding an ErrorResponse string as a SearchResponse yields an empty
    index and the error text, so callers can always parse into this type.
    """

    index: IndexedProject = Field(default_factory=IndexedProject)
    error: str = ""
