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

"""Entry point of the search plugin executable."""

import os
import sys

from pogo.config import ENV_LOG_LEVEL, load_config
from pogo.log import configure_plugin_logging
from pogo.plugin.server import serve
from pogo.search.plugin import HANDSHAKE, BasicSearch

ENV_CONFIG = "POGO_CONFIG"


def main() -> None:
    configure_plugin_logging(os.environ.get(ENV_LOG_LEVEL, "DEBUG"))
    config = load_config(os.environ.get(ENV_CONFIG))

    basic_search = BasicSearch(config=config.search)
    try:
        status = serve(basic_search, HANDSHAKE)
    finally:
        basic_search.close()
    sys.exit(status)


if __name__ == "__main__":
    main()
