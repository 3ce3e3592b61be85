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

"""Logging setup for the host and for plugin processes.

A plugin's stdout belongs to the RPC channel, so plugins log one JSON object
per line to stderr. The host reads those lines and re-emits them through its
own logging tree at the level the plugin used.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from rich.console import Console
from rich.logging import RichHandler

# Attributes present on every LogRecord; anything else was passed via `extra`
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "@level": record.levelname.lower(),
            "@module": record.name,
            "@message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_host_logging(level: str = "INFO") -> None:
    """Send host logs to the console through rich."""
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


def configure_plugin_logging(level: str = "DEBUG") -> None:
    """Send plugin logs to stderr as JSON lines for the host to relay."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonLineFormatter())
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)


_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def relay_plugin_log_line(logger: logging.Logger, line: str) -> None:
    """Re-emit one line of plugin stderr on the host.

    JSON lines keep their level and message; anything else (tracebacks,
    prints from third-party code) is logged verbatim at DEBUG.
    """
    line = line.rstrip()
    if not line:
        return
    try:
        entry = json.loads(line)
    except json.JSONDecodeError:
        logger.debug(line)
        return
    if not isinstance(entry, dict):
        logger.debug(line)
        return

    level = _LEVELS.get(str(entry.pop("@level", "debug")).lower(), logging.DEBUG)
    message = entry.pop("@message", "")
    entry.pop("@timestamp", None)
    entry.pop("@module", None)
    if entry:
        fields = " ".join(f"{key}={value}" for key, value in entry.items())
        message = f"{message} {fields}"
    logger.log(level, message)
