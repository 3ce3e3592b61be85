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

"""Configuration for the plugin host and the search plugin.

Configuration is read from an optional YAML file and then overridden by
environment variables:

```yaml
log_level: INFO
host:
  plugin_dir: ~/.pogo/plugins
  start_timeout: 10
  call_timeout: 30
  handshake:
    protocol_version: 2
    magic_cookie_key: SEARCH_PLUGIN
    magic_cookie_value: 93f6bc9f97c03ed00fa85c904aca15a92752e549
search:
  skip_dirs: [.git, .pogo]
  debounce_seconds: 0.2
```
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ENV_PLUGIN_DIR = "POGO_PLUGIN_DIR"
ENV_LOG_LEVEL = "POGO_LOG_LEVEL"
ENV_START_TIMEOUT = "POGO_START_TIMEOUT"
ENV_CALL_TIMEOUT = "POGO_CALL_TIMEOUT"

DEFAULT_PLUGIN_DIR = "~/.pogo/plugins"


class HandshakeConfig(BaseModel):
    """Handshake values a host and its plugins must agree on.

    This is a usability guard that keeps users from running arbitrary
    executables as plugins. It is not a security boundary.
    """

    protocol_version: int = Field(default=2, description="Plugin protocol version")
    magic_cookie_key: str = Field(default="SEARCH_PLUGIN")
    magic_cookie_value: str = Field(default="93f6bc9f97c03ed00fa85c904aca15a92752e549")


class HostConfig(BaseModel):
    """Configuration for the plugin driver."""

    plugin_dir: str = Field(default=DEFAULT_PLUGIN_DIR, description="Directory scanned for plugins")
    handshake: HandshakeConfig = Field(default_factory=HandshakeConfig)
    accepted_protocol_versions: List[int] = Field(
        default_factory=lambda: [2], description="Protocol versions the host can speak"
    )
    min_api_version: str = Field(default="0.0.1", description="Oldest plugin API accepted")
    max_api_version: str = Field(default="1.0.0", description="First plugin API rejected")
    start_timeout: float = Field(default=10.0, description="Seconds to wait for a handshake")
    call_timeout: float = Field(default=30.0, description="Seconds to wait for an RPC reply")
    shutdown_timeout: float = Field(default=5.0, description="Grace period before a hard kill")

    @property
    def plugin_path(self) -> Path:
        return Path(os.path.expandvars(self.plugin_dir)).expanduser()


class SearchConfig(BaseModel):
    """Configuration for the file-system search plugin."""

    skip_dirs: List[str] = Field(
        default_factory=lambda: [".git", ".pogo"],
        description="Directory names pruned from indexing and watching",
    )
    enable_watcher: bool = Field(default=True, description="Watch tracked roots for changes")
    debounce_seconds: float = Field(default=0.2, description="Watch event coalescing window")
    max_workers: int = Field(default=4, ge=1, description="Concurrent index builds")


class PogoConfig(BaseModel):
    """Top-level configuration."""

    log_level: str = "INFO"
    host: HostConfig = Field(default_factory=HostConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)


def load_config(path: Optional[Union[str, Path]] = None) -> PogoConfig:
    """Load configuration from a YAML file and the environment.

    Args:
        path: YAML file to read. A missing file is not an error.

    Returns:
        Validated configuration
    """
    data = {}
    if path is not None:
        config_path = Path(path).expanduser()
        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            logger.debug(f"Loaded configuration from {config_path}")
        else:
            logger.debug(f"No configuration file at {config_path}, using defaults")

    config = PogoConfig.model_validate(data)
    _apply_env_overrides(config)
    return config


def _apply_env_overrides(config: PogoConfig) -> None:
    plugin_dir = os.environ.get(ENV_PLUGIN_DIR)
    if plugin_dir:
        config.host.plugin_dir = plugin_dir

    log_level = os.environ.get(ENV_LOG_LEVEL)
    if log_level:
        config.log_level = log_level.upper()

    for env_name, attr in ((ENV_START_TIMEOUT, "start_timeout"), (ENV_CALL_TIMEOUT, "call_timeout")):
        value = os.environ.get(env_name)
        if not value:
            continue
        try:
            setattr(config.host, attr, float(value))
        except ValueError:
            logger.warning(f"Ignoring {env_name}={value!r}: not a number")
