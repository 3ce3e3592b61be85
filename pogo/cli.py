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

"""Command-line front end for the plugin host.

Each command starts the plugins found in the plugin directory, runs against
them, and stops them again before exiting.
"""

import os
import time
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from pogo import __version__
from pogo.config import PogoConfig, load_config
from pogo.driver.manager import PluginDriver
from pogo.errors import PogoError
from pogo.log import configure_host_logging
from pogo.plugin import codec
from pogo.search.models import FILES_REQUEST, SearchRequest, SearchResponse

console = Console()


class HostContext:
    """Configuration shared by all commands."""

    def __init__(self, config: PogoConfig):
        self.config = config

    def driver(self) -> PluginDriver:
        return PluginDriver(self.config.host)


pass_context = click.make_pass_decorator(HostContext)


@click.group()
@click.version_option(__version__, prog_name="pogo-host")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML configuration file",
)
@click.option("--plugin-dir", default=None, help="Directory scanned for plugins")
@click.option("--log-level", default=None, help="Host log level (default: from config)")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Optional[str],
    plugin_dir: Optional[str],
    log_level: Optional[str],
) -> None:
    """Start pogo plugins and send them requests."""
    config = load_config(config_path)
    if plugin_dir:
        config.host.plugin_dir = plugin_dir
    if log_level:
        config.log_level = log_level.upper()
    configure_host_logging(config.log_level)
    ctx.obj = HostContext(config)


@main.command("list")
@pass_context
def list_plugins(ctx: HostContext) -> None:
    """Show every plugin that starts and completes the handshake."""
    with ctx.driver() as driver:
        driver.init()
        statuses = driver.get_status()

    if not statuses:
        console.print(f"No plugins registered from {ctx.config.host.plugin_path}")
        return

    table = Table(title="Plugins")
    table.add_column("Name")
    table.add_column("API")
    table.add_column("Protocol")
    table.add_column("Path", overflow="fold")
    for status in statuses.values():
        table.add_row(status.name, status.version or "-", str(status.protocol_version), status.path)
    console.print(table)


@main.command("exec")
@click.argument("plugin", type=click.Path(dir_okay=False))
@click.argument("request")
@pass_context
def exec_request(ctx: HostContext, plugin: str, request: str) -> None:
    """Send the raw REQUEST string to PLUGIN and print the raw response."""
    with ctx.driver() as driver:
        driver.init()
        try:
            response = driver.execute(plugin, request)
        except PogoError as e:
            raise click.ClickException(f"{e.code} {e.message}") from e
    click.echo(response)


@main.command("files")
@click.argument("plugin", type=click.Path(dir_okay=False))
@click.argument("root", type=click.Path(exists=True, file_okay=False))
@click.option("--timeout", default=30.0, show_default=True, help="Seconds to wait for the index")
@pass_context
def list_files(ctx: HostContext, plugin: str, root: str, timeout: float) -> None:
    """Index ROOT with a search PLUGIN and print its file listing."""
    root = os.path.abspath(root)
    request = codec.encode(SearchRequest(type=FILES_REQUEST, project_root=root))
    deadline = time.monotonic() + timeout

    with ctx.driver() as driver:
        driver.init()
        try:
            driver.process_project(plugin, root)
            while True:
                response = codec.decode(driver.execute(plugin, request), SearchResponse)
                if not response.error or time.monotonic() >= deadline:
                    break
                time.sleep(0.1)
        except PogoError as e:
            raise click.ClickException(f"{e.code} {e.message}") from e

    if response.error:
        raise click.ClickException(response.error)
    for path in response.index.paths:
        click.echo(path)


if __name__ == "__main__":
    main()
