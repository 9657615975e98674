# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
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

"""
Console logging setup for the drunner CLI.
"""
import logging
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)


def setup_logging(level: Union[int, str] = logging.INFO, debug: bool = False):
    """
    Configures the root logger to write through rich to stderr.

    :param level: Log level name or number, ignored when debug is set.
    :param debug: Log everything, with timestamps and source locations.
    """
    if debug:
        level = logging.DEBUG
    elif isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_time=debug,
                show_path=debug,
            )
        ],
        force=True,
    )
