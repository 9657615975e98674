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
Per-invocation parameters for running hooks.
"""
import logging
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class HookOutput(str, Enum):
    """
    What happens to the output of hook commands.
    """
    CAPTURED = "captured"  # kept in the HookResult only
    LOGGED = "logged"      # kept and written to the log
    RAW = "raw"            # passed straight through to the console


class RunParams(BaseModel):
    """
    Options for a single drunner command invocation.
    """
    log_level: int = logging.INFO
    hook_output: HookOutput = HookOutput.CAPTURED
    hook_timeout: Optional[float] = None
