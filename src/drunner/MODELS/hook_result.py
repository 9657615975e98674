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
Structured outcome of running one lifecycle hook.
"""
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel


class HookStage(str, Enum):
    START = "start"
    END = "end"


class HookStatus(str, Enum):
    SUCCESS = "success"
    NOOP = "noop"      # no command declared, nothing spawned
    FAILED = "failed"


class HookResult(BaseModel):
    """
    Result of a start or end hook. Failures are reported here, never raised.
    """
    action: str
    stage: HookStage
    status: HookStatus
    command: List[str] = []
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status != HookStatus.FAILED

    @property
    def ran(self) -> bool:
        """True if a process was actually spawned."""
        return self.exit_code is not None

    def describe(self) -> str:
        """
        One-line summary suitable for logs and CLI output.
        """
        text = f"{self.action} {self.stage.value} hook: {self.status.value}"
        if self.exit_code not in (None, 0):
            text += f" (exit code {self.exit_code})"
        if self.message:
            text += f" - {self.message}"
        return text
