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
Execution of external commands to completion, with optional output capture.
"""
import logging
import subprocess
from typing import Dict, List, Optional, Union
from pathlib import Path

logger = logging.getLogger(__name__)


class ProcessOutcome:
    """
    What happened when a command was run.
    """
    def __init__(self,
                 command: List[str],
                 exit_code: Optional[int] = None,
                 stdout: str = "",
                 stderr: str = "",
                 error: Optional[str] = None):
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.error = error  # set when the process couldn't be spawned or timed out

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.exit_code == 0


class ProcessRunner:
    """
    Runs a single command and waits for it to finish.
    """
    def __init__(self, name: str, timeout: Optional[float] = None):
        """
        Initializes the process runner.

        Args:
            name (str): Identifier used in log messages.
            timeout (Optional[float]): Seconds to wait before killing the command, None to wait forever.
        """
        self.name = name
        self.timeout = timeout

    def run(self,
            command: List[str],
            env: Optional[Dict[str, str]] = None,
            working_dir: Optional[Union[str, Path]] = None,
            capture: bool = True) -> ProcessOutcome:
        """
        Runs the command without a shell. Never raises for process failures.

        Args:
            command (List[str]): Command and arguments to execute.
            env (Optional[Dict[str, str]]): Environment for the process, inherited if None.
            working_dir (Optional[str]): Directory to run in, if it exists.
            capture (bool): Capture stdout/stderr instead of passing them through.

        Returns:
            ProcessOutcome: Exit code and captured output, or the spawn/timeout error.
        """
        if not command:
            return ProcessOutcome(command, error="empty command")

        cwd = str(working_dir) if working_dir and Path(working_dir).is_dir() else None
        logger.debug("[%s] Running command: %s", self.name, ' '.join(command))

        try:
            completed = subprocess.run(
                command,
                env=env,
                cwd=cwd,
                capture_output=capture,
                text=True,
                timeout=self.timeout,
                # Avoid shell=True for security reasons (CWE-78)
                shell=False
            )
        except subprocess.TimeoutExpired as e:
            logger.error("[%s] Command timed out after %ss: %s", self.name, self.timeout, command[0])
            return ProcessOutcome(
                command,
                stdout=_as_text(e.stdout),
                stderr=_as_text(e.stderr),
                error=f"timed out after {self.timeout}s",
            )
        except OSError as e:
            logger.error("[%s] Failed to start %s: %s", self.name, command[0], e)
            return ProcessOutcome(command, error=f"failed to start: {e}")
        except ValueError as e:
            # embedded NUL in an argument or environment entry
            logger.error("[%s] Invalid command or environment for %s: %s", self.name, command[0], e)
            return ProcessOutcome(command, error=f"failed to start: {e}")

        return ProcessOutcome(
            command,
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


def _as_text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data
