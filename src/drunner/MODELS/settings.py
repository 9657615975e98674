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
Global drunner configuration, read from a YAML file with environment overrides.
"""
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from .params import HookOutput

DEFAULT_ROOT = "~/.drunner"
DEFAULT_CONFIG_FILE = "~/.drunner/drunner.yml"

# environment variable -> settings field
ENV_OVERRIDES = {
    "DRUNNER_ROOT": "root",
    "DRUNNER_LOG_LEVEL": "log_level",
    "DRUNNER_HOOK_TIMEOUT": "hook_timeout",
}


class Settings(BaseModel):
    """
    Settings shared by every command.
    """
    root: Path = Field(default=Path(DEFAULT_ROOT), validate_default=True)
    log_level: str = "INFO"
    hook_timeout: Optional[float] = None
    hook_output: HookOutput = HookOutput.CAPTURED
    script_max_memory: Optional[int] = None

    @field_validator("root")
    @classmethod
    def expand_root(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("log_level")
    @classmethod
    def upper_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    @classmethod
    def from_file(cls,
                  path: Optional[Union[str, Path]] = None,
                  environ: Optional[Dict[str, str]] = None) -> "Settings":
        """
        Loads settings from a YAML file, then applies DRUNNER_* environment overrides.
        A missing file gives the defaults.

        :param path: Settings file. Defaults to $DRUNNER_CONFIG or ~/.drunner/drunner.yml.
        :param environ: Environment to read overrides from, os.environ if None.
        :return: Validated settings.
        """
        environ = os.environ if environ is None else environ
        path = Path(path or environ.get("DRUNNER_CONFIG", DEFAULT_CONFIG_FILE)).expanduser()

        data: Dict[str, Any] = {}
        if path.is_file():
            with open(path, 'r') as f:
                loaded = yaml.safe_load(f)
            if loaded is not None and not isinstance(loaded, dict):
                raise ValueError(f"{path}: expected a mapping of settings")
            data.update(loaded or {})

        for env_name, field_name in ENV_OVERRIDES.items():
            if environ.get(env_name):
                data[field_name] = environ[env_name]

        return cls(**data)
