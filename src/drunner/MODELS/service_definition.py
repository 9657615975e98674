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
Models for a loaded service: its containers, volumes, config items and hooks.
"""
import re
from typing import Dict, List, Tuple
from pydantic import BaseModel, ConfigDict, model_validator

from ..UTILS.errors import DefinitionError, ServiceValidationError

# Config items become environment variables for hooks.
_CONFIG_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class Volume(BaseModel):
    """
    A docker volume used by a service.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    external: bool = False  # managed outside drunner, only referenced
    backup: bool = False


class ConfigItem(BaseModel):
    """
    A configuration variable the service accepts, with its default value.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    default: str = ""


class HookCommands(BaseModel):
    """
    Command templates run before (start) and after (end) a lifecycle action.
    An empty string means no hook.
    """
    model_config = ConfigDict(frozen=True)

    start: str = ""
    end: str = ""


class ServiceDefinition(BaseModel):
    """
    The complete, validated definition of a single service.
    Produced by the service loader and never modified afterwards.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    script_path: str
    containers: Tuple[str, ...]
    volumes: Tuple[Volume, ...] = ()
    config_items: Tuple[ConfigItem, ...] = ()
    hooks: Tuple[Tuple[str, HookCommands], ...] = ()

    @model_validator(mode="after")
    def check_unique_names(self) -> "ServiceDefinition":
        for label, names in (
            ("container", list(self.containers)),
            ("volume", [v.name for v in self.volumes]),
            ("config item", [c.name for c in self.config_items]),
        ):
            if len(set(names)) != len(names):
                raise ValueError(f"duplicate {label} names in service {self.name}")
        if not self.containers:
            raise ValueError(f"service {self.name} defines no containers")
        return self

    @property
    def image_name(self) -> str:
        """The service's primary image: the first container declared."""
        return self.containers[0]

    def external_volume_names(self) -> List[str]:
        return [v.name for v in self.volumes if v.external]

    def backup_volume_names(self) -> List[str]:
        return [v.name for v in self.volumes if v.backup]

    def hook_for(self, action_name: str) -> HookCommands:
        """
        Returns the hook commands for an action, empty if the service declares none.
        """
        for name, commands in self.hooks:
            if name == action_name:
                return commands
        return HookCommands()


class ServiceDefinitionBuilder:
    """
    Mutable accumulator filled in while a definition script runs.
    """
    def __init__(self, name: str, script_path: str):
        self.name = name
        self.script_path = str(script_path)
        self.containers: List[str] = []
        self.volumes: List[Volume] = []
        self.config_items: List[ConfigItem] = []
        self.hooks: Dict[str, HookCommands] = {}

    @staticmethod
    def _check_name(name, what: str):
        if not isinstance(name, str) or not name:
            raise DefinitionError(f"Empty or invalid {what} name: {name!r}")

    def add_container(self, name: str):
        self._check_name(name, "container")
        if name in self.containers:
            raise DefinitionError(f"Container already exists: {name}")
        self.containers.append(name)

    def add_volume(self, name: str, external: bool, backup: bool):
        self._check_name(name, "volume")
        if not isinstance(external, bool) or not isinstance(backup, bool):
            raise DefinitionError(f"Volume {name}: external and backup flags must be booleans")
        if any(v.name == name for v in self.volumes):
            raise DefinitionError(f"Volume already exists: {name}")
        self.volumes.append(Volume(name=name, external=external, backup=backup))

    def add_config(self, name: str, default: str):
        self._check_name(name, "config item")
        if not _CONFIG_NAME.fullmatch(name):
            raise DefinitionError(f"Config item name must be a valid environment variable name: {name!r}")
        if isinstance(default, bool) or not isinstance(default, (str, int, float)):
            raise DefinitionError(f"Config item {name}: default must be a string")
        if any(c.name == name for c in self.config_items):
            raise DefinitionError(f"Config item already exists: {name}")
        if isinstance(default, float) and default.is_integer():
            # 8080.0 -> "8080"
            default = int(default)
        if "\0" in str(default):
            raise DefinitionError(f"Config item {name}: default contains a NUL character")
        self.config_items.append(ConfigItem(name=name, default=str(default)))

    def add_hook(self, action_name: str, start: str = "", end: str = ""):
        if not isinstance(action_name, str) or not action_name:
            raise ServiceValidationError(f"Invalid hook action name: {action_name!r}", service=self.name)
        for label, cmd in (("start", start), ("end", end)):
            if not isinstance(cmd, str):
                raise ServiceValidationError(
                    f"Hook '{action_name}' {label} command must be a string", service=self.name
                )
        self.hooks[action_name] = HookCommands(start=start, end=end)

    def build(self) -> ServiceDefinition:
        """
        Freezes the accumulated state into a ServiceDefinition.

        :raises ServiceValidationError: if no container was declared.
        """
        if not self.containers:
            raise ServiceValidationError("no containers defined", service=self.name)
        return ServiceDefinition(
            name=self.name,
            script_path=self.script_path,
            containers=tuple(self.containers),
            volumes=tuple(self.volumes),
            config_items=tuple(self.config_items),
            hooks=tuple(self.hooks.items()),
        )
