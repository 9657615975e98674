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
Filesystem locations belonging to a single service.
"""
from pathlib import Path
from typing import Union


class ServicePaths:
    """
    Resolves where a service keeps its definition script and persisted variables.

    Layout: <root>/services/<name>/service.lua and <root>/services/<name>/variables.env
    """
    SCRIPT_NAME = "service.lua"
    VARIABLES_NAME = "variables.env"

    def __init__(self, root: Union[str, Path], name: str):
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"Invalid service name: {name!r}")
        self.root = Path(root).expanduser()
        self.name = name

    @property
    def service_dir(self) -> Path:
        return self.root / "services" / self.name

    @property
    def service_lua(self) -> Path:
        return self.service_dir / self.SCRIPT_NAME

    @property
    def variables_file(self) -> Path:
        return self.service_dir / self.VARIABLES_NAME

    def __repr__(self):
        return f"ServicePaths(root={str(self.root)!r}, name={self.name!r})"
