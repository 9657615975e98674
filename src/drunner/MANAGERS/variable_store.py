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
Per-service variable storage with defaulting and dotenv persistence.
"""
import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from dotenv import dotenv_values, set_key

from ..UTILS.errors import PersistenceWarning

logger = logging.getLogger(__name__)


class VariableStore:
    """
    Ordered name -> value mapping of a service's variables.

    Values are always strings. The store is backed by a dotenv file which is
    only read by load_config() and only written by save_config().
    """
    IMAGENAME = "IMAGENAME"
    SERVICENAME = "SERVICENAME"
    SERVICEDIR = "SERVICEDIR"
    # Re-derived on every load, never read from or written to the file.
    RUNTIME_BUILTINS = (SERVICENAME, SERVICEDIR)

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """
        :param path: Location of the persisted variables file, or None for an in-memory store.
        """
        self.path = Path(path) if path is not None else None
        self._vars: Dict[str, str] = {}

    def set_variable(self, name: str, value: str):
        if not name:
            raise ValueError("Variable name must not be empty")
        self._vars[name] = str(value)

    def setdefault(self, name: str, value: str) -> str:
        """
        Sets a variable only if it has no value yet. Returns the resulting value.
        """
        if name not in self._vars:
            self.set_variable(name, value)
        return self._vars[name]

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._vars.get(name, default)

    def has_key(self, name: str) -> bool:
        return name in self._vars

    def keys(self) -> List[str]:
        return list(self._vars)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._vars)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._vars)

    def restore(self, snapshot: Dict[str, str]):
        self._vars = dict(snapshot)

    def __getitem__(self, name: str) -> str:
        return self._vars[name]

    def __contains__(self, name: str) -> bool:
        return name in self._vars

    def __iter__(self) -> Iterator[str]:
        return iter(self._vars)

    def __len__(self) -> int:
        return len(self._vars)

    def load_config(self) -> bool:
        """
        Merges persisted values over the current ones.

        Never raises: a missing, unreadable or undecodable file is logged and
        the current values (normally the defaults) are kept.

        :return: True if a persisted file was read.
        """
        if self.path is None:
            return False
        if not self.path.is_file():
            logger.debug("No persisted variables at %s, using defaults.", self.path)
            return False
        try:
            values = dotenv_values(self.path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("%s: couldn't load service variables from %s: %s",
                           PersistenceWarning.__name__, self.path, e)
            return False

        for name, value in values.items():
            # dotenv yields None for a bare "KEY" line
            if value is None:
                continue
            if name in self.RUNTIME_BUILTINS:
                logger.debug("Ignoring persisted %s in %s", name, self.path)
                continue
            self._vars[name] = value
        logger.debug("Loaded %d persisted variables from %s", len(values), self.path)
        return True

    def save_config(self):
        """
        Writes every variable except the runtime built-ins to the persisted
        file, creating it if needed.
        """
        if self.path is None:
            raise ValueError("This variable store has no file to save to")
        os.makedirs(self.path.parent, exist_ok=True)
        self.path.touch(exist_ok=True)
        saved = 0
        for name, value in self._vars.items():
            if name in self.RUNTIME_BUILTINS:
                continue
            set_key(str(self.path), name, value, quote_mode="always")
            saved += 1
        logger.debug("Saved %d variables to %s", saved, self.path)
