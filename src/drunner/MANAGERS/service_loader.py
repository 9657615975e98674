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
Loading of service definitions and reconciliation with persisted variables.
"""
import logging
from typing import Optional, Tuple

from ..MODELS.service_definition import ServiceDefinition, ServiceDefinitionBuilder
from ..MODELS.service_paths import ServicePaths
from ..MODELS.settings import Settings
from ..SCRIPTING.lua_host import LuaScriptHost
from ..UTILS.errors import ImageNameMismatchError
from .variable_store import VariableStore

logger = logging.getLogger(__name__)


class ServiceLoader:
    """
    Produces a validated ServiceDefinition for one service and brings its
    VariableStore up to date.
    """
    def __init__(self,
                 paths: ServicePaths,
                 variables: VariableStore,
                 script_max_memory: Optional[int] = None):
        """
        :param paths: Locations of the service's files.
        :param variables: The service's variable store, mutated by load().
        :param script_max_memory: Optional memory cap for the Lua runtime, in bytes.
        """
        self.paths = paths
        self.variables = variables
        self.script_max_memory = script_max_memory

    def load(self) -> ServiceDefinition:
        """
        Runs the definition script and reconciles the variable store.

        On any failure the variable store is restored to its state before the
        call and no definition is returned.

        :return: The immutable service definition.
        :raises ScriptError: if service.lua is missing, unreadable or fails.
        :raises ServiceValidationError: if the definition is invalid or IMAGENAME changed.
        """
        snapshot = self.variables.snapshot()
        try:
            return self._load()
        except Exception:
            self.variables.restore(snapshot)
            raise

    def _load(self) -> ServiceDefinition:
        name = self.paths.name
        script = self.paths.service_lua

        # 1. built-in variables
        self.variables.set_variable(VariableStore.SERVICENAME, name)
        self.variables.set_variable(VariableStore.SERVICEDIR, str(self.paths.service_dir))

        # 2. run the script
        builder = ServiceDefinitionBuilder(name, str(script))
        logger.debug("Loading service %s from %s", name, script)
        with LuaScriptHost(builder, max_memory=self.script_max_memory) as host:
            host.run(script)

        # 3. defaults for declared config items, keeping values already set
        for item in builder.config_items:
            self.variables.setdefault(item.name, item.default)

        # 4. persisted values override defaults
        self.variables.load_config()

        # 5. validate and derive the image name
        definition = builder.build()
        image_name = definition.image_name

        # 6. IMAGENAME must not change identity
        recorded = self.variables.get(VariableStore.IMAGENAME)
        if recorded is not None and recorded.lower() != image_name.lower():
            raise ImageNameMismatchError(name, recorded, image_name)
        self.variables.set_variable(VariableStore.IMAGENAME, image_name)

        logger.debug("Loaded service %s: containers=%s volumes=%s config=%s",
                     name, list(definition.containers),
                     [v.name for v in definition.volumes],
                     [c.name for c in definition.config_items])
        return definition


def load_service(paths: ServicePaths,
                 settings: Optional[Settings] = None) -> Tuple[ServiceDefinition, VariableStore]:
    """
    Creates a service's variable store and loads its definition.

    :param paths: Locations of the service's files.
    :param settings: Global settings, defaults if None.
    :return: The definition and the reconciled variable store.
    """
    settings = settings or Settings()
    variables = VariableStore(paths.variables_file)
    loader = ServiceLoader(paths, variables, script_max_memory=settings.script_max_memory)
    return loader.load(), variables
