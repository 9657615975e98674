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
Sandboxed Lua host that runs a service definition script.

The script only ever sees a fresh environment table holding a safe subset of
the Lua standard library and the three definition callbacks:

    addcontainer(name)
    addvolume(name, external, backup)
    addconfig(name, default)

Each LuaScriptHost owns its own Lua runtime and is bound to exactly one
ServiceDefinitionBuilder, so loads of different services never share state.
"""
import logging
from pathlib import Path
from typing import Optional, Union

from lupa import LuaError, LuaRuntime, lua_type

from ..MODELS.service_definition import ServiceDefinitionBuilder
from ..UTILS.errors import DefinitionError, ScriptError, ServiceValidationError

logger = logging.getLogger(__name__)

SETUP_FUNCTION = "drunner_setup"
HOOKS_TABLE = "drunner_hooks"

# Builds the sandbox environment, wraps the Python callbacks so a returned
# error message becomes a Lua error at the caller's line, and compiles the
# script as text only into that environment.
_BOOTSTRAP = """
function(source, chunkname, callbacks)
    local env = {}
    for _, name in ipairs({
        "assert", "error", "ipairs", "next", "pairs", "pcall", "select",
        "tonumber", "tostring", "type", "xpcall", "rawequal", "rawget",
        "rawlen", "rawset", "setmetatable", "getmetatable",
    }) do
        env[name] = _G[name]
    end
    for _, lib in ipairs({"string", "table", "math", "utf8", "coroutine"}) do
        if _G[lib] ~= nil then
            local copy = {}
            for k, v in pairs(_G[lib]) do
                copy[k] = v
            end
            env[lib] = copy
        end
    end
    env._G = env

    for name, callback in pairs(callbacks) do
        env[name] = function(...)
            local err = callback(...)
            if err ~= nil then
                error(err, 2)
            end
            return 0
        end
    end

    local chunk, err = load(source, chunkname, "t", env)
    return env, chunk, err
end
"""


def _deny_attribute_access(obj, attr_name, is_setting):
    raise AttributeError(f"access to '{attr_name}' is not allowed from service scripts")


class LuaScriptHost:
    """
    Runs one definition script against one builder.

    Use as a context manager: the builder is attached on entry and detached
    on exit, whether or not the script succeeded. Callbacks reaching a
    detached host fail.
    """
    def __init__(self, builder: ServiceDefinitionBuilder, max_memory: Optional[int] = None):
        """
        :param builder: Builder receiving the script's declarations.
        :param max_memory: Optional cap in bytes on the Lua runtime's memory.
        """
        self.builder = builder
        self.max_memory = max_memory
        self._attached: Optional[ServiceDefinitionBuilder] = None
        self._lua: Optional[LuaRuntime] = None

    def __enter__(self) -> "LuaScriptHost":
        kwargs = {}
        if self.max_memory:
            kwargs["max_memory"] = self.max_memory
        self._lua = LuaRuntime(
            register_eval=False,
            register_builtins=False,
            attribute_filter=_deny_attribute_access,
            **kwargs
        )
        self._attached = self.builder
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self._attached = None
        self._lua = None
        return False

    @property
    def attached(self) -> bool:
        return self._attached is not None

    # Callbacks. Each returns None on success or an error message that the
    # Lua wrapper raises inside the script.

    def _invoke(self, func_name: str, arity: int, args: tuple) -> Optional[str]:
        if len(args) != arity:
            return f"{func_name} expects {arity} argument(s), got {len(args)}"
        builder = self._attached
        if builder is None:
            return f"{func_name} called outside of a service load"
        try:
            if func_name == "addcontainer":
                builder.add_container(*args)
            elif func_name == "addvolume":
                builder.add_volume(*args)
            else:
                builder.add_config(*args)
        except DefinitionError as e:
            return str(e)
        return None

    def addcontainer(self, *args) -> Optional[str]:
        return self._invoke("addcontainer", 1, args)

    def addvolume(self, *args) -> Optional[str]:
        return self._invoke("addvolume", 3, args)

    def addconfig(self, *args) -> Optional[str]:
        return self._invoke("addconfig", 2, args)

    def run(self, script_path: Union[str, Path]):
        """
        Executes the script and its drunner_setup() function, then reads the
        optional drunner_hooks table.

        :param script_path: Path to service.lua.
        :raises ScriptError: if the file can't be read or the script fails.
        :raises ServiceValidationError: if drunner_hooks is malformed.
        """
        if self._lua is None:
            raise RuntimeError("LuaScriptHost.run() called outside of its context")
        path = str(script_path)

        try:
            with open(path, 'r', encoding='utf-8') as f:
                source = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ScriptError(path, f"Failed to read script: {e}") from e

        callbacks = self._lua.table_from({
            "addcontainer": self.addcontainer,
            "addvolume": self.addvolume,
            "addconfig": self.addconfig,
        })
        bootstrap = self._lua.eval(_BOOTSTRAP)

        try:
            env, chunk, load_error = bootstrap(source, "@" + path, callbacks)
            if chunk is None:
                raise ScriptError(path, f"Failed to load: {load_error}")
            chunk()
            # raw lookups: the script may have put a metatable on its globals
            raw_get = self._lua.eval("rawget")
            setup = raw_get(env, SETUP_FUNCTION)
            if lua_type(setup) != "function":
                raise ScriptError(path, f"Script does not define a {SETUP_FUNCTION}() function")
            logger.debug("Running %s() from %s", SETUP_FUNCTION, path)
            setup()
            self._read_hooks(raw_get(env, HOOKS_TABLE), raw_get)
        except LuaError as e:
            raise ScriptError(path, f"Failed to execute: {e}") from e

    def _read_hooks(self, hooks, raw_get):
        if hooks is None:
            return
        name = self.builder.name
        if lua_type(hooks) != "table":
            raise ServiceValidationError(f"{HOOKS_TABLE} must be a table", service=name)

        entries = {}
        for action_name, entry in hooks.items():
            if lua_type(entry) != "table":
                raise ServiceValidationError(
                    f"{HOOKS_TABLE}.{action_name} must be a table of start/end commands", service=name
                )
            unknown = [k for k in entry.keys() if k not in ("start", "end")]
            if unknown:
                raise ServiceValidationError(
                    f"{HOOKS_TABLE}.{action_name}: unknown keys {unknown}", service=name
                )
            entries[action_name] = (raw_get(entry, "start") or "", raw_get(entry, "end") or "")

        for action_name in sorted(entries, key=str):
            start, end = entries[action_name]
            self.builder.add_hook(action_name, start, end)
