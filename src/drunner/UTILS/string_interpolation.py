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
Utilities for variable interpolation and hook command substitution.
"""
import re
import shlex
from typing import Dict, List, Optional, Sequence

from .errors import HookTemplateError


class EnvironmentInterpolator:
    """
    Utility for interpolating variables in strings.
    Supports ${VAR}, ${VAR:-default}, and ${VAR:+value}.
    """
    PATTERN = r'\$\{([^}:]+)(?::(-|\+)([^}]*))?\}'

    @staticmethod
    def resolve(var_name: str,
                modifier: Optional[str],
                alt_value: Optional[str],
                context: Dict[str, str]) -> str:
        """
        Resolves a single ${...} reference.

        :param var_name: The variable name.
        :param modifier: None, '-' or '+'.
        :param alt_value: The default (for '-') or the value if set (for '+').
        :param context: The variables context.
        :raises KeyError: If a variable is not found and no default is provided.
        """
        value = context.get(var_name)

        if modifier == '-':
            # ${VAR:-default} -> use default if VAR is unset or empty
            return value if value else alt_value
        elif modifier == '+':
            # ${VAR:+value} -> use alt_value if VAR is set and not empty, else empty
            return alt_value if value else ''
        if value is None:
            raise KeyError(f"Variable {var_name} not found in context")
        return value

    @staticmethod
    def interpolate(template: str, context: Dict[str, str]) -> str:
        """
        Interpolates variables in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: The variables context.
        :return: The interpolated string.
        :raises KeyError: If a variable is not found and no default is provided.
        """
        def replace(match):
            return EnvironmentInterpolator.resolve(
                match.group(1), match.group(2), match.group(3), context
            )

        return re.sub(EnvironmentInterpolator.PATTERN, replace, template)


class HookCommandTemplate:
    """
    A hook command line with placeholders.

    The template is split into arguments with POSIX shell rules first, then
    each argument is substituted on its own, so substituted values never
    become extra arguments:

        %1, %2, ...   hook parameters, numbered from 1
        %*            all hook parameters (separate arguments if alone)
        %%            a literal percent sign
        ${VAR}        service variables, with :- and :+ forms
    """
    TOKEN_PATTERN = re.compile(r'%%|%\*|%(\d+)|' + EnvironmentInterpolator.PATTERN)

    def __init__(self, template: str):
        self.template = template
        try:
            self.tokens = shlex.split(template)
        except ValueError as e:
            raise HookTemplateError(f"Cannot parse hook command {template!r}: {e}") from e

    def render(self, params: Sequence[str], context: Dict[str, str]) -> List[str]:
        """
        Substitutes parameters and variables into the command.

        :param params: Positional hook parameters.
        :param context: Service variables.
        :return: The argv to execute.
        :raises HookTemplateError: on a missing parameter or unset variable.
        """
        argv = []
        for token in self.tokens:
            if token == '%*':
                argv.extend(str(p) for p in params)
            else:
                argv.append(self._substitute(token, params, context))
        return argv

    def _substitute(self, token: str, params: Sequence[str], context: Dict[str, str]) -> str:
        def replace(match):
            text = match.group(0)
            if text == '%%':
                return '%'
            if text == '%*':
                return ' '.join(str(p) for p in params)
            if match.group(1) is not None:
                index = int(match.group(1))
                if index < 1 or index > len(params):
                    raise HookTemplateError(
                        f"Hook command {self.template!r} uses %{index} but "
                        f"{len(params)} parameter(s) were given"
                    )
                return str(params[index - 1])
            try:
                return EnvironmentInterpolator.resolve(
                    match.group(2), match.group(3), match.group(4), context
                )
            except KeyError as e:
                raise HookTemplateError(f"Hook command {self.template!r}: {e.args[0]}") from e

        return self.TOKEN_PATTERN.sub(replace, token)
