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
Service-declared hooks run around lifecycle actions.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Union

from ..MANAGERS.variable_store import VariableStore
from ..MODELS.hook_result import HookResult, HookStage, HookStatus
from ..MODELS.params import HookOutput, RunParams
from ..MODELS.service_definition import ServiceDefinition
from ..UTILS.errors import HookTemplateError
from ..UTILS.string_interpolation import HookCommandTemplate
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)


class HookSpec:
    """
    The hooks to run around one invocation of a lifecycle action.
    """
    def __init__(self,
                 action_name: str,
                 hook_params: Sequence[str],
                 start_cmd: str = "",
                 end_cmd: str = ""):
        """
        :param action_name: The action being wrapped, e.g. start, stop, backup.
        :param hook_params: Parameters substituted into %1, %2, ... Borrowed, not copied.
        :param start_cmd: Command template run before the action, empty for none.
        :param end_cmd: Command template run after the action, empty for none.
        """
        self.action_name = action_name
        self.hook_params = hook_params
        self.start_cmd = start_cmd
        self.end_cmd = end_cmd

    @classmethod
    def for_action(cls,
                   definition: ServiceDefinition,
                   action_name: str,
                   hook_params: Sequence[str]) -> "HookSpec":
        hooks = definition.hook_for(action_name)
        return cls(action_name, hook_params, start_cmd=hooks.start, end_cmd=hooks.end)


class HookRunner:
    """
    Runs the start and end hooks of a HookSpec, each at most once.

    Hook failures are returned as HookResult values and never raised, so the
    caller decides whether a failed hook aborts its action.
    """
    def __init__(self,
                 spec: HookSpec,
                 variables: VariableStore,
                 params: Optional[RunParams] = None,
                 working_dir: Optional[Union[str, Path]] = None):
        """
        :param spec: Which action and commands to run.
        :param variables: Service variables, used for ${VAR} and the process environment.
        :param params: Output mode and timeout, defaults if None.
        :param working_dir: Directory hooks run in, normally the service directory.
        """
        self.spec = spec
        self.variables = variables
        self.params = params or RunParams()
        self.working_dir = working_dir
        self.results: Dict[HookStage, HookResult] = {}

    def start_hook(self) -> HookResult:
        return self._run_once(HookStage.START, self.spec.start_cmd)

    def end_hook(self) -> HookResult:
        return self._run_once(HookStage.END, self.spec.end_cmd)

    def _run_once(self, stage: HookStage, template: str) -> HookResult:
        if stage in self.results:
            logger.warning("%s %s hook already ran, not running it again.",
                           self.spec.action_name, stage.value)
            return self.results[stage]
        result = self._run(stage, template)
        self.results[stage] = result
        if not result.ok:
            logger.warning("%s", result.describe())
        return result

    def _run(self, stage: HookStage, template: str) -> HookResult:
        action = self.spec.action_name
        if not template:
            return HookResult(action=action, stage=stage, status=HookStatus.NOOP)

        context = self.variables.as_dict()
        try:
            command = HookCommandTemplate(template).render(self.spec.hook_params, context)
        except HookTemplateError as e:
            return HookResult(action=action, stage=stage, status=HookStatus.FAILED, message=str(e))

        logger.info("Running %s %s hook: %s", action, stage.value, ' '.join(command))
        runner = ProcessRunner(f"{action}:{stage.value}", timeout=self.params.hook_timeout)
        outcome = runner.run(
            command,
            env={**os.environ, **context},
            working_dir=self.working_dir,
            capture=self.params.hook_output != HookOutput.RAW,
        )

        if self.params.hook_output == HookOutput.LOGGED:
            for line in outcome.stdout.splitlines():
                logger.log(self.params.log_level, "[%s %s] %s", action, stage.value, line)
            for line in outcome.stderr.splitlines():
                logger.warning("[%s %s] %s", action, stage.value, line)

        if outcome.error is not None:
            message = outcome.error
        elif outcome.exit_code != 0:
            message = outcome.stderr.strip().splitlines()[-1] if outcome.stderr.strip() else ""
        else:
            message = ""

        return HookResult(
            action=action,
            stage=stage,
            status=HookStatus.SUCCESS if outcome.succeeded else HookStatus.FAILED,
            command=command,
            exit_code=outcome.exit_code,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            message=message,
        )


@dataclass
class ActionOutcome:
    """Hook results and return value of a hook-wrapped action."""
    start: HookResult
    end: Optional[HookResult] = None
    action_ran: bool = False
    value: Any = None


def run_with_hooks(runner: HookRunner,
                   action: Callable[[], Any],
                   run_end_on_failure: bool = True) -> ActionOutcome:
    """
    Runs the start hook, then the action, then the end hook.

    The action is skipped if the start hook fails. If the action raises, the
    end hook still runs when run_end_on_failure is set, and the exception is
    re-raised afterwards.

    :param runner: Hook runner for the action.
    :param action: The lifecycle action itself.
    :param run_end_on_failure: Run the end hook even if the action raised.
    :return: Both hook results and the action's return value.
    """
    start = runner.start_hook()
    if not start.ok:
        logger.warning("Skipping %s: start hook failed.", runner.spec.action_name)
        return ActionOutcome(start=start)

    try:
        value = action()
    except Exception:
        if run_end_on_failure:
            runner.end_hook()
        raise

    return ActionOutcome(start=start, end=runner.end_hook(), action_ran=True, value=value)
