"""
Unit tests for HookRunner and run_with_hooks.
"""
import shlex
import sys

import pytest

from drunner.MANAGERS.variable_store import VariableStore
from drunner.MODELS.hook_result import HookStage, HookStatus
from drunner.MODELS.params import HookOutput, RunParams
from drunner.MODELS.service_definition import ServiceDefinitionBuilder
from drunner.RUNNERS.hook_runner import HookRunner, HookSpec, run_with_hooks

PY = shlex.quote(sys.executable)
APPEND_SCRIPT = "import sys; open(sys.argv[1], 'a').write(sys.argv[2] + ' ')"


def py_cmd(code, *args):
    return " ".join([PY, "-c", shlex.quote(code)] + list(args))


def append_cmd(word):
    """Hook command appending a word to the file given as %1."""
    return py_cmd(APPEND_SCRIPT, "%1", word)


def make_runner(start_cmd="", end_cmd="", hook_params=None, variables=None, action="backup", **kwargs):
    spec = HookSpec(action, hook_params if hook_params is not None else [], start_cmd=start_cmd, end_cmd=end_cmd)
    return HookRunner(spec, variables or VariableStore(), **kwargs)


def test_empty_start_command_spawns_nothing(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("no process should be spawned")

    monkeypatch.setattr("subprocess.run", fail)
    runner = make_runner()
    result = runner.start_hook()
    assert result.ok
    assert result.status == HookStatus.NOOP
    assert not result.ran
    assert runner.end_hook().status == HookStatus.NOOP


def test_start_hook_substitutes_params_in_order():
    runner = make_runner(start_cmd=py_cmd("import sys; print(sys.argv[1:])", "%1", "%2"),
                         hook_params=["first", "second arg"])
    result = runner.start_hook()
    assert result.status == HookStatus.SUCCESS
    assert result.exit_code == 0
    assert result.stage == HookStage.START
    assert result.stdout.strip() == "['first', 'second arg']"


def test_hook_runs_at_most_once(tmp_path):
    log = tmp_path / "log.txt"
    runner = make_runner(start_cmd=append_cmd("start"), hook_params=[str(log)])
    first = runner.start_hook()
    second = runner.start_hook()
    assert first.ok
    assert second is first
    assert log.read_text() == "start "


def test_end_hook_independent_of_start_failure(tmp_path):
    log = tmp_path / "log.txt"
    runner = make_runner(start_cmd=py_cmd("import sys; sys.exit(1)"),
                         end_cmd=append_cmd("end"), hook_params=[str(log)])
    assert not runner.start_hook().ok
    assert runner.end_hook().ok
    assert log.read_text() == "end "


def test_nonzero_exit_is_reported():
    runner = make_runner(start_cmd=py_cmd("import sys; sys.stderr.write('boom\\n'); sys.exit(3)"))
    result = runner.start_hook()
    assert result.status == HookStatus.FAILED
    assert result.exit_code == 3
    assert "boom" in result.stderr
    assert result.message == "boom"
    assert "exit code 3" in result.describe()


def test_missing_executable_is_reported():
    runner = make_runner(start_cmd="/nonexistent/drunner-hook %1", hook_params=["x"])
    result = runner.start_hook()
    assert result.status == HookStatus.FAILED
    assert result.exit_code is None
    assert "failed to start" in result.message


def test_nul_in_hook_param_is_reported():
    runner = make_runner(start_cmd=py_cmd("print(1)", "%1"), hook_params=["a\x00b"])
    result = runner.start_hook()
    assert result.status == HookStatus.FAILED
    assert result.exit_code is None
    assert "failed to start" in result.message


@pytest.mark.parametrize("name, value", [("PORT", "80\x0080"), ("BAD=NAME", "1")])
def test_unusable_variable_is_reported(name, value):
    variables = VariableStore()
    variables.set_variable(name, value)
    runner = make_runner(start_cmd=py_cmd("print(1)"), variables=variables)
    result = runner.start_hook()
    assert result.status == HookStatus.FAILED
    assert "failed to start" in result.message


def test_substitution_error_is_reported(monkeypatch):
    monkeypatch.setattr("subprocess.run", lambda *a, **k: pytest.fail("must not spawn"))
    runner = make_runner(start_cmd="echo %2", hook_params=["only-one"])
    result = runner.start_hook()
    assert result.status == HookStatus.FAILED
    assert "%2" in result.message


def test_timeout_is_reported():
    runner = make_runner(start_cmd=py_cmd("import time; time.sleep(10)"),
                         params=RunParams(hook_timeout=0.5))
    result = runner.start_hook()
    assert result.status == HookStatus.FAILED
    assert "timed out" in result.message


def test_variables_available_to_hooks():
    variables = VariableStore()
    variables.set_variable("PORT", "8080")
    variables.set_variable("IMAGENAME", "web")
    runner = make_runner(
        start_cmd=py_cmd("import os, sys; print(sys.argv[1], os.environ['PORT'])", "${IMAGENAME}"),
        variables=variables,
    )
    result = runner.start_hook()
    assert result.stdout.strip() == "web 8080"


def test_hooks_run_in_working_dir(tmp_path):
    runner = make_runner(start_cmd=py_cmd("import os; print(os.getcwd())"), working_dir=tmp_path)
    result = runner.start_hook()
    assert result.stdout.strip() == str(tmp_path.resolve())


def test_logged_output(caplog):
    runner = make_runner(start_cmd=py_cmd("print('hello from hook')"),
                         params=RunParams(hook_output=HookOutput.LOGGED))
    with caplog.at_level("INFO"):
        result = runner.start_hook()
    assert result.stdout.strip() == "hello from hook"
    assert "hello from hook" in caplog.text


def test_raw_output_not_captured():
    runner = make_runner(start_cmd=py_cmd("print('straight through')"),
                         params=RunParams(hook_output=HookOutput.RAW))
    result = runner.start_hook()
    assert result.ok
    assert result.stdout == ""


def test_spec_from_definition():
    builder = ServiceDefinitionBuilder("demo", "x")
    builder.add_container("web")
    builder.add_hook("backup", start="echo before %1", end="echo after")
    definition = builder.build()

    params = ["/backups"]
    spec = HookSpec.for_action(definition, "backup", params)
    assert spec.start_cmd == "echo before %1"
    assert spec.end_cmd == "echo after"
    assert spec.hook_params is params

    other = HookSpec.for_action(definition, "stop", params)
    assert other.start_cmd == "" and other.end_cmd == ""


class TestRunWithHooks:
    """Tests for run_with_hooks ordering and failure policy."""

    def test_order(self, tmp_path):
        log = tmp_path / "log.txt"
        runner = make_runner(start_cmd=append_cmd("start"), end_cmd=append_cmd("end"), hook_params=[str(log)])

        def action():
            with open(log, "a") as f:
                f.write("action ")
            return 42

        outcome = run_with_hooks(runner, action)
        assert log.read_text() == "start action end "
        assert outcome.action_ran
        assert outcome.value == 42
        assert outcome.start.ok and outcome.end.ok

    def test_failed_start_skips_action(self, tmp_path):
        log = tmp_path / "log.txt"
        runner = make_runner(start_cmd=py_cmd("import sys; sys.exit(2)"),
                             end_cmd=append_cmd("end"), hook_params=[str(log)])
        calls = []
        outcome = run_with_hooks(runner, lambda: calls.append("action"))
        assert calls == []
        assert not outcome.action_ran
        assert outcome.end is None
        assert not log.exists()

    def test_end_hook_runs_after_failed_action(self, tmp_path):
        log = tmp_path / "log.txt"
        runner = make_runner(end_cmd=append_cmd("end"), hook_params=[str(log)])

        def action():
            raise RuntimeError("action failed")

        with pytest.raises(RuntimeError, match="action failed"):
            run_with_hooks(runner, action)
        assert log.read_text() == "end "
        assert runner.results[HookStage.END].ok

    def test_end_hook_skipped_when_policy_says_so(self, tmp_path):
        log = tmp_path / "log.txt"
        runner = make_runner(end_cmd=append_cmd("end"), hook_params=[str(log)])

        def action():
            raise RuntimeError("action failed")

        with pytest.raises(RuntimeError):
            run_with_hooks(runner, action, run_end_on_failure=False)
        assert not log.exists()
        assert HookStage.END not in runner.results
