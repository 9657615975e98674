"""
Unit tests for ServiceLoader.
"""
import pytest

from drunner.MANAGERS.service_loader import ServiceLoader, load_service
from drunner.MANAGERS.variable_store import VariableStore
from drunner.MODELS.service_paths import ServicePaths
from drunner.MODELS.settings import Settings
from drunner.UTILS.errors import ImageNameMismatchError, ScriptError, ServiceValidationError


def install_service(root, name, script):
    paths = ServicePaths(root, name)
    paths.service_dir.mkdir(parents=True, exist_ok=True)
    paths.service_lua.write_text(script)
    return paths


def setup_script(*calls):
    body = "\n".join(f"   {c}" for c in calls)
    return f"function drunner_setup()\n{body}\nend\n"


WEB = setup_script('addcontainer("web")', 'addvolume("data", true, true)', 'addconfig("PORT","8080")')


def test_load_scenario(tmp_path):
    paths = install_service(tmp_path, "demo", WEB)
    definition, variables = load_service(paths)

    assert definition.containers == ("web",)
    assert [(v.name, v.external, v.backup) for v in definition.volumes] == [("data", True, True)]
    assert variables["PORT"] == "8080"
    assert variables["IMAGENAME"] == "web"
    assert variables["SERVICENAME"] == "demo"
    assert variables["SERVICEDIR"] == str(paths.service_dir)
    assert definition.image_name == variables["IMAGENAME"]


def test_image_name_is_first_container(tmp_path):
    paths = install_service(tmp_path, "demo", setup_script('addcontainer("app")', 'addcontainer("db")'))
    definition, variables = load_service(paths)
    assert definition.image_name == "app"
    assert variables["IMAGENAME"] == "app"


def test_no_containers_fails(tmp_path):
    paths = install_service(tmp_path, "demo", setup_script('addconfig("PORT","8080")'))
    variables = VariableStore(paths.variables_file)
    with pytest.raises(ServiceValidationError, match="no containers"):
        ServiceLoader(paths, variables).load()
    assert len(variables) == 0


def test_missing_script_fails(tmp_path):
    paths = ServicePaths(tmp_path, "ghost")
    with pytest.raises(ScriptError):
        load_service(paths)


def test_persisted_values_override_defaults(tmp_path):
    paths = install_service(tmp_path, "demo", WEB)
    paths.variables_file.write_text("PORT=9090\nEXTRA=1\n")
    _, variables = load_service(paths)
    assert variables["PORT"] == "9090"
    assert variables["EXTRA"] == "1"


def test_load_performs_no_writes(tmp_path):
    paths = install_service(tmp_path, "demo", WEB)
    load_service(paths)
    assert not paths.variables_file.exists()


def test_defaults_do_not_override_earlier_values(tmp_path):
    paths = install_service(tmp_path, "demo", WEB)
    variables = VariableStore(paths.variables_file)
    variables.set_variable("PORT", "7000")
    ServiceLoader(paths, variables).load()
    assert variables["PORT"] == "7000"


def test_reload_with_changed_image_fails(tmp_path):
    paths = install_service(tmp_path, "demo", WEB)
    variables = VariableStore(paths.variables_file)
    ServiceLoader(paths, variables).load()
    assert variables["IMAGENAME"] == "web"

    paths.service_lua.write_text(setup_script('addcontainer("web2")', 'addcontainer("web")'))
    with pytest.raises(ImageNameMismatchError) as exc_info:
        ServiceLoader(paths, variables).load()
    assert exc_info.value.recorded == "web"
    assert exc_info.value.derived == "web2"
    assert variables["IMAGENAME"] == "web"


def test_changed_image_detected_from_persisted_value(tmp_path):
    paths = install_service(tmp_path, "demo", setup_script('addcontainer("web2")', 'addconfig("NEW","1")'))
    paths.variables_file.write_text("IMAGENAME=web\nPORT=8080\n")
    variables = VariableStore(paths.variables_file)
    with pytest.raises(ImageNameMismatchError):
        ServiceLoader(paths, variables).load()
    # the failed load leaves nothing behind
    assert variables.as_dict() == {}


def test_reload_with_same_image(tmp_path):
    paths = install_service(tmp_path, "demo", WEB)
    variables = VariableStore(paths.variables_file)
    first = ServiceLoader(paths, variables).load()
    second = ServiceLoader(paths, variables).load()
    assert first == second


def test_image_name_comparison_ignores_case(tmp_path):
    paths = install_service(tmp_path, "demo", WEB)
    paths.variables_file.write_text("IMAGENAME=WEB\n")
    _, variables = load_service(paths)
    assert variables["IMAGENAME"] == "web"


def test_script_error_restores_variables(tmp_path):
    paths = install_service(tmp_path, "demo", setup_script('addcontainer("web")', 'error("broken")'))
    variables = VariableStore(paths.variables_file)
    variables.set_variable("KEEP", "me")
    with pytest.raises(ScriptError, match="broken"):
        ServiceLoader(paths, variables).load()
    assert variables.as_dict() == {"KEEP": "me"}


def test_concurrent_loads_of_different_services(tmp_path):
    from concurrent.futures import ThreadPoolExecutor

    names = [f"svc{i}" for i in range(8)]
    all_paths = [
        install_service(tmp_path, n, setup_script(f'addcontainer("{n}-image")', f'addconfig("ID","{n}")'))
        for n in names
    ]
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(load_service, all_paths))

    for name, (definition, variables) in zip(names, results):
        assert definition.containers == (f"{name}-image",)
        assert variables["ID"] == name


def test_settings_memory_limit_passed_through(tmp_path):
    paths = install_service(tmp_path, "demo", WEB)
    definition, _ = load_service(paths, Settings(root=tmp_path, script_max_memory=64 * 1024 * 1024))
    assert definition.image_name == "web"


def test_builtins_follow_current_location(tmp_path):
    """A variables file copied from elsewhere doesn't override SERVICEDIR or SERVICENAME."""
    paths = install_service(tmp_path, "demo", WEB)
    paths.variables_file.write_text('SERVICENAME="old"\nSERVICEDIR="/old/place"\nPORT="9090"\n')
    _, variables = load_service(paths)
    assert variables["SERVICENAME"] == "demo"
    assert variables["SERVICEDIR"] == str(paths.service_dir)
    assert variables["PORT"] == "9090"


def test_metatable_on_globals_is_not_fatal(tmp_path):
    script = WEB + 'setmetatable(_G, { __index = function(t, k) error("undefined global " .. k) end })\n'
    paths = install_service(tmp_path, "demo", script)
    definition, variables = load_service(paths)
    assert definition.containers == ("web",)
    assert definition.hooks == ()
    assert variables["IMAGENAME"] == "web"
