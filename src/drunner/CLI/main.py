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
Command Line Interface for drunner.
"""
import logging
from pathlib import Path

import click
import yaml

from ..MANAGERS.service_loader import load_service
from ..MODELS.params import RunParams
from ..MODELS.service_paths import ServicePaths
from ..MODELS.settings import Settings
from ..RUNNERS.hook_runner import HookRunner, HookSpec
from ..UTILS.errors import DrunnerError
from ..UTILS.logging_config import setup_logging


@click.group()
@click.option('--config', '-c', 'config_file', default=None,
              help='Settings file (default: $DRUNNER_CONFIG or ~/.drunner/drunner.yml)')
@click.option('--root', '-r', default=None, help='Directory holding installed services')
@click.option('--debug', is_flag=True, help='Verbose logging')
@click.pass_context
def cli(ctx, config_file, root, debug):
    """
    drunner - manage services defined by service.lua scripts.

    Loads service definitions and runs the hooks they declare.
    """
    ctx.ensure_object(dict)
    try:
        settings = Settings.from_file(config_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise click.ClickException(f"Invalid settings: {e}")
    if root:
        settings = settings.model_copy(update={'root': Path(root).expanduser()})

    setup_logging(settings.log_level, debug=debug)
    ctx.obj['settings'] = settings
    ctx.obj['params'] = RunParams(
        log_level=logging.DEBUG if debug else logging.getLevelName(settings.log_level),
        hook_output=settings.hook_output,
        hook_timeout=settings.hook_timeout,
    )


def _load(ctx, service):
    """
    Loads a service, turning fatal load errors into a CLI error.
    """
    settings = ctx.obj['settings']
    try:
        paths = ServicePaths(settings.root, service)
    except ValueError as e:
        raise click.ClickException(str(e))
    try:
        definition, variables = load_service(paths, settings)
    except DrunnerError as e:
        raise click.ClickException(f"Failed to load service '{service}' from {paths.service_lua}: {e}")
    return paths, definition, variables


@cli.command()
@click.argument('service')
@click.pass_context
def info(ctx, service):
    """Show a service's containers, volumes, config and hooks."""
    _, definition, variables = _load(ctx, service)

    click.echo(f"Service:   {definition.name}")
    click.echo(f"Image:     {definition.image_name}")
    click.echo("Containers:")
    for name in definition.containers:
        click.echo(f"  {name}")

    click.echo("Volumes:")
    for vol in definition.volumes:
        flags = [f for f, on in (("external", vol.external), ("backup", vol.backup)) if on]
        click.echo(f"  {vol.name:20} {', '.join(flags)}")

    click.echo("Configuration:")
    for item in definition.config_items:
        click.echo(f"  {item.name:20} {variables.get(item.name, '')}  (default: {item.default})")

    if definition.hooks:
        click.echo("Hooks:")
        for action, hooks in definition.hooks:
            click.echo(f"  {action:20} start: {hooks.start or '-'}  end: {hooks.end or '-'}")


@cli.command()
@click.argument('service')
@click.argument('assignments', nargs=-1)
@click.pass_context
def config(ctx, service, assignments):
    """Show variables, or set config items with KEY=VALUE."""
    _, definition, variables = _load(ctx, service)

    if not assignments:
        for name in variables:
            click.echo(f"{name}={variables[name]}")
        return

    declared = {item.name for item in definition.config_items}
    updates = {}
    for assignment in assignments:
        if '=' not in assignment:
            raise click.BadParameter(f"expected KEY=VALUE, got {assignment!r}", param_hint='ASSIGNMENTS')
        key, value = assignment.split('=', 1)
        if key not in declared:
            raise click.ClickException(f"'{key}' is not a configuration item of service '{service}'")
        updates[key] = value

    for key, value in updates.items():
        variables.set_variable(key, value)
    variables.save_config()
    for key, value in updates.items():
        click.echo(f"Set {key}={value}")


@cli.command()
@click.argument('service')
@click.argument('action')
@click.argument('hook_params', nargs=-1)
@click.option('--stage', '-s', type=click.Choice(['start', 'end', 'both']), default='both',
              help='Which hook to run')
@click.pass_context
def hook(ctx, service, action, hook_params, stage):
    """Run a service's hooks for an action."""
    paths, definition, variables = _load(ctx, service)

    spec = HookSpec.for_action(definition, action, list(hook_params))
    runner = HookRunner(spec, variables, params=ctx.obj['params'], working_dir=paths.service_dir)

    results = []
    if stage in ('start', 'both'):
        results.append(runner.start_hook())
    if stage in ('end', 'both'):
        results.append(runner.end_hook())

    failed = False
    for result in results:
        click.echo(result.describe())
        if result.stdout:
            click.echo(result.stdout.rstrip())
        failed = failed or not result.ok

    if failed:
        ctx.exit(1)


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
