# etch/cli/interface.py
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from click_option_group import optgroup
import structlog

from etch import __version__ as app_version
from etch.config.loader import load_project_options
from etch.config.settings import RenderOptions
from etch.core.engine import Engine
from etch.exceptions import ConfigError, EtchError
from etch.logging_setup import configure_logging

from .output import show_error, show_generated_source, write_output

log = structlog.get_logger(__name__)

def _parse_vars(raw_vars: Tuple[str, ...]) -> Dict[str, Any]:
    # KEY=VALUE pairs; values that parse as JSON keep their JSON type.
    parsed: Dict[str, Any] = {}
    for item in raw_vars:
        if "=" not in item:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--var")
        key, value = item.split("=", 1)
        try:
            parsed[key.strip()] = json.loads(value)
        except json.JSONDecodeError:
            parsed[key.strip()] = value
    return parsed

def _load_data(data_file: Optional[Path], raw_vars: Tuple[str, ...]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if data_file:
        try:
            loaded = json.loads(data_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Could not read data file {data_file}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Data file {data_file} must contain a JSON object")
        data.update(loaded)
    data.update(_parse_vars(raw_vars))
    return data

def _command_overrides(ctx: click.Context, is_async: Optional[bool], global_await: Optional[bool],
                       auto_escape: Optional[bool], views: Optional[Path]) -> Dict[str, Any]:
    # only flags given on the command line override the project config
    overrides: Dict[str, Any] = {}
    for attr, value in (("is_async", is_async), ("global_await", global_await),
                        ("auto_escape", auto_escape), ("views", views)):
        if value is not None:
            overrides[attr] = value
    if overrides.get("global_await") and "is_async" not in overrides and not ctx.obj.is_async:
        overrides["is_async"] = True
    return overrides

def _run_guarded(action):
    try:
        return action()
    except EtchError as e:
        show_error(e)
        sys.exit(1)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option("--verbose", "-v", "verbosity_level", count=True, help="Verbosity: -v info, -vv debug.")
@click.option("--json-logs", "json_logs", is_flag=True, default=False, help="Emit logs as JSON lines.")
@click.option("--profile", "profile", default=None, help="Apply a profile from the project config file.")
@click.version_option(version=app_version, package_name="etch", prog_name="etch", help="Show version and exit.")
@click.pass_context
def main_cli_group(ctx: click.Context, verbosity_level: int, json_logs: bool, profile: Optional[str]):
    """etch: render templates with embedded Python tags."""
    log_level = "warning"
    if verbosity_level == 1: log_level = "info"
    elif verbosity_level >= 2: log_level = "debug"
    configure_logging(log_level_str=log_level, json_logs=json_logs)
    ctx.obj = _run_guarded(lambda: load_project_options(profile=profile))


def _execution_options(cmd):
    cmd = optgroup.option("--views", "views", type=click.Path(exists=True, file_okay=False, path_type=Path), default=None, help="Directory that include_file() and layout() resolve against.")(cmd)
    cmd = optgroup.option("--escape/--no-escape", "auto_escape", default=None, help="Escape <%= %> output (default: on).")(cmd)
    cmd = optgroup.option("--global-await/--no-global-await", "global_await", default=None, help="Resolve awaitable interpolations concurrently (implies --async).")(cmd)
    cmd = optgroup.option("--async/--sync", "is_async", default=None, help="Compile and run the template as a coroutine.")(cmd)
    cmd = optgroup.group("Execution Options", help="How the template is compiled and run.")(cmd)
    return cmd


@main_cli_group.command("render")
@click.argument("template_file", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path))
@optgroup.group("Data Options", help="Where template data comes from.")
@optgroup.option("-d", "--data", "data_file", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path), default=None, help="JSON file with the template data object.")
@optgroup.option("--var", "raw_vars", multiple=True, metavar="KEY=VALUE", help="Extra data values; JSON values are decoded.")
@_execution_options
@click.option("-o", "--output", "output_file", type=click.Path(dir_okay=False, writable=True, path_type=Path), default=None, help="Write the output here instead of stdout.")
@click.pass_context
def render_command(ctx: click.Context, template_file: Path, data_file: Optional[Path], raw_vars: Tuple[str, ...],
                   is_async: Optional[bool], global_await: Optional[bool], auto_escape: Optional[bool],
                   views: Optional[Path], output_file: Optional[Path]):
    """Render TEMPLATE_FILE with data from --data/--var."""
    def action():
        options: RenderOptions = ctx.obj.merged(_command_overrides(ctx, is_async, global_await, auto_escape, views))
        if options.views is None:
            options = options.merged({"views": template_file.resolve().parent})
        data = _load_data(data_file, raw_vars)
        engine = Engine(options)
        log.info("cli_render_started", template=str(template_file), is_async=options.is_async,
                 global_await=options.uses_global_await, data_keys=sorted(data))
        result = engine.render(template_file.read_text(encoding="utf-8"), data)
        if options.is_async:
            result = asyncio.run(result)
        write_output(result, output_file)
    _run_guarded(action)


@main_cli_group.command("compile")
@click.argument("template_file", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path))
@_execution_options
@click.pass_context
def compile_command(ctx: click.Context, template_file: Path, is_async: Optional[bool], global_await: Optional[bool],
                    auto_escape: Optional[bool], views: Optional[Path]):
    """Print the Python render function generated for TEMPLATE_FILE."""
    def action():
        options: RenderOptions = ctx.obj.merged(_command_overrides(ctx, is_async, global_await, auto_escape, views))
        source = Engine(options).compile_to_string(template_file.read_text(encoding="utf-8"))
        show_generated_source(source)
    _run_guarded(action)
