import logging
import os
import sys
from typing import Optional

import click
from rich.console import Console

from synthesizer.builtin_resources import builtin_registry
from synthesizer.compiler import TemplateCompiler
from typesys.errors import TfSynthError

from . import __version__
from .config import CONFIG_FILE, Settings, init_config_dir, load_settings
from .display import display_resource_schema, display_resource_types, display_results, format_message

logger = logging.getLogger(__name__)

FILE_HANDLER_NAME = 'tfsynth-file'
CONSOLE_HANDLER_NAME = 'tfsynth-console'


def setup_logging(log_dir: str, level: str = 'INFO'):
    """Configure logging for the CLI"""
    os.makedirs(log_dir, exist_ok=True)
    root_logger = logging.getLogger()
    installed = {handler.get_name() for handler in root_logger.handlers}

    if FILE_HANDLER_NAME not in installed:
        file_handler = logging.FileHandler(os.path.join(log_dir, 'tfsynth.log'))
        file_handler.set_name(FILE_HANDLER_NAME)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        root_logger.addHandler(file_handler)

    if CONSOLE_HANDLER_NAME not in installed:
        console_handler = logging.StreamHandler()
        console_handler.set_name(CONSOLE_HANDLER_NAME)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
        root_logger.addHandler(console_handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def version_callback(ctx, param, value):
    """Print version information"""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"tfsynth v{__version__}")
    ctx.exit()


def _fail(message: str):
    click.echo(format_message(message, "error"), err=True)
    sys.exit(1)


@click.group()
@click.option('--debug/--no-debug', default=False, help='Enable debug mode')
@click.option('--config', 'config_file', type=click.Path(exists=True, dir_okay=False), default=None,
              help=f'Path to the configuration file (default: {CONFIG_FILE})')
@click.option('--version', is_flag=True, callback=version_callback,
              expose_value=False, is_eager=True, help='Show version information')
@click.pass_context
def main(ctx, debug, config_file):
    """Terraform JSON synthesis CLI

    Validates resource templates against typed schemas and renders them
    to Terraform JSON.
    """
    try:
        config_file = config_file or init_config_dir()
        settings = load_settings(config_file)
        setup_logging(os.path.expanduser(settings.log_dir), 'DEBUG' if debug else settings.log_level)
    except (TfSynthError, OSError) as e:
        _fail(f"Error during initialization: {e}")

    if debug:
        click.echo(click.style("Debug mode enabled", fg="yellow"), err=True)

    ctx.obj = {
        'settings': settings,
        'registry': builtin_registry(),
        'console': Console(no_color=not settings.colors),
    }


def _compile(ctx, template_file: str, template: Optional[str]):
    settings: Settings = ctx.obj['settings']
    compiler = TemplateCompiler.from_settings(ctx.obj['registry'], settings)
    try:
        return compiler.compile_file(template_file, template)
    except TfSynthError as e:
        _fail(str(e))


@main.command()
@click.argument('template_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--template', default=None, help='Only render the named template')
@click.option('--output-dir', default=None, help='Directory for generated .tf.json files')
@click.option('--stdout', 'to_stdout', is_flag=True, help='Print the Terraform JSON instead of writing files')
@click.pass_context
def render(ctx, template_file, template, output_dir, to_stdout):
    """Render templates to Terraform JSON"""
    settings: Settings = ctx.obj['settings']
    results = _compile(ctx, template_file, template)

    if to_stdout:
        failed = 0
        for result in results.values():
            if result.success:
                click.echo(result.terraform_json)
                continue
            failed += 1
            for error in result.errors:
                click.echo(format_message(error, "error"), err=True)
    else:
        failed = display_results(results, ctx.obj['console'])
        output_dir = output_dir or settings.output_dir
        os.makedirs(output_dir, exist_ok=True)
        for result in results.values():
            if not result.success:
                continue
            output_path = os.path.join(output_dir, f"{result.template_name}.tf.json")
            with open(output_path, 'w') as f:
                f.write(result.terraform_json)
                f.write("\n")
            logger.info("Wrote %s", output_path)
            click.echo(format_message(f"Wrote {output_path}", "success"))

    if failed:
        sys.exit(1)


@main.command()
@click.argument('template_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--template', default=None, help='Only validate the named template')
@click.pass_context
def validate(ctx, template_file, template):
    """Validate templates without writing any output"""
    results = _compile(ctx, template_file, template)
    failed = display_results(results, ctx.obj['console'])
    if failed:
        click.echo(click.style(f"\n✗ {failed} template(s) failed validation", fg="red", bold=True))
        sys.exit(1)
    click.echo(click.style("\n✓ All templates are valid", fg="green", bold=True))


@main.command()
@click.argument('resource_type', required=False)
@click.pass_context
def types(ctx, resource_type):
    """List resource types, or show the schema of one"""
    registry = ctx.obj['registry']
    console = ctx.obj['console']
    if resource_type is None:
        display_resource_types(registry, console)
        return
    try:
        definition = registry.get(resource_type)
    except TfSynthError as e:
        _fail(str(e))
    display_resource_schema(definition, registry.type_registry, console)


if __name__ == '__main__':
    main()
