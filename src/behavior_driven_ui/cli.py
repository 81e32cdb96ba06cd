import logging
from typing import Optional

import click

from . import __version__
from .bdd.runner import execute_run
from .core.exceptions import BehaviorDrivenUIError, ConfigError
from .core.scaffold import execute_init


def _exit_code(ctx, success: bool) -> int:
    """Keep a non-zero code the caller already set in ctx.obj; otherwise 0 on success, 1 on failure"""
    current = (ctx.obj or {}).get("exit_code")
    if isinstance(current, int) and current != 0:
        return current
    return 0 if success else 1


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, verbose):
    """behavior-driven-ui - Gherkin scenarios against a real browser"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose


@cli.command()
def version():
    """Show version information"""
    click.echo(f"behavior-driven-ui v{__version__}")


@cli.command()
@click.option('--config', '-c', 'config_path', type=click.Path(), help='Configuration file path')
@click.option('--format', '-f', 'formats', multiple=True, help='behave formatter (repeatable)')
@click.pass_context
def run(ctx, config_path: Optional[str], formats):
    """Run the configured feature files"""
    try:
        result = execute_run(config_path=config_path, formats=list(formats) or None)
    except ConfigError as e:
        click.echo(f"❌ {e}", err=True)
        ctx.exit(_exit_code(ctx, False))
    except BehaviorDrivenUIError as e:
        click.echo(f"❌ Run aborted: {e}", err=True)
        ctx.exit(_exit_code(ctx, False))

    if result.run is not None and result.run.scenarios:
        passed = result.run.scenarios - result.run.failed_scenarios
        click.echo(f"{'✅' if result.success else '❌'} {passed}/{result.run.scenarios} scenarios passed")
    ctx.exit(_exit_code(ctx, result.success))


@cli.command()
@click.option('--config', '-c', 'config_path', type=click.Path(), help='Configuration file to create')
def init(config_path: Optional[str]):
    """Scaffold a configuration file and feature/step directories"""
    result = execute_init(config_path=config_path)

    click.echo(f"📁 Project root: {result.project_root}")
    for path in result.created_directories:
        click.echo(f"   created  {path}/")
    for path in result.created_files:
        click.echo(f"   created  {path}")
    for path in result.skipped_directories + result.skipped_files:
        click.echo(f"   skipped  {path} (already exists)")


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == '__main__':
    main()
