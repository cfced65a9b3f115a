import json
import logging
from pathlib import Path

import click

from .core import ConfigManager, ScenarioRunnerError
from .executor import Executor, ExecutorConfig, RegistryBuilder
from . import __version__


@click.group()
@click.option('--config', '-c', type=click.Path(), help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config, verbose):
    """Scenario Runner - Gherkin scenario execution engine"""
    # Load configuration
    config_path = Path(config) if config else None
    manager = ConfigManager(config_path)

    # Setup logging
    level = logging.DEBUG if verbose else getattr(logging, str(manager.get('general.log_level', 'INFO')).upper(),
                                                  logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    ctx.obj = manager


@cli.command()
def version():
    """Show version information"""
    click.echo(f"Scenario Runner v{__version__}")


@cli.command()
@click.argument('paths', nargs=-1, type=click.Path())
@click.option('--steps', '-s', multiple=True, help='Step module (dotted name or .py file); repeatable')
@click.option('--tags', '-t', help='Only run scenarios with one of these tags (comma separated)')
@click.option('--exclude-tags', '-e', help='Skip scenarios with any of these tags (comma separated)')
@click.option('--name', '-n', 'scenario', help='Only run scenarios whose name contains this text')
@click.option('--parallel', '-p', type=int, help='Number of parallel workers')
@click.option('--retry', '-r', type=int, help='Retries for a failed scenario')
@click.option('--fail-fast', is_flag=True, help='Stop starting scenarios after the first failure')
@click.option('--dry-run', is_flag=True, help='Show what would run without executing steps')
@click.option('--timeout', type=int, help='Step timeout in milliseconds')
@click.option('--json-output', '-o', type=click.Path(), help='Write the run result as JSON')
@click.pass_obj
def run(manager, paths, steps, tags, exclude_tags, scenario, parallel, retry, fail_fast, dry_run, timeout,
        json_output):
    """Run feature files"""
    try:
        config = ExecutorConfig.from_config(
            manager,
            features=list(paths) or None,
            steps=list(steps) or None,
            tags=tags,
            exclude_tags=exclude_tags,
            scenario=scenario,
            parallel_workers=parallel,
            retry=retry,
            fail_fast=fail_fast or None,
            dry_run=dry_run or None,
            step_timeout=timeout,
        )
        executor = Executor(config, config_manager=manager)
        result = executor.execute()
    except ScenarioRunnerError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    if config.dry_run:
        _print_plan(result.plan)
    else:
        _print_results(result)

    if json_output:
        Path(json_output).write_text(json.dumps(result.to_dict(), indent=2))
        click.echo(f"Results written to: {json_output}")

    if result.has_failures():
        raise SystemExit(1)


def _print_plan(plan):
    click.echo("Dry run - execution order:")
    for index, entry in enumerate(plan, 1):
        click.echo(f"\n{index}. {entry['feature']} :: {entry['scenario']}")
        if entry['tags']:
            click.echo(f"   Tags: {' '.join('@' + t.lstrip('@') for t in entry['tags'])}")
        for item in entry['steps']:
            marker = ' ' if item['matched'] else '?'
            click.echo(f"   {marker} {item['keyword']} {item['text']}")

    undefined = sum(1 for entry in plan for item in entry['steps'] if not item['matched'])
    click.echo(f"\nTotal scenarios: {len(plan)}")
    if undefined:
        click.echo(f"Undefined steps: {undefined}")


def _print_results(result):
    for record in result.results:
        click.echo(f"[{record.status.value.upper():7}] {record.feature} :: {record.name}")
        if record.error is not None:
            click.echo(f"          {record.error}")

    counts = result.counts
    click.echo(
        f"\nSummary: {counts['total']} scenario(s), {counts['passed']} passed, "
        f"{counts['failed']} failed, {counts['skipped']} skipped"
    )


@cli.command()
@click.option('--steps', '-s', multiple=True, help='Step module (dotted name or .py file); repeatable')
@click.pass_obj
def steps(manager, steps):
    """List registered step definitions"""
    modules = list(steps) or manager.get('executor.steps') or []
    builder = RegistryBuilder()
    try:
        builder.load_modules(modules)
    except ScenarioRunnerError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    definitions = builder.steps.list_definitions()
    if not definitions:
        click.echo("No step definitions registered")
        return

    for definition in definitions:
        click.echo(f"{definition['keyword'].capitalize():6} {definition['pattern']}  ({definition['function']})")
        if definition['description']:
            click.echo(f"       {definition['description']}")

    click.echo(f"\nTotal: {len(definitions)} step definition(s)")


def main():
    """Main entry point"""
    cli()


if __name__ == "__main__":
    main()
