#!/usr/bin/env python3
"""
Command-line interface for flowcast.
"""

import json
import sys

import click
from rich.console import Console

from .config import Config
from .models import FlowcastError, NotFound
from .monte_carlo import BacklogForecastInput, SprintSimulationInput
from .providers import FileGraphProvider, FileHistoryProvider
from .sampling import make_rng
from .service import PlanningService
from .utils import logger

console = Console(stderr=True)


def emit(payload) -> None:
    """Write a result as JSON on stdout."""
    click.echo(json.dumps(payload, indent=2, default=str))


def build_service(ctx, graph_path=None, history_path=None) -> PlanningService:
    config = ctx.obj['config']
    graph_provider = None
    history_provider = None
    if graph_path:
        graph_provider = FileGraphProvider(graph_path, config.graph.terminal_labels)
    if history_path:
        history_provider = FileHistoryProvider(history_path)
    return PlanningService(graph_provider, history_provider, config,
                           rng=make_rng(config.simulation.seed))


def apply_simulation_options(ctx, trials, wip_limit, sprint_days, seed) -> None:
    """Fold forecast options into the loaded configuration; unset options are skipped."""
    try:
        ctx.obj['config'].merge_cli_options({
            'simulation.trials': trials,
            'simulation.wip_limit': wip_limit,
            'simulation.sprint_days': sprint_days,
            'simulation.seed': seed,
        })
    except ValueError as e:
        console.print(f"[red]Invalid option:[/red] {e}")
        sys.exit(2)


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Config file path')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Quiet output')
@click.pass_context
def cli(ctx, config, verbose, quiet):
    """flowcast - dependency analysis and Monte Carlo forecasts for a backlog."""
    ctx.ensure_object(dict)
    ctx.obj['config'] = Config(config)
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet

    if verbose:
        logger.setLevel('DEBUG')
    elif quiet:
        logger.setLevel('ERROR')


@cli.group()
def graph():
    """Analyze blocking relationships between issues."""
    pass


@graph.command('analyze')
@click.argument('snapshot', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def graph_analyze(ctx, snapshot):
    """Cycles, critical path, bottlenecks and metrics for SNAPSHOT."""
    try:
        result = build_service(ctx, graph_path=snapshot).analyze_dependency_graph()
    except FlowcastError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    emit(result.to_dict())


@graph.command('issue')
@click.argument('snapshot', type=click.Path(exists=True, dir_okay=False))
@click.argument('node_id', type=int)
@click.pass_context
def graph_issue(ctx, snapshot, node_id):
    """Upstream and downstream dependencies of one issue."""
    try:
        view = build_service(ctx, graph_path=snapshot).get_issue_dependencies(node_id)
    except FlowcastError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if isinstance(view, NotFound):
        console.print(f"[yellow]{view.message}[/yellow]")
        sys.exit(1)

    emit(view.to_dict())


@cli.group()
def forecast():
    """Monte Carlo forecasts from completion history."""
    pass


@forecast.command('sprint')
@click.argument('history', type=click.Path(exists=True, dir_okay=False))
@click.option('--items', '-n', type=int, help='Target item count to evaluate')
@click.option('--sprint-days', '-d', type=float, help='Sprint length in days')
@click.option('--trials', '-t', type=int, help='Number of simulation trials')
@click.option('--area', '-a', help='Only use cycle times from this area')
@click.option('--wip', '-w', 'wip_limit', type=int, help='Maximum items in progress')
@click.option('--seed', type=int, help='Random seed for reproducible output')
@click.pass_context
def forecast_sprint(ctx, history, items, sprint_days, trials, area, wip_limit, seed):
    """How many items will one sprint likely finish?"""
    apply_simulation_options(ctx, trials, wip_limit, sprint_days, seed)
    sim_input = SprintSimulationInput(item_count=items, area=area)
    try:
        result = build_service(ctx, history_path=history).simulate_sprint(sim_input)
    except FlowcastError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    emit(result.to_dict())


@forecast.command('backlog')
@click.argument('history', type=click.Path(exists=True, dir_okay=False))
@click.option('--items', '-n', type=int, required=True, help='Items left in the backlog')
@click.option('--sprint-days', '-d', type=float, help='Sprint length for the breakdown')
@click.option('--trials', '-t', type=int, help='Number of simulation trials')
@click.option('--area', '-a', help='Only use cycle times from this area')
@click.option('--wip', '-w', 'wip_limit', type=int, help='Maximum items in progress')
@click.option('--seed', type=int, help='Random seed for reproducible output')
@click.pass_context
def forecast_backlog(ctx, history, items, sprint_days, trials, area, wip_limit, seed):
    """When will the backlog be finished?"""
    apply_simulation_options(ctx, trials, wip_limit, sprint_days, seed)
    forecast_input = BacklogForecastInput(item_count=items, area=area)
    try:
        result = build_service(ctx, history_path=history).forecast_backlog(forecast_input)
    except FlowcastError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    emit(result.to_dict())


@cli.command('init')
@click.option('--path', '-p', default='.flowcast.yaml', help='Where to write the config')
@click.option('--force', '-f', is_flag=True, help='Overwrite an existing config file')
def init(path, force):
    """Write a default configuration file."""
    from pathlib import Path

    if Path(path).exists() and not force:
        console.print("[yellow]Configuration file already exists. Use --force to overwrite.[/yellow]")
        return

    Config.create_default(path)
    console.print(f"[green]Created {path}[/green]")


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == '__main__':
    main()
