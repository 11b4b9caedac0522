"""
Task commands for cmdutils.

Runs and lists the named command templates defined under `tasks:` in the
config file.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cmdutils.commands.run import preprocess, run_and_report
from cmdutils.config import get_tasks

console = Console()


def _get_tasks(ctx: typer.Context) -> Dict[str, Dict[str, Any]]:
    """Get tasks from the loaded config, exiting if there is no config file."""
    state = ctx.obj or {}
    if state.get("config_error"):
        typer.echo(f"Error: {state['config_error']}", err=True)
        raise typer.Exit(1)
    return get_tasks(state.get("config", {}))


def task_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Task name (from the config file)"),
    args: Optional[List[str]] = typer.Argument(
        None,
        help="Arguments for substitution, plus any --gkcu-<option>[=<value>]",
    ),
):
    """Run a task defined in the config file.

    Examples:
        cmdutils task release
        cmdutils task release minor --gkcu-dryrun
    """
    tasks = _get_tasks(ctx)
    if name not in tasks:
        typer.echo(f"Error: Task not found: {name}. Available: {sorted(tasks)}", err=True)
        raise typer.Exit(1)

    runtime_args, config = preprocess(ctx, args)
    run_and_report(tasks[name]["command"], runtime_args, config)


def list_command(ctx: typer.Context):
    """List the tasks defined in the config file."""
    tasks = _get_tasks(ctx)

    if not tasks:
        typer.echo("No tasks found.")
        typer.echo("Add tasks under 'tasks:' in your config file.")
        return

    table = Table(show_header=True, header_style="bold", show_lines=False)
    table.add_column("task", no_wrap=True)
    table.add_column("command")
    table.add_column("description")

    for name, task in sorted(tasks.items()):
        table.add_row(escape(name), escape(task["command"]), escape(task.get("description") or "-"))

    console.print(table)
