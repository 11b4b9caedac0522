"""
Main CLI entry point for cmdutils.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
from dataclasses import replace
from typing import Optional

import typer
import yaml

from cmdutils import __version__
from cmdutils.commands import config, run, tasks
from cmdutils.config import RunConfig, get_defaults, load_config

# Initialize main app
app = typer.Typer(
    name="cmdutils",
    help="Run shell commands with argument substitution ($*, $n, $n*, ${n:fallback})",
    no_args_is_help=True,
)

# Unknown options (e.g. --gkcu-debug or the command's own flags) are passed through
PASSTHROUGH_SETTINGS = {"ignore_unknown_options": True}

app.command("run", context_settings=PASSTHROUGH_SETTINGS)(run.run_command)
app.command("expand", context_settings=PASSTHROUGH_SETTINGS)(run.expand_command)
app.command("task", context_settings=PASSTHROUGH_SETTINGS)(tasks.task_command)
app.command("tasks")(tasks.list_command)
app.add_typer(config.app, name="config")


def setup_logging(verbose: bool = False):
    """Configure logging for the CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ~/cmdutils.yml or ./cmdutils.yml)",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Print commands instead of running them (same as --gkcu-dryrun)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
):
    """
    cmdutils: run and expand commands with argument placeholders.

    Options for a single invocation are passed as `--gkcu-<name>[=<value>]`
    arguments, e.g. `--gkcu-debug` or `--gkcu-returnOutput=2`.
    """
    state = {"config": {}, "defaults": RunConfig(), "verbose": verbose, "config_error": None}

    setup_logging(verbose)

    if ctx.invoked_subcommand and ctx.invoked_subcommand != "version":
        try:
            config_data = load_config(config_path)
            state["config"] = config_data
            state["defaults"] = get_defaults(config_data)

            if verbose:
                logging.debug(f"Loaded config from: {config_path or 'default location'}")

        except FileNotFoundError as e:
            # Only commands that read tasks need a config file
            if config_path:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(1)
            state["config_error"] = str(e)
            if verbose:
                logging.debug(f"No config file found, using defaults for '{ctx.invoked_subcommand}'")
        except (yaml.YAMLError, ValueError) as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

    if dry_run:
        state["defaults"] = replace(state["defaults"], dryrun=True)

    ctx.obj = state


@app.command()
def version():
    """Show version information."""
    typer.echo(f"cmdutils version {__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
