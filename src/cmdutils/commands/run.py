"""
Run and expand commands for cmdutils.

Thin wrappers around CommandRunner: argument preprocessing, output and
error reporting.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
from typing import List, NoReturn, Optional, Tuple

import typer

from cmdutils.config import RunConfig, preprocess_args
from cmdutils.runner import CommandFailedError, CommandRunner

logger = logging.getLogger(__name__)


def preprocess(ctx: typer.Context, raw_args: Optional[List[str]]) -> Tuple[List[str], RunConfig]:
    """Split raw arguments into runtime arguments and a RunConfig (based on the config file)."""
    base = ctx.obj.get("defaults", RunConfig()) if ctx.obj else RunConfig()
    try:
        return preprocess_args(raw_args or [], base)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def on_error(err: Exception) -> NoReturn:
    """Report a failed command and exit with an appropriate code."""
    if isinstance(err, CommandFailedError):
        if err.signal is None:
            typer.secho(f"Exit code: {err.code}", fg=typer.colors.RED, err=True)
        else:
            typer.secho(f"Error: {err.signal}", fg=typer.colors.RED, err=True)
        raise typer.Exit(err.exit_code)

    logger.exception("Command execution failed")
    typer.secho(f"Error: {err}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


def run_and_report(cmd: str, runtime_args: List[str], config: RunConfig) -> None:
    """Run a command, echoing captured output (if captured but not printed)."""
    try:
        output = CommandRunner().run(cmd, runtime_args, config)
    except Exception as e:
        on_error(e)

    if output and not config.returns_output_subset:
        typer.echo(output, nl=not output.endswith("\n"))


def run_command(
    ctx: typer.Context,
    cmd: str = typer.Argument(..., help="Command to run (after substitution)"),
    args: Optional[List[str]] = typer.Argument(
        None,
        help="Arguments for substitution, plus any --gkcu-<option>[=<value>]",
    ),
):
    """Run a command with support for argument substitution.

    Could be a complex command with `|`, `&&` and `||` (but is not guaranteed
    to work if too complex).

    Examples:
        cmdutils run "echo \\$1 \\${2:bar} \\$1" foo
        cmdutils run "git checkout \\${1:main} \\$2*" foo -b qux
        cmdutils run "echo \\${1:Hello}, \\${0:::whoami}!" Howdy --gkcu-dryrun
    """
    runtime_args, config = preprocess(ctx, args)
    run_and_report(cmd, runtime_args, config)


def expand_command(
    ctx: typer.Context,
    cmd: str = typer.Argument(..., help="Command to expand"),
    args: Optional[List[str]] = typer.Argument(
        None,
        help="Arguments for substitution, plus any --gkcu-<option>[=<value>]",
    ),
):
    """Expand a command by substituting argument placeholders, and print it.

    Fallback commands (`${n:::command}`) are run to compute their values.

    Examples:
        cmdutils expand "echo \\$1 \\${2:bar} \\$1" foo
        cmdutils expand "echo \\${1:Hello}, \\${0:::whoami}!"
    """
    runtime_args, config = preprocess(ctx, args)

    try:
        expanded = CommandRunner().expand_cmd(cmd, runtime_args, config)
    except Exception as e:
        on_error(e)

    typer.echo(expanded)
