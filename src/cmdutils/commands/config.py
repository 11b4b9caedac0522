# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Config command for cmdutils.

Provides configuration validation and executable checking.
"""

import logging

import typer

from cmdutils.config_manager import full_validation

app = typer.Typer(help="Manage and validate configuration")
logger = logging.getLogger(__name__)


@app.command()
def validate(ctx: typer.Context):
    """
    Validate configuration structure and executable availability.

    Performs full validation:
    - YAML structure, option names and values
    - Executable availability (checks if task executables exist on PATH)
    """
    state = ctx.obj or {}
    if state.get("config_error"):
        typer.echo(f"Error: {state['config_error']}", err=True)
        raise typer.Exit(1)

    typer.echo("Validating configuration...")
    typer.echo()

    structure_issues, executable_results = full_validation(state.get("config", {}))

    if structure_issues:
        typer.echo("Structure Issues:")
        for issue in structure_issues:
            typer.echo(f"  ⚠️  {issue}")
        typer.echo()
    else:
        typer.echo("✓ Configuration structure is valid")
        typer.echo()

    if executable_results:
        typer.echo("Executable Availability:")
        all_installed = True
        for _, installed, message in executable_results:
            typer.echo(f"  {message}")
            if not installed:
                all_installed = False
        typer.echo()

        if not all_installed:
            typer.echo("Some executables were not found on PATH.")

    if structure_issues:
        logger.debug(f"Validation found {len(structure_issues)} structure issue(s)")
        raise typer.Exit(1)
