# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Config manager for cmdutils.

Provides semantic validation of the config file: structure plus availability
of the executables that tasks call.
"""

import shutil
from typing import Any, Dict, List, Set, Tuple

from cmdutils.config import get_tasks
from cmdutils.pipeline import parse_raw_cmd
from cmdutils.validation import validate_config

# Tokens after which a new command starts
COMMAND_SEPARATORS = {"&&", "||", "("}

SHELL_PREFIXES = {"sudo", "env", "time", "nice", "nohup"}


def extract_executables(command: str) -> List[str]:
    """
    Extract executable names from a command template.

    Every pipeline stage and every command chained with `&&`/`||` counts.
    Tokens that still hold placeholders are skipped, as are shell prefixes
    (sudo, env, ...) and environment variable assignments (VAR=value).

    Example:
        >>> extract_executables("git fetch && env A=1 make ${1:all} | tee log")
        ['git', 'make', 'tee']
    """
    executables: List[str] = []

    for stage in parse_raw_cmd(command):
        tokens = [stage.executable, *stage.args]
        expect_command = True
        for token in tokens:
            if token in COMMAND_SEPARATORS:
                expect_command = True
                continue
            if not expect_command:
                continue
            if token in SHELL_PREFIXES or "=" in token:
                continue

            expect_command = False
            name = token.strip('"').split("/")[-1]
            if name and "$" not in token and name not in executables:
                executables.append(name)

    return executables


def extract_executables_from_config(config: Dict[str, Any]) -> Set[str]:
    """
    Extract all executables used across all tasks in config.

    Args:
        config: cmdutils configuration dictionary

    Returns:
        Set of unique executable names referenced in task commands
    """
    executables = set()
    for task in get_tasks(config).values():
        if isinstance(task["command"], str):
            executables.update(extract_executables(task["command"]))
    return executables


def validate_executables(config: Dict[str, Any]) -> List[Tuple[str, bool, str]]:
    """
    Check that all executables referenced in config are on PATH.

    Args:
        config: cmdutils configuration dictionary

    Returns:
        List of tuples: (executable, is_installed, message)
    """
    results = []

    for executable in sorted(extract_executables_from_config(config)):
        installed = shutil.which(executable) is not None
        message = "✓ Found on PATH" if installed else "✗ Not found on PATH"
        results.append((executable, installed, f"{executable}: {message}"))

    return results


def full_validation(config: Dict[str, Any]) -> Tuple[List[str], List[Tuple[str, bool, str]]]:
    """
    Perform full validation: structure + executable availability.

    Args:
        config: cmdutils configuration dictionary

    Returns:
        Tuple of (structure_issues, executable_results)
    """
    structure_issues = validate_config(config)
    executable_results = validate_executables(config)

    return structure_issues, executable_results
