"""
Helpers for testing commands and cli scripts.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import re
import sys
from dataclasses import replace
from typing import Callable, Optional

from cmdutils.config import RunConfig
from cmdutils.pipeline import join_for_shell
from cmdutils.runner import CommandRunner

CLEAN_UP_CHARACTERS_RE = re.compile(r"\x1b\[(?:0m|\?25h)", re.IGNORECASE)
NEWLINE_RE = re.compile(r"\r\n?")


def capture_cmd(
    cmd: str,
    config: Optional[RunConfig] = None,
    runner: Optional[CommandRunner] = None,
) -> str:
    """
    Run a command with CommandRunner.spawn() and return its output.

    Clean-up escape sequences are removed, newlines are normalized to `\\n` and
    the result is trimmed, so it can be compared with an expected output.

    Only stdout is captured; append `2>&1` to the command to capture stderr
    too. A failing command raises instead of returning its output; append
    `|| true` to get the output nonetheless.

    Example:
        >>> capture_cmd("printf 'foo\\r\\nbar\\r\\n'")
        'foo\\nbar'
        >>> capture_cmd("echo foo", RunConfig(dryrun=True))
        'echo foo'
    """
    config = replace(config or RunConfig(), return_output=True)
    result = (runner or CommandRunner()).spawn(cmd, config)
    return NEWLINE_RE.sub("\n", CLEAN_UP_CHARACTERS_RE.sub("", result)).strip()


def script_runner_factory(
    script_path: str,
    runner: Optional[CommandRunner] = None,
) -> Callable[..., str]:
    """
    Create a function that runs a Python script with capture_cmd().

    Example:
        >>> run_script = script_runner_factory("/foo/bar.py")
        >>> run_script()               # Runs: python /foo/bar.py
        >>> run_script("--baz --qux")  # Runs: python /foo/bar.py --baz --qux
    """
    base_cmd = join_for_shell([sys.executable, str(script_path)])

    def run_script(args_str: str = "", config: Optional[RunConfig] = None) -> str:
        return capture_cmd(f"{base_cmd} {args_str}", config, runner)

    return run_script
