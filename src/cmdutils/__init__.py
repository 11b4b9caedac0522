"""
cmdutils - Utilities for developing cli tools.

This package provides:
- expansion: argument placeholder expansion ($*, $n, $n*, with fallbacks)
- pipeline: parsing of piped commands into stages
- runner: CommandRunner, which expands and spawns commands
- testing: helpers for asserting on command output

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

__version__ = "0.2.0"

from cmdutils.config import ParsingMode, RunConfig, preprocess_args
from cmdutils.runner import CommandFailedError, CommandRunner, SpawnError

__all__ = [
    "CommandFailedError",
    "CommandRunner",
    "ParsingMode",
    "RunConfig",
    "SpawnError",
    "preprocess_args",
]
