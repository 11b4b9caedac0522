# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Pytest configuration and shared fixtures."""

import io
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest
import yaml

from cmdutils.runner import CommandRunner


class FakeProcess:
    """Stands in for subprocess.Popen; exits with a preset code when released."""

    def __init__(self, command: str, stdin, stdout, returncode: int = 0, output: bytes = b""):
        self.command = command
        self.stdin = stdin
        self.stdout = io.BytesIO(output) if stdout == subprocess.PIPE else None
        self.returncode: Optional[int] = None
        self._exit_code = returncode
        self.released = threading.Event()

    def wait(self) -> int:
        self.released.wait()
        self.returncode = self._exit_code
        return self.returncode


class FakePopen:
    """
    Records spawned commands and hands out FakeProcess objects.

    Processes exit immediately, unless their index is listed in `held`, in
    which case they exit once release_all() is called. With `error` set,
    spawning stage `error_at` (and any later one) raises it.
    """

    def __init__(
        self,
        returncodes: Sequence[int] = (),
        output: bytes = b"",
        held: Sequence[int] = (),
        error: Optional[OSError] = None,
        error_at: int = 0,
    ):
        self.returncodes = list(returncodes)
        self.output = output
        self.held = set(held)
        self.error = error
        self.error_at = error_at
        self.calls: List[Dict[str, Any]] = []
        self.processes: List[FakeProcess] = []

    def __call__(self, command, shell=False, stdin=None, stdout=None):
        idx = len(self.processes)
        self.calls.append({"command": command, "shell": shell, "stdin": stdin, "stdout": stdout})
        if self.error is not None and idx >= self.error_at:
            raise self.error

        returncode = self.returncodes[idx] if idx < len(self.returncodes) else 0
        proc = FakeProcess(command, stdin, stdout, returncode=returncode, output=self.output)
        if idx not in self.held:
            proc.released.set()
        self.processes.append(proc)
        return proc

    @property
    def commands(self) -> List[str]:
        return [call["command"] for call in self.calls]

    def release_all(self) -> None:
        for proc in self.processes:
            proc.released.set()


class FakeHooks:
    """Counts exit-hook registrations and confirmation suppressions."""

    def __init__(self):
        self.registered = 0
        self.cancelled = 0
        self.suppressed = 0
        self.unsuppressed = 0
        self.actions = []

    def do_on_exit(self, action):
        self.registered += 1
        self.actions.append(action)

        def cancel():
            self.cancelled += 1

        return cancel

    def suppress_terminate_batch_job_confirmation(self):
        self.suppressed += 1

        def unsuppress():
            self.unsuppressed += 1

        return unsuppress


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_popen():
    popen = FakePopen()
    yield popen
    popen.release_all()


@pytest.fixture
def fake_hooks():
    return FakeHooks()


@pytest.fixture
def fake_stdout():
    return io.StringIO()


@pytest.fixture
def fake_runner(fake_popen, fake_hooks, fake_stdout):
    """CommandRunner that spawns FakeProcess objects instead of real ones."""
    return CommandRunner(hooks=fake_hooks, popen=fake_popen, stdout=fake_stdout)


@pytest.fixture
def make_runner(fake_hooks, fake_stdout):
    """Factory for a fake-spawning CommandRunner with preset exit codes and output."""
    popens = []

    def _make(returncodes=(), output=b"", held=(), error=None, error_at=0):
        popen = FakePopen(
            returncodes=returncodes, output=output, held=held, error=error, error_at=error_at
        )
        popens.append(popen)
        return CommandRunner(hooks=fake_hooks, popen=popen, stdout=fake_stdout), popen

    yield _make
    for popen in popens:
        popen.release_all()


@pytest.fixture
def sample_config() -> Dict[str, Any]:
    """Sample configuration for testing."""
    return {
        "defaults": {
            "debug": False,
            "parsingMode": "tokenized",
        },
        "tasks": {
            "greet": {
                "command": "echo Hello ${1:World}!",
                "description": "Say hello",
            },
            "upper": {
                "command": "echo $* | tr a-z A-Z",
            },
        },
    }


@pytest.fixture
def config_file(temp_dir, sample_config):
    """Create a temporary config file."""
    config_path = temp_dir / "cmdutils.yml"
    with open(config_path, "w") as f:
        yaml.dump(sample_config, f)
    return config_path

