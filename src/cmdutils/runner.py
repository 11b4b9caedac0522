"""
Command runner for cmdutils.

Expands command templates and spawns the result, piping the output of each
`|`-separated stage into the next one.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import codecs
import logging
import queue
import subprocess
import sys
import threading
from signal import Signals
from typing import IO, Callable, List, Optional, Sequence, TextIO

import typer

from cmdutils.config import RunConfig
from cmdutils.expansion import expand_cmd
from cmdutils.pipeline import parse_raw_cmd
from cmdutils.process_hooks import ProcessHooks, noop, process_hooks
from cmdutils.terminal import last_lines, reset_output_style

CHUNK_SIZE = 64 * 1024


class CommandFailedError(Exception):
    """Raised when a spawned process exits with a non-zero code or is killed by a signal."""

    def __init__(self, command: str, code: Optional[int] = None, signal: Optional[str] = None):
        self.command = command
        self.code = code
        self.signal = signal
        reason = f"exit code {code}" if signal is None else f"signal {signal}"
        super().__init__(f"Command failed with {reason}: {command}")

    @property
    def exit_code(self) -> int:
        """Exit code for the calling process (1 if killed by a signal)."""
        return self.code or 1

    @classmethod
    def from_returncode(cls, command: str, returncode: int) -> "CommandFailedError":
        if returncode < 0:
            try:
                name = Signals(-returncode).name
            except ValueError:
                name = str(-returncode)
            return cls(command, signal=name)
        return cls(command, code=returncode)


class SpawnError(Exception):
    """Raised when a process could not be created."""

    def __init__(self, command: str, error: OSError):
        self.command = command
        self.error = error
        super().__init__(f"Failed to spawn '{command}': {error}")


class Tee:
    """Writes every chunk to all of its sinks."""

    def __init__(self, *sinks: Callable[[str], object]):
        self.sinks = sinks

    def write(self, chunk: str) -> None:
        if not chunk:
            return
        for sink in self.sinks:
            sink(chunk)


def _drain(stream: IO[bytes], tee: Tee) -> None:
    """Decode a byte stream until EOF, passing the text on to `tee`."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    for chunk in iter(lambda: stream.read1(CHUNK_SIZE), b""):
        tee.write(decoder.decode(chunk))
    tee.write(decoder.decode(b"", final=True))
    stream.close()


class CommandRunner:
    """Expands and runs (possibly piped) shell commands."""

    def __init__(
        self,
        hooks: Optional[ProcessHooks] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        stdout: Optional[TextIO] = None,
    ):
        """
        Initialize command runner.

        Args:
            hooks: Host process hooks (exit callbacks, Ctrl+C handling)
            popen: Used to spawn processes
            stdout: Stream for clean-up sequences and echoed output
                (default: sys.stdout at the time of writing)
        """
        self.hooks = hooks or process_hooks
        self.popen = popen
        self._stdout = stdout
        self.logger = logging.getLogger(__name__)

    @property
    def stdout(self) -> TextIO:
        return self._stdout or sys.stdout

    def debug_message(self, msg: str) -> None:
        """Print a debug trace line (or lines) to stderr."""
        formatted = "\n".join(f"[debug] {line}" for line in msg.split("\n"))
        typer.secho(formatted, fg=typer.colors.BRIGHT_BLACK, err=True)

    def expand_cmd(
        self,
        cmd: str,
        runtime_args: Sequence[str],
        config: Optional[RunConfig] = None,
    ) -> str:
        """
        Expand a command, substituting argument placeholders.

        Fallback commands (`${n:::command}`) are run with run().

        Example:
            >>> CommandRunner().expand_cmd("echo $1 ${2:bar}", ["foo"])
            'echo foo bar'
        """
        return expand_cmd(cmd, runtime_args, config or RunConfig(), self.run)

    def run(
        self,
        cmd: str,
        runtime_args: Sequence[str] = (),
        config: Optional[RunConfig] = None,
    ) -> str:
        """
        Expand and run a command.

        Could be a complex command with `|`, `&&` and `||` (but is not guaranteed
        to work if too complex).

        Args:
            cmd: Command template
            runtime_args: Arguments used for substituting placeholders
            config: RunConfig

        Returns:
            Empty string, or (part of) the output if `return_output` is set

        Raises:
            CommandFailedError: If a process exits with an error
            SpawnError: If a process could not be spawned
        """
        config = config or RunConfig()
        expanded_cmd = self.expand_cmd(cmd, runtime_args, config)

        if config.debug:
            self.debug_message(f"Input command: '{cmd}'")
            self.debug_message(f"Expanded command: '{expanded_cmd}'")

        return self.spawn(expanded_cmd, config)

    def spawn(self, raw_cmd: str, config: Optional[RunConfig] = None) -> str:
        """
        Spawn a command (or series of piped commands) and wait for it.

        Each stage runs through the shell, with its stdin connected to the
        previous stage's stdout. Once finished (successfully or not), the output
        and cursor styles are reset, in case a failing process left the terminal
        in a bad state.

        Args:
            raw_cmd: The command to run, possibly with `|`
            config: RunConfig

        Returns:
            Empty string, the whole output (`return_output=True`) or its last n
            lines (`return_output=n`)

        Raises:
            CommandFailedError: On the first stage to exit with an error
            SpawnError: If a process could not be spawned
        """
        config = config or RunConfig()
        # Held by whichever of exit hook, signal handler or `finally` runs first
        clean_up_once = threading.Lock()

        def clean_up(code_or_signal=None) -> None:
            if not clean_up_once.acquire(blocking=False):
                return
            if config.captures_output and not config.returns_output_subset:
                # The output has not been written to stdout. No need to clean up.
                return
            if config.debug:
                self.debug_message("  Resetting the output and cursor styles.")
            reset_output_style(self.stdout)

        cancel_clean_up = self.hooks.do_on_exit(clean_up)
        if config.suppress_terminate_confirmation:
            unsuppress = self.hooks.suppress_terminate_batch_job_confirmation()
        else:
            unsuppress = noop

        try:
            return self._spawn_pipeline(raw_cmd, config)
        finally:
            unsuppress()
            cancel_clean_up()
            clean_up()

    def _spawn_pipeline(self, raw_cmd: str, config: RunConfig) -> str:
        if len(raw_cmd) > 100:
            self.logger.debug(f"Executing: {raw_cmd[:100]}...")
        else:
            self.logger.debug(f"Executing: {raw_cmd}")

        stages = parse_raw_cmd(raw_cmd, config.parsing_mode, config.dryrun)
        procs: List[subprocess.Popen] = []
        prev_stdout: Optional[IO[bytes]] = None

        for idx, stage in enumerate(stages):
            is_last = idx == len(stages) - 1
            pipe_output = not is_last or config.captures_output

            if config.debug:
                stdio = [
                    "pipe" if prev_stdout is not None else "inherit",
                    "pipe" if pipe_output else "inherit",
                    "inherit",
                ]
                self.debug_message(
                    f"  Running {idx + 1}/{len(stages)}: "
                    f"'{stage.executable}', '{', '.join(stage.args)}'\n"
                    f"    (parsingMode: {config.parsing_mode.value}, stdio: {', '.join(stdio)})"
                )

            try:
                proc = self.popen(
                    stage.command_line,
                    shell=True,
                    stdin=prev_stdout,
                    stdout=subprocess.PIPE if pipe_output else None,
                )
            except OSError as e:
                if prev_stdout is not None:
                    prev_stdout.close()
                raise SpawnError(stage.command_line, e) from e

            # The next stage owns the read end now
            if prev_stdout is not None:
                prev_stdout.close()
            prev_stdout = proc.stdout
            procs.append(proc)

        chunks: List[str] = []
        reader = None
        if config.captures_output:
            sinks: List[Callable[[str], object]] = [chunks.append]
            if config.returns_output_subset:
                sinks.append(self._echo)
            reader = threading.Thread(
                target=_drain, args=(procs[-1].stdout, Tee(*sinks)), daemon=True
            )
            reader.start()

        self._wait_for(procs, raw_cmd)

        if reader is not None:
            reader.join()

        if not config.captures_output:
            return ""
        data = "".join(chunks)
        if config.returns_output_subset:
            return last_lines(data.strip(), config.return_output)
        return data

    def _wait_for(self, procs: List[subprocess.Popen], raw_cmd: str) -> None:
        """
        Block until the last process exits successfully.

        Exits are handled in the order they happen; the first failure wins and
        the remaining processes are left alone.
        """
        outcomes: "queue.Queue[tuple]" = queue.Queue()

        for idx, proc in enumerate(procs):
            waiter = threading.Thread(
                target=lambda i=idx, p=proc: outcomes.put((i, p.wait())),
                daemon=True,
            )
            waiter.start()

        last_idx = len(procs) - 1
        while True:
            idx, returncode = outcomes.get()
            if returncode != 0:
                self.logger.debug(f"Stage {idx + 1}/{len(procs)} exited with {returncode}")
                raise CommandFailedError.from_returncode(raw_cmd, returncode)
            if idx == last_idx:
                return

    def _echo(self, text: str) -> None:
        self.stdout.write(text)
        self.stdout.flush()
