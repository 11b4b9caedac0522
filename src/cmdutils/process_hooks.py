"""
Host process hooks: run-on-exit callbacks and Windows Ctrl+C handling.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import atexit
import logging
import os
import signal
import subprocess
import sys
import threading
from typing import Callable, Union

logger = logging.getLogger(__name__)

ExitAction = Callable[[Union[int, str, None]], None]


def noop() -> None:
    return None


def _in_main_thread() -> bool:
    return threading.current_thread() is threading.main_thread()


class ProcessHooks:
    """Registers callbacks on the current (host) process."""

    def __init__(self, platform: str = sys.platform):
        self.platform = platform

    def do_on_exit(self, action: ExitAction) -> Callable[[], None]:
        """
        Run `action` when the interpreter exits or SIGINT is received.

        On SIGINT, `action` is called with the signal name and the process then
        exits with status 1. The SIGINT handler can only be installed from the
        main thread; elsewhere only the exit hook is registered.

        Args:
            action: Callback, receives the exit code or signal name

        Returns:
            A function that unregisters the callbacks
        """
        if action is None:
            raise ValueError("No action specified.")

        def on_exit() -> None:
            action(None)

        def on_signal(signum, frame) -> None:
            action(signal.Signals(signum).name)
            sys.exit(1)

        atexit.register(on_exit)
        installed = _in_main_thread()
        previous_handler = signal.signal(signal.SIGINT, on_signal) if installed else None

        def cancel() -> None:
            atexit.unregister(on_exit)
            if installed and signal.getsignal(signal.SIGINT) is on_signal:
                signal.signal(signal.SIGINT, previous_handler or signal.SIG_DFL)

        return cancel

    def suppress_terminate_batch_job_confirmation(self) -> Callable[[], None]:
        """
        Suppress the "Terminate batch job (Y/N)?" confirmation on Windows.

        On Ctrl+C the whole process tree is killed with `taskkill`, so cmd.exe
        never gets the chance to ask. The previous SIGINT handler (e.g. one
        installed by do_on_exit()) is called afterwards. A no-op on other
        platforms.

        Returns:
            A function that restores the previous behavior
        """
        if self.platform != "win32" or not _in_main_thread():
            return noop

        pid = os.getpid()
        previous_handler = signal.getsignal(signal.SIGINT)

        def on_signal(signum, frame) -> None:
            logger.debug(f"Killing process tree of {pid}")
            subprocess.Popen(f"taskkill /F /PID {pid} /T", shell=True)
            # Exit hooks installed before us still run
            if callable(previous_handler):
                previous_handler(signum, frame)

        signal.signal(signal.SIGINT, on_signal)

        def unsuppress() -> None:
            if signal.getsignal(signal.SIGINT) is on_signal:
                signal.signal(signal.SIGINT, previous_handler or signal.SIG_DFL)

        return unsuppress


process_hooks = ProcessHooks()
