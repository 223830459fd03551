"""External process execution.

Runs toolchain and package manager commands, streaming their output while
the command runs. The wait for the child is a polling loop that also
watches a CancellationToken, so an operator interrupt reaches the child
(and its whole process tree) instead of killing mirari outright.

Design:
    - Output is merged (stderr into stdout) and read line by line on a
      reader thread, echoed live and kept for diagnostics
    - Cancellation terminates the process tree via psutil, then runs the
      invocation's cleanup commands (e.g. destroying a Xen guest)
    - A cancelled command always yields an interrupted CommandOutcome
"""

import logging
import os
import shlex
import subprocess
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Callable, Deque, Dict, List, Optional, Sequence

import psutil

from .errors import ExecutionError, OperationInterruptedError

# Exit status used when a command cannot be started at all (same as shells)
COMMAND_NOT_FOUND = 127


class CancellationToken:
    """Thread-safe flag signalling that the current command should stop."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


@dataclass
class Invocation:
    """An external command to run.

    Attributes:
        argv: Program and arguments
        cwd: Working directory (default: inherit)
        env: Extra environment variables layered over os.environ
        capture: Keep output in the resulting CommandOutcome
        echo: Stream output to the console while the command runs
        cleanup: Commands to run if this one is interrupted
        max_output_lines: Keep only the last N captured lines (None: all)
    """

    argv: Sequence[str]
    cwd: Optional[Path] = None
    env: Optional[Dict[str, str]] = None
    capture: bool = True
    echo: bool = True
    cleanup: Sequence[Sequence[str]] = field(default_factory=tuple)
    max_output_lines: Optional[int] = None

    def describe(self) -> str:
        return " ".join(shlex.quote(str(arg)) for arg in self.argv)


@dataclass
class CommandOutcome:
    """Result of running one external command."""

    argv: List[str]
    returncode: int
    output: str = ""
    interrupted: bool = False
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.interrupted

    def tail(self, lines: int = 20) -> str:
        """Last lines of the captured output, for error messages."""
        return "\n".join(self.output.rstrip("\n").splitlines()[-lines:])

    def check(self, step: str) -> "CommandOutcome":
        """Raise if the command did not succeed.

        Args:
            step: Human-readable name of the step, used in the message

        Raises:
            OperationInterruptedError: If the command was interrupted
            ExecutionError: If the command exited non-zero
        """
        if self.interrupted:
            raise OperationInterruptedError(f"{step} interrupted", outcome=self)
        if self.returncode != 0:
            command = " ".join(shlex.quote(arg) for arg in self.argv)
            message = f"{step} failed (exit code {self.returncode}): {command}"
            tail = self.tail()
            if tail:
                message += f"\n{tail}"
            raise ExecutionError(message, outcome=self)
        return self


def _write_stdout(line: str) -> None:
    sys.stdout.write(line)
    sys.stdout.flush()


class ProcessRunner:
    """Runs external commands with live output and cancellation support.

    Example usage:
        token = CancellationToken()
        runner = ProcessRunner(token)
        outcome = runner.run(Invocation(["obuild", "build"], cwd=project_dir))
        outcome.check("obuild build")
    """

    def __init__(
        self,
        token: Optional[CancellationToken] = None,
        poll_interval: float = 0.1,
        terminate_timeout: float = 3.0,
        sink: Optional[Callable[[str], None]] = None,
    ):
        """Initialize process runner.

        Args:
            token: Cancellation token watched while commands run
            poll_interval: Seconds between checks of the token
            terminate_timeout: Seconds to wait after SIGTERM before SIGKILL
            sink: Callable receiving each output line (default: stdout)
        """
        self.token = token if token is not None else CancellationToken()
        self.poll_interval = poll_interval
        self.terminate_timeout = terminate_timeout
        self.sink = sink if sink is not None else _write_stdout

    def run(self, invocation: Invocation, allow_interrupt: bool = True) -> CommandOutcome:
        """Run a command to completion or until cancelled.

        Args:
            invocation: Command to run
            allow_interrupt: Whether cancellation may stop this command

        Returns:
            CommandOutcome; output is available whether or not it succeeded
        """
        argv = [str(arg) for arg in invocation.argv]
        start_time = time.time()

        if allow_interrupt and self.token.cancelled:
            logging.info(f"Not starting {invocation.describe()}: cancellation requested")
            return CommandOutcome(argv=argv, returncode=-1, interrupted=True)

        env = None
        if invocation.env:
            env = os.environ.copy()
            env.update(invocation.env)

        logging.info(f"Running: {invocation.describe()}")
        try:
            proc = subprocess.Popen(
                argv,
                cwd=str(invocation.cwd) if invocation.cwd else None,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            logging.error(f"Failed to start {argv[0]}: {e}")
            return CommandOutcome(
                argv=argv,
                returncode=COMMAND_NOT_FOUND,
                output=f"{argv[0]}: {e}\n",
                duration=time.time() - start_time,
            )

        lines: Deque[str] = deque(maxlen=invocation.max_output_lines)
        lines_lock = threading.Lock()
        reader = threading.Thread(
            target=self._pump_output,
            args=(proc.stdout, lines, lines_lock, invocation),
            daemon=True,
        )
        reader.start()

        interrupted = self._wait(proc, allow_interrupt)
        if interrupted:
            logging.warning(f"Stopping {argv[0]} (pid {proc.pid})")
            self.terminate(proc)
            self._run_cleanup(invocation)
        else:
            proc.wait()

        reader.join(timeout=self.terminate_timeout)
        with lines_lock:
            output = "".join(lines)
        outcome = CommandOutcome(
            argv=argv,
            returncode=proc.returncode,
            output=output,
            interrupted=interrupted,
            duration=time.time() - start_time,
        )
        logging.debug(
            f"{argv[0]} finished: exit={outcome.returncode}, "
            + f"interrupted={outcome.interrupted}, {outcome.duration:.2f}s"
        )
        return outcome

    def _wait(self, proc: subprocess.Popen, allow_interrupt: bool) -> bool:
        """Wait for the child while watching the cancellation token.

        Returns:
            True if the command must be treated as interrupted
        """
        while True:
            try:
                proc.wait(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if allow_interrupt and self.token.cancelled:
                    return True
            except KeyboardInterrupt:
                logging.warning("Interrupt received")
                self.token.cancel()

        # The child may have died from the same SIGINT the operator sent us
        return allow_interrupt and self.token.cancelled

    def _pump_output(
        self,
        stream: IO[str],
        lines: Deque[str],
        lines_lock: threading.Lock,
        invocation: Invocation,
    ) -> None:
        with stream:
            for line in stream:
                if invocation.capture:
                    with lines_lock:
                        lines.append(line)
                if invocation.echo:
                    self.sink(line)

    def _run_cleanup(self, invocation: Invocation) -> None:
        for cleanup_argv in invocation.cleanup:
            cleanup = Invocation(
                argv=list(cleanup_argv),
                cwd=invocation.cwd,
                env=invocation.env,
                echo=invocation.echo,
            )
            outcome = self.run(cleanup, allow_interrupt=False)
            if not outcome.success:
                logging.warning(
                    f"Cleanup command failed (exit code {outcome.returncode}): {cleanup.describe()}"
                )

    def terminate(self, proc: subprocess.Popen) -> int:
        """Terminate a child and all of its descendants.

        Children are signalled before the root. Anything still alive after
        terminate_timeout is killed.

        Returns:
            Number of processes signalled
        """
        try:
            children = psutil.Process(proc.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            children = []

        signalled = 0
        for child in reversed(children):
            try:
                child.terminate()
                signalled += 1
            except psutil.NoSuchProcess:
                pass

        if proc.poll() is None:
            proc.terminate()
            signalled += 1

        _gone, alive = psutil.wait_procs(children, timeout=self.terminate_timeout)
        for child in alive:
            try:
                child.kill()
                logging.warning(f"Force killed stubborn process {child.pid}")
            except psutil.NoSuchProcess:
                pass

        try:
            proc.wait(timeout=self.terminate_timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            logging.warning(f"Force killed stubborn process {proc.pid}")
            proc.wait()

        return signalled
