"""Process execution abstraction layer.

This module starts child processes for recipe commands, either one at a time
or as a concurrent fan-out group, and makes sure that every live child is
terminated when the invocation is interrupted.
"""

import os
import platform
import subprocess
import sys
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from subprocess import Popen
from threading import Thread
from typing import Any

__all__ = [
    "CommandOutputTypes",
    "PassthroughProcessRunner",
    "ProcessRunner",
    "RunningProcess",
    "SilentProcessRunner",
    "StderrOnlyProcessRunner",
    "StdoutOnlyProcessRunner",
    "child_environment",
    "default_shell",
    "make_process_runner",
    "run_concurrent",
    "run_sequential",
    "stream_output",
]

from recipebook.logging import Logger

# Seconds a terminated child gets to exit before it is killed
TERMINATE_GRACE_SECS = 5.0


class CommandOutputTypes(Enum):
    """
    Enum defining command output control modes.
    """

    ALL = "all"
    NONE = "none"
    OUT = "out"
    ERR = "err"


def default_shell() -> list[str]:
    """Shell used to run command lines when none is configured."""
    if platform.system() == "Windows":
        return ["cmd", "/c"]
    return ["sh", "-cu"]


def stream_output(pipe: Any, target: Any) -> None:
    """
    Stream output from a pipe to a target stream.

    If the pipe is closed or an error occurs during reading/writing,
    the function returns without raising an exception.

    Args:
        pipe: Input pipe to read from
        target: Output stream to write to
    """
    if pipe:
        try:
            for line in pipe:
                target.write(line)
                target.flush()
        except (OSError, ValueError):
            # Pipe closed because the process was killed or stdout was closed
            pass


class RunningProcess:
    """A started child process plus the threads streaming its output."""

    def __init__(self, process: Popen, logger: Logger, threads: list[Thread] | None = None):
        self.process = process
        self._logger = logger
        self._threads = threads or []
        for thread in self._threads:
            thread.start()

    def poll(self) -> int | None:
        return self.process.poll()

    def wait(self) -> int:
        """Block until the process exits and return its exit code."""
        return_code = self.process.wait()
        self._join_threads()
        return return_code

    def signal_terminate(self) -> None:
        """Send the termination signal without waiting."""
        if self.process.poll() is None:
            self.process.terminate()

    def terminate(self, grace: float = TERMINATE_GRACE_SECS) -> None:
        """Ask the process to stop, killing it if it outlives the grace period."""
        if self.process.poll() is None:
            self._logger.debug(f"Terminating process {self.process.pid}")
            self.process.terminate()
            try:
                self.process.wait(timeout=grace)
            except subprocess.TimeoutExpired:
                self._logger.warn(
                    f"Process {self.process.pid} did not exit within {grace} seconds, killing it"
                )
                self.process.kill()
                self.process.wait()
        self._join_threads()

    def _join_threads(self) -> None:
        join_timeout_secs = 1.0
        for thread in self._threads:
            thread.join(timeout=join_timeout_secs)
            if thread.is_alive():
                self._logger.warn(
                    f"Stream thread did not complete within timeout of {join_timeout_secs} seconds"
                )
        for stream in (self.process.stdout, self.process.stderr):
            if stream:
                stream.close()


class ProcessRunner(ABC):
    """
    Abstract interface for starting subprocess commands.
    """

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    @abstractmethod
    def start(
        self,
        cmd: list[str],
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
    ) -> RunningProcess:
        """
        Start a subprocess without waiting for it.

        Args:
            cmd: Program and arguments
            cwd: Working directory
            env: Complete environment for the child (inherit when None)

        Returns:
            RunningProcess handle for waiting on or terminating the child

        Raises:
            OSError: If the program cannot be started
        """
        ...


class PassthroughProcessRunner(ProcessRunner):
    """
    Process runner whose children write straight to the inherited stdout/stderr.
    """

    def start(self, cmd, cwd=None, env=None) -> RunningProcess:
        return RunningProcess(subprocess.Popen(cmd, cwd=cwd, env=env), self._logger)


class SilentProcessRunner(ProcessRunner):
    """
    Process runner that suppresses all subprocess output by redirecting to DEVNULL.
    """

    def start(self, cmd, cwd=None, env=None) -> RunningProcess:
        process = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return RunningProcess(process, self._logger)


class StdoutOnlyProcessRunner(ProcessRunner):
    """
    Process runner that streams stdout while suppressing stderr.

    Buffering strategy: Uses line buffering (bufsize=1) to ensure output
    appears promptly while maintaining reasonable performance.
    """

    def start(self, cmd, cwd=None, env=None) -> RunningProcess:
        process = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            bufsize=1,
        )
        thread = Thread(
            target=stream_output,
            args=(process.stdout, sys.stdout),
            name=f"stdout-streamer-{process.pid}",
            daemon=True,
        )
        return RunningProcess(process, self._logger, [thread])


class StderrOnlyProcessRunner(ProcessRunner):
    """
    Process runner that streams stderr while suppressing stdout.
    """

    def start(self, cmd, cwd=None, env=None) -> RunningProcess:
        process = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
        )
        thread = Thread(
            target=stream_output,
            args=(process.stderr, sys.stderr),
            name=f"stderr-streamer-{process.pid}",
            daemon=True,
        )
        return RunningProcess(process, self._logger, [thread])


def make_process_runner(output_type: CommandOutputTypes, logger: Logger) -> ProcessRunner:
    """
    Factory function for creating ProcessRunner instances.

    Args:
        output_type: The type of output control to use
        logger: Logger handed to the runner

    Raises:
        ValueError: If an invalid CommandOutputTypes value is provided
    """
    match output_type:
        case CommandOutputTypes.ALL:
            return PassthroughProcessRunner(logger)
        case CommandOutputTypes.NONE:
            return SilentProcessRunner(logger)
        case CommandOutputTypes.OUT:
            return StdoutOnlyProcessRunner(logger)
        case CommandOutputTypes.ERR:
            return StderrOnlyProcessRunner(logger)
        case _:
            raise ValueError(f"Invalid CommandOutputTypes: {output_type}")


def _terminate_all(processes: list[RunningProcess]) -> None:
    for process in processes:
        process.signal_terminate()
    for process in processes:
        process.terminate()


def run_sequential(
    runner: ProcessRunner,
    cmd: list[str],
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
) -> int:
    """
    Run one command and block until it completes.

    Raises:
        KeyboardInterrupt: After the child has been terminated
    """
    process = runner.start(cmd, cwd, env)
    try:
        return process.wait()
    except KeyboardInterrupt:
        _terminate_all([process])
        raise


def run_concurrent(
    runner: ProcessRunner,
    cmds: list[list[str]],
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
) -> list[int]:
    """
    Start every command at once and wait for all of them.

    A failing child does not stop its siblings. The caller decides how to
    aggregate the exit codes, which are returned in the order of ``cmds``.

    Raises:
        KeyboardInterrupt: After every live child has been terminated
        OSError: If a command cannot be started (already started siblings are terminated)
    """
    processes: list[RunningProcess] = []
    try:
        for cmd in cmds:
            processes.append(runner.start(cmd, cwd, env))
        return [process.wait() for process in processes]
    except (KeyboardInterrupt, OSError):
        _terminate_all(processes)
        raise


def child_environment(exported: dict[str, str]) -> dict[str, str]:
    """The inherited environment plus exported recipe values."""
    env = dict(os.environ)
    env.update(exported)
    return env
