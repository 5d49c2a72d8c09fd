"""External process execution for mondeploy.

Every call to the automation engine goes through a CommandRunner so the
orchestration logic can be exercised with a fake collaborator. The interface
is deliberately narrow: look up a tool, run a command while streaming its
combined output line by line, or run a command and capture its output.
"""

import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Sequence

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

# Exit status reported when the executable itself cannot be started, as a shell would
COMMAND_NOT_FOUND = 127

# Shells report a process killed by signal N as 128 + N
SIGNAL_EXIT_BASE = 128


@dataclass
class CommandOutput:
    """Captured result of a finished command.

    Attributes:
        returncode: Process exit status
        stdout: Standard output
        stderr: Standard error
    """

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(ABC):
    """Abstract base class for running external commands."""

    @abstractmethod
    def which(self, tool: str) -> str | None:
        """Resolve an executable on the search path.

        Returns:
            Full path to the executable, or None if it is not found
        """

    @abstractmethod
    def stream(
        self,
        argv: Sequence[str],
        on_line: LineCallback,
        env: dict[str, str] | None = None,
    ) -> int:
        """Run a command, passing each line of combined stdout/stderr to on_line.

        Blocks until the process exits.

        Args:
            argv: Command and arguments
            on_line: Called with each output line (without trailing newline)
            env: Extra environment variables for the process

        Returns:
            Process exit status
        """

    @abstractmethod
    def capture(
        self,
        argv: Sequence[str],
        env: dict[str, str] | None = None,
    ) -> CommandOutput:
        """Run a command and capture its output.

        Args:
            argv: Command and arguments
            env: Extra environment variables for the process

        Returns:
            CommandOutput with exit status and captured streams
        """


class SubprocessRunner(CommandRunner):
    """CommandRunner backed by the subprocess module."""

    def which(self, tool: str) -> str | None:
        return shutil.which(tool)

    def stream(
        self,
        argv: Sequence[str],
        on_line: LineCallback,
        env: dict[str, str] | None = None,
    ) -> int:
        logger.debug(f"Streaming command: {' '.join(argv)}")
        try:
            process = subprocess.Popen(
                list(argv),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
                env=_merge_env(env),
            )
        except FileNotFoundError:
            on_line(f"{argv[0]}: command not found")
            return COMMAND_NOT_FOUND

        assert process.stdout is not None
        with process:
            try:
                for line in process.stdout:
                    on_line(line.rstrip("\n"))
            except BaseException:
                process.kill()
                raise
            returncode = process.wait()
        return exit_status(returncode)

    def capture(
        self,
        argv: Sequence[str],
        env: dict[str, str] | None = None,
    ) -> CommandOutput:
        logger.debug(f"Running command: {' '.join(argv)}")
        try:
            result = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                env=_merge_env(env),
            )
        except FileNotFoundError:
            return CommandOutput(
                returncode=COMMAND_NOT_FOUND, stderr=f"{argv[0]}: command not found"
            )
        return CommandOutput(
            returncode=exit_status(result.returncode),
            stdout=result.stdout,
            stderr=result.stderr,
        )


def _merge_env(extra: dict[str, str] | None) -> dict[str, str] | None:
    if not extra:
        return None
    return {**os.environ, **extra}


def exit_status(returncode: int) -> int:
    """Convert a subprocess return code into a shell-style exit status.

    subprocess reports death by signal N as -N; a shell reports 128 + N.
    """
    if returncode < 0:
        return SIGNAL_EXIT_BASE - returncode
    return returncode
