"""
External Tool Process Manager

Runs the command-line collaborators (smartctl, lsblk, blockdev, dd,
badblocks, git, tmux) and hands their textual output back to the caller.
All burn-in components go through a ToolRunner so tests can replace it
with a scripted fake.
"""

import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .exceptions import MissingToolError
from .logger import get_module_logger

logger = get_module_logger(__name__)


@dataclass
class ToolResult:
    """
    Outcome of one external command.

    Attributes:
        args:       Command line that was executed.
        returncode: Process exit status.
        stdout:     Captured standard output (text).
        stderr:     Captured standard error (empty when merged into stdout).
    """
    args: List[str]
    returncode: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, the way ``2>&1`` would show them."""
        if self.stderr:
            return f"{self.stdout}{self.stderr}"
        return self.stdout


class ToolRunner:
    """
    Process manager for external command-line tools.

    This class handles:
    - Locating required commands on PATH
    - Running a command to completion and capturing its output
    - Streaming a long-running command line by line (badblocks)

    Example:
        >>> runner = ToolRunner()
        >>> runner.require('smartctl', 'lsblk')
        >>> result = runner.run(['lsblk', '-dn', '-o', 'ROTA', '/dev/sdb'])
        >>> result.stdout.strip()
        '1'
    """

    def __init__(self, timeout: Optional[float] = 300):
        """
        Initialize the runner.

        Args:
            timeout: Default timeout in seconds for run(); None disables it.
        """
        self.timeout = timeout

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)

    def require(self, *names: str) -> None:
        """
        Ensure every command in *names* is on PATH.

        Raises:
            MissingToolError: For the first command that is missing.
        """
        for name in names:
            if self.which(name) is None:
                raise MissingToolError(f"Missing required command: {name}")

    def run(
        self,
        args: Sequence[str],
        timeout: Optional[float] = None,
        merge_stderr: bool = False,
        cwd: Optional[str] = None,
    ) -> ToolResult:
        """
        Run a command to completion.

        Non-zero exit codes are returned, not raised: smartctl encodes
        device state as a bitmask in its exit status, so callers decide
        what a given code means.

        Args:
            args: Command and arguments.
            timeout: Seconds before the command is killed (default: self.timeout).
            merge_stderr: Capture stderr into stdout (``2>&1``).
            cwd: Working directory.

        Returns:
            ToolResult with the captured output.

        Raises:
            MissingToolError: If the executable does not exist.
        """
        argv = [str(a) for a in args]
        logger.debug(f"exec: {' '.join(argv)}")
        try:
            completed = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
                text=True,
                errors='replace',
                timeout=timeout if timeout is not None else self.timeout,
                cwd=cwd,
            )
        except FileNotFoundError:
            raise MissingToolError(f"Missing required command: {argv[0]}")
        except subprocess.TimeoutExpired as e:
            output = e.output or ''
            if isinstance(output, bytes):
                output = output.decode(errors='replace')
            logger.warning(f"Command timed out after {e.timeout}s: {' '.join(argv)}")
            return ToolResult(args=argv, returncode=-1, stdout=output, stderr='timeout')

        return ToolResult(
            args=argv,
            returncode=completed.returncode,
            stdout=(completed.stdout or '').replace('\r', ''),
            stderr=(completed.stderr or '').replace('\r', '') if not merge_stderr else '',
        )

    def stream(
        self,
        args: Sequence[str],
        on_line: Optional[Callable[[str], None]] = None,
    ) -> int:
        """
        Run a long command, passing each output line to *on_line*.

        stderr is merged into stdout. There is no timeout: the destructive
        pass can legitimately run for days.

        Returns:
            The process exit status.

        Raises:
            MissingToolError: If the executable does not exist.
        """
        argv = [str(a) for a in args]
        logger.debug(f"exec (streaming): {' '.join(argv)}")
        try:
            process = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors='replace',
                bufsize=1,
            )
        except FileNotFoundError:
            raise MissingToolError(f"Missing required command: {argv[0]}")

        with process:
            for line in process.stdout:
                if on_line is not None:
                    on_line(line.rstrip('\n'))
            return process.wait()


def is_root() -> bool:
    """True when running with effective UID 0."""
    return hasattr(os, 'geteuid') and os.geteuid() == 0
