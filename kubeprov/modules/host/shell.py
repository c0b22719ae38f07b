"""Local command execution for step bodies."""
import logging
import shlex
import shutil
import subprocess
import time
from typing import List, Optional, Sequence, Union

from ..pipeline.audit import AuditLog
from ..pipeline.models import CommandError

logger = logging.getLogger("kubeprov.host.shell")

Command = Union[str, Sequence[str]]


def _argv(command: Command) -> List[str]:
    if isinstance(command, str):
        return shlex.split(command)
    return [str(part) for part in command]


class HostShell:
    """Runs external tools synchronously and appends their output to the audit log.

    Commands are executed as argument vectors, never through a shell.
    """

    def __init__(self, log: AuditLog, dry_run: bool = False, timeout: Optional[int] = None):
        self.log = log
        self.dry_run = dry_run
        self.timeout = timeout

    def run(
        self,
        command: Command,
        check: bool = True,
        timeout: Optional[int] = None,
        input: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        """Execute a command.

        Args:
            command: Argument vector, or a string split with ``shlex``
            check: If True, raise :class:`CommandError` on a non-zero exit code
            timeout: Seconds to wait (defaults to the shell's timeout)
            input: Text passed on stdin

        Returns:
            The completed process with text stdout and stderr

        Raises:
            CommandError: If the command fails or times out with check=True
        """
        argv = _argv(command)
        display = shlex.join(argv)
        self.log.detail(f"Executing: {display}")

        if self.dry_run:
            logger.info("DRY RUN: %s", display)
            return subprocess.CompletedProcess(argv, 0, '', '')

        start = time.time()
        try:
            result = self._execute(argv, timeout or self.timeout, input)
        except FileNotFoundError:
            if check:
                raise CommandError(f"Command not found: {argv[0]}", display, 127)
            self.log.detail(f"Command not found: {argv[0]}")
            return subprocess.CompletedProcess(argv, 127, '', f"{argv[0]}: command not found")
        except subprocess.TimeoutExpired as e:
            message = f"Command timed out after {e.timeout}s: {display}"
            if check:
                raise CommandError(message, display)
            self.log.detail(message)
            return subprocess.CompletedProcess(argv, 124, '', message)

        logger.debug("Completed %s in %.2fs (rc=%s)", display, time.time() - start, result.returncode)
        for stream in (result.stdout, result.stderr):
            if stream and stream.strip():
                self.log.detail(stream.rstrip())

        if check and result.returncode != 0:
            message = f"Command failed with status {result.returncode}: {display}"
            if result.stderr and result.stderr.strip():
                message += f"\n{result.stderr.strip().splitlines()[-1]}"
            raise CommandError(message, display, result.returncode)
        return result

    def output(self, command: Command, **kwargs) -> str:
        """Run a command and return its stripped stdout."""
        return self.run(command, **kwargs).stdout.strip()

    def succeeds(self, command: Command, **kwargs) -> bool:
        return self.run(command, check=False, **kwargs).returncode == 0

    def which(self, binary: str) -> Optional[str]:
        return shutil.which(binary)

    def _execute(
        self,
        argv: List[str],
        timeout: Optional[int],
        input: Optional[str],
    ) -> subprocess.CompletedProcess:
        return subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input,
        )
