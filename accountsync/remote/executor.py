import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import asyncssh

from accountsync.core.config import get_settings
from accountsync.remote.errors import ExecutionError, ExecutionKind, NetworkError
from accountsync.remote.transport import Session

settings = get_settings()
logger = logging.getLogger(__name__)

SUDO_PREFIX = "sudo -n "


@dataclass
class CommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int


class CommandExecutor:
    """Runs single commands over a Session, optionally through sudo.

    One call is one remote invocation: no retries, batching or chaining.
    Output is returned exactly as captured.
    """

    def __init__(self, session: Session, timeout: Optional[float] = None):
        self.session = session
        self.timeout = timeout or settings.COMMAND_TIMEOUT

    def build(self, command: str, elevate: bool) -> str:
        if elevate and self.session.use_sudo:
            return SUDO_PREFIX + command
        return command

    async def run(self, command: str, elevate: bool = False, stdin: str = "") -> CommandResult:
        """Executes ``command`` and returns its captured output.

        Raises:
            ExecutionError: non-zero exit, refused elevation, timeout or cancellation.
            NetworkError: the connection dropped while the command ran.
        """
        full = self.build(command, elevate)
        logger.debug(f"[{self.session.address}] $ {full}")
        try:
            async with self.session.lock:
                process = await asyncio.wait_for(
                    self.session.connection.run(full, input=stdin or None, check=False),
                    timeout=self.timeout,
                )
        except asyncio.TimeoutError:
            logger.error(f"[{self.session.address}] Command timed out after {self.timeout}s: {full}")
            raise ExecutionError(full, kind=ExecutionKind.TIMEOUT) from None
        except asyncio.CancelledError:
            # The remote process is not killed, it may still run to completion
            logger.warning(f"[{self.session.address}] Command cancelled: {full}")
            raise ExecutionError(full, kind=ExecutionKind.CANCELLED) from None
        except (asyncssh.Error, OSError) as exc:
            raise NetworkError(f"Connection to {self.session.address} lost running {full}: {exc}") from exc

        stdout = process.stdout or ""
        stderr = process.stderr or ""
        exit_status = process.exit_status
        if exit_status != 0:
            kind = ExecutionKind.FAILED
            if full.startswith(SUDO_PREFIX) and stderr.lstrip().startswith("sudo:"):
                kind = ExecutionKind.ELEVATION
            logger.debug(f"[{self.session.address}] exit {exit_status}: {stderr.strip()}")
            raise ExecutionError(full, stderr=stderr, exit_status=exit_status, kind=kind)

        return CommandResult(command=full, stdout=stdout, stderr=stderr, exit_status=0)
