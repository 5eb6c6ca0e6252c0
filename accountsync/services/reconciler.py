import asyncio
import logging
import shlex
from dataclasses import dataclass
from typing import Iterable, List, Optional

from accountsync.core.config import get_settings
from accountsync.remote.errors import ExecutionError, ExecutionKind
from accountsync.services.observer import StateObserver

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class Step:
    """One mutating command of an update, carrying a single field's flags.

    ``renames_to`` is set on the step that changes the entity's name; every
    step after it addresses the entity by that new name.
    """
    field: str
    flags: List[str]
    renames_to: Optional[str] = None


def render_steps(tool: str, steps: Iterable[Step], subject: str) -> List[str]:
    """Turns an ordered step list into commands, tracking the subject name."""
    commands = []
    for step in steps:
        commands.append(f"{tool} {' '.join(step.flags)} {shlex.quote(subject)}")
        if step.renames_to is not None:
            subject = step.renames_to
    return commands


class Reconciler:
    """Shared plumbing for the per-kind reconcilers.

    Holds the executor for one Session; no remote state is kept between
    calls so every operation observes the host afresh.
    """

    kind = "entity"

    def __init__(self, executor, observer: Optional[StateObserver] = None, operation_timeout: Optional[float] = None):
        self.executor = executor
        self.observer = observer or StateObserver(executor)
        self.operation_timeout = operation_timeout or settings.OPERATION_TIMEOUT

    async def _bounded(self, coro, description: str):
        """Runs one whole operation under OPERATION_TIMEOUT.

        The deadline cancels whatever command is in flight; the executor
        reports that as a cancellation, which is turned back into a timeout
        here when it was this deadline that fired.
        """
        try:
            async with asyncio.timeout(self.operation_timeout) as deadline:
                return await coro
        except ExecutionError as exc:
            if exc.kind is ExecutionKind.CANCELLED and deadline.expired():
                logger.error(f"{description} exceeded {self.operation_timeout}s during: {exc.command}")
                raise ExecutionError(exc.command, kind=ExecutionKind.TIMEOUT) from None
            raise
        except TimeoutError:
            logger.error(f"{description} exceeded {self.operation_timeout}s")
            raise ExecutionError(description, kind=ExecutionKind.TIMEOUT) from None

    async def _mutate(self, command: str) -> None:
        logger.info(f"Applying {self.kind} change: {command}")
        try:
            await self.executor.run(command, elevate=True)
        except ExecutionError as exc:
            logger.error(str(exc))
            raise
