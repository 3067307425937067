"""Single-flight guard for long-running operations.

Listing reconciliation and funding sync each hold one guard. A second
request while the first is running is rejected instead of queued.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum

from funding_arb.exceptions import OperationInProgress
from funding_arb.logging import get_logger

logger = get_logger(__name__)


class OperationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class OperationGuard:
    """IDLE/RUNNING state machine for one kind of operation.

    Usage:
        async with guard.hold():
            await do_work()
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._state = OperationState.IDLE

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is OperationState.RUNNING

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """Enter RUNNING for the duration of the block.

        Raises OperationInProgress if already RUNNING. The state returns to
        IDLE on every exit path, including exceptions and cancellation.
        """
        # No await between the check and the assignment, so this is atomic
        # on the event loop.
        if self._state is OperationState.RUNNING:
            logger.warning("operation_already_running", operation=self.name)
            raise OperationInProgress(self.name)
        self._state = OperationState.RUNNING
        try:
            yield
        finally:
            self._state = OperationState.IDLE
