"""Context handed to each step implementation while a run is in progress."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .errors import RunCancelledError


@dataclass
class StepContext:
    """Cancellable context for one step's implementation.

    Cancellation is cooperative: when another step fails, the run is marked
    cancelled and implementations that poll `cancelled`, call
    `raise_if_cancelled()` or sleep through `sleep()` return early. Work that
    never checks keeps running until it finishes on its own.

    The step's own timeout is enforced by the runner, not by this object;
    `deadline` and `remaining()` are informational.

    Attributes:
        step_name: Name of the step being run.
        deadline: Event loop time (`loop.time()`) when the step times out, or
            None if the step has no timeout.
        logger: Logger scoped to the step.
    """

    step_name: str
    deadline: float | None = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("releaseagent.step"))
    _run_cancelled: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._run_cancelled.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RunCancelledError()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None if unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - asyncio.get_running_loop().time())

    async def wait_cancelled(self) -> None:
        await self._run_cancelled.wait()

    async def sleep(self, seconds: float) -> None:
        """Sleep, but raise RunCancelledError as soon as the run is cancelled."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._run_cancelled.wait(), timeout=seconds)
        except TimeoutError:
            return
        raise RunCancelledError()
