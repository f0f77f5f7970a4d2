# runner.py
from __future__ import annotations

import asyncio
import itertools
import logging
import traceback
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .context import StepContext
from .dag import transitive_dependencies
from .errors import (
    DependencyFailedError,
    DuplicateStepError,
    StepCancelledError,
    StepError,
    StepPanicError,
    UnknownDependencyError,
)
from .model import NO_TIMEOUT, Step, StepStatus

logger = logging.getLogger(__name__)

# Exceptions that point at a defect in the implementation itself rather than
# a failed operation. They are reported as StepPanicError with the traceback.
FAULT_TYPES: tuple[type[BaseException], ...] = (
    ArithmeticError,
    AssertionError,
    AttributeError,
    LookupError,
    NameError,
    TypeError,
    RecursionError,
)


# ----------------------------------------------------------------------
# Run state
# ----------------------------------------------------------------------

@dataclass(eq=False)
class StepState:
    """
    Run record for one step. Only the step's own task writes it; other tasks
    read it after `complete` is set, which happens after status and error are
    final.
    """
    id: int
    step: Step
    depends_on: List[int] = field(default_factory=list)
    status: StepStatus = StepStatus.WAITING
    error: Optional[StepError] = None
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    # Position in the order steps reached a terminal state.
    finished_seq: Optional[int] = None
    complete: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def name(self) -> str:
        return self.step.name


# ----------------------------------------------------------------------
# Runner
# ----------------------------------------------------------------------

class StepRunner:
    """
    Runs a group of steps concurrently: one task per step, each waiting for
    its dependencies before running its implementation.

    With fail_fast (the default), the first failure cancels the run. Steps
    still waiting on dependencies stop and fail without running; running
    implementations see ctx.cancelled and may return early. Cancellation is
    cooperative, so a step can keep running after a sibling failed.

    Cancelling the task that awaits execute() cancels every step task; each
    records a StepCancelledError before the cancellation propagates.
    """

    def __init__(self, *, fail_fast: bool = True) -> None:
        self.fail_fast = fail_fast
        self._states: List[StepState] = []
        self._index: Dict[Step, int] = {}
        self._finish_order = itertools.count()
        self._cancelled = asyncio.Event()

    # ---- introspection ----

    @property
    def states(self) -> List[StepState]:
        """Run records of the last execute(), in the order steps were given."""
        return list(self._states)

    def state_of(self, step: Step) -> StepState:
        return self._states[self._index[step]]

    def results(self) -> Dict[str, StepStatus]:
        return {s.name: s.status for s in self._states}

    def errors(self) -> Dict[str, StepError]:
        return {s.name: s.error for s in self._states if s.error is not None}

    # ---- execution ----

    async def execute(self, steps: Sequence[Step]) -> None:
        """
        Run steps, blocking until all are complete.

        Raises DuplicateStepError, UnknownDependencyError or CycleError before
        anything starts if the graph is malformed. Otherwise waits for every
        step to reach a terminal state and, if any failed, raises the failure
        that was recorded first (StepError or one of its subclasses).
        """
        self._prepare(steps)

        tasks = [
            asyncio.create_task(self._run(state), name=f"step:{state.name}")
            for state in self._states
        ]
        # _run records failures on the state instead of raising.
        await asyncio.gather(*tasks)

        failed = [s for s in self._states if s.error is not None]
        if failed:
            first = min(failed, key=lambda s: s.finished_seq)
            logger.warning("%d of %d steps failed", len(failed), len(self._states))
            raise first.error
        logger.info("all %d steps succeeded", len(self._states))

    def _prepare(self, steps: Sequence[Step]) -> None:
        states: List[StepState] = []
        index: Dict[Step, int] = {}
        names = set()
        for i, s in enumerate(steps):
            if s.name in names or s in index:
                raise DuplicateStepError(step=s.name)
            names.add(s.name)
            index[s] = i
            states.append(StepState(id=i, step=s))

        # Resolve every dependency before letting anything start, even for an instant.
        for state in states:
            for dep in state.step.depends_on:
                if dep not in index:
                    raise UnknownDependencyError(step=state.name, dependency=dep.name)
                if index[dep] not in state.depends_on:
                    state.depends_on.append(index[dep])

        # Every dependency is in steps, so this only walks steps. Raises CycleError.
        transitive_dependencies(*steps)

        self._states = states
        self._index = index
        self._finish_order = itertools.count()
        self._cancelled = asyncio.Event()

    async def _run(self, state: StepState) -> None:
        try:
            await self._run_step(state)
        except asyncio.CancelledError as e:
            if not state.status.terminal:
                self._finish(state, StepCancelledError(step=state.name, original=e))
            raise

    async def _run_step(self, state: StepState) -> None:
        try:
            await self._wait_for_dependencies(state)
        except StepError as e:
            self._finish(state, e)
            return

        state.status = StepStatus.RUNNING
        loop = asyncio.get_running_loop()
        state.started_at = loop.time()
        step = state.step
        logger.debug("step %r running", step.name)

        ctx = StepContext(
            step_name=step.name,
            deadline=None if step.timeout is NO_TIMEOUT else state.started_at + step.timeout,
            logger=logger.getChild("step"),
            _run_cancelled=self._cancelled,
        )

        try:
            async with asyncio.timeout_at(ctx.deadline) as scope:
                await step.impl(ctx)
        except TimeoutError as e:
            if scope.expired():
                err: StepError = StepError(
                    step=step.name,
                    original=TimeoutError(f"deadline exceeded after {step.timeout}s"),
                )
            else:
                err = StepError(step=step.name, original=e)
            self._finish(state, err)
        except asyncio.CancelledError as e:
            if asyncio.current_task().cancelling():
                # The step task itself is being cancelled.
                self._finish(state, StepCancelledError(step=step.name, original=e))
                raise
            # Raised by the implementation, e.g. from awaiting a cancelled task.
            self._finish(state, StepError(step=step.name, original=e))
        except FAULT_TYPES as e:
            stack = "".join(traceback.format_exception(e))
            self._finish(state, StepPanicError(step=step.name, original=e, stack=stack))
        except Exception as e:
            self._finish(state, StepError(step=step.name, original=e))
        else:
            self._finish(state, None)
    async def _wait_for_dependencies(self, state: StepState) -> None:
        """
        Wait until every dependency succeeded. Stops at the first failed
        dependency or when the run is cancelled.
        """
        pending = [self._states[i] for i in state.depends_on]
        while True:
            # Check in declaration order so attribution doesn't depend on wakeup order.
            for dep in pending:
                if dep.complete.is_set() and dep.error is not None:
                    raise DependencyFailedError(
                        step=state.name, original=dep.error, dependency=dep.name,
                    )
            pending = [dep for dep in pending if not dep.complete.is_set()]
            if not pending:
                return
            if self._cancelled.is_set():
                raise StepCancelledError(step=state.name)

            waiters = [asyncio.create_task(dep.complete.wait()) for dep in pending]
            waiters.append(asyncio.create_task(self._cancelled.wait()))
            try:
                await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for w in waiters:
                    w.cancel()

    def _finish(self, state: StepState, error: Optional[StepError]) -> None:
        state.error = error
        state.ended_at = asyncio.get_running_loop().time()
        state.finished_seq = next(self._finish_order)
        if error is None:
            state.status = StepStatus.SUCCEEDED
            logger.info("step %r succeeded", state.name)
        else:
            state.status = StepStatus.FAILED
            if isinstance(error, StepPanicError):
                logger.error("step %r panicked: %r", state.name, error.original)
            else:
                logger.warning("%s", error)
            if self.fail_fast and not self._cancelled.is_set():
                logger.debug("cancelling run after %r failed", state.name)
                self._cancelled.set()
        state.complete.set()


def run_steps(steps: Sequence[Step], *, fail_fast: bool = True) -> StepRunner:
    """
    Synchronous entry point: run steps in a fresh event loop.

    Returns the runner so callers can inspect per-step results. Raises the
    same errors as StepRunner.execute.
    """
    runner = StepRunner(fail_fast=fail_fast)
    asyncio.run(runner.execute(steps))
    return runner
