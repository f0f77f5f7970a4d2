# model.py
from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .context import StepContext

# No deadline is set up for the step's implementation.
NO_TIMEOUT: float | None = None

StepFunc = Callable[["StepContext"], Awaitable[None]]


class StepStatus(str, Enum):
    WAITING = "waiting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (StepStatus.SUCCEEDED, StepStatus.FAILED)


@dataclass(frozen=True, eq=False)
class Step:
    """
    One unit of work in a step graph.

    Steps compare and hash by identity: two steps with the same name are still
    two nodes. Names must be unique within a graph, but that is checked when a
    run starts.

      - name: human readable, unique within the graph
      - timeout: seconds before the implementation is cancelled (NO_TIMEOUT = unbounded)
      - impl: `async def impl(ctx) -> None`; raise to fail. It runs in its own task
        and may block on network calls or polling, but must not wait for another
        step itself: ordering is expressed with depends_on.
      - depends_on: steps that must all succeed before impl runs
    """
    name: str
    timeout: float | None
    impl: StepFunc
    depends_on: list[Step] = field(default_factory=list)

    def then(
        self,
        name: str,
        timeout: float | None,
        impl: StepFunc,
        *depends_on_additional: Step,
    ) -> Step:
        """Create a step that depends on this one (and any additional steps)."""
        return Step(
            name=name,
            timeout=timeout,
            impl=impl,
            depends_on=[*depends_on_additional, self],
        )

    def transitive_dependencies(self) -> list[Step]:
        """All steps this step depends on, plus itself, topologically sorted."""
        from .dag import transitive_dependencies

        return transitive_dependencies(self)

    def __repr__(self) -> str:
        return f"Step({self.name!r})"
