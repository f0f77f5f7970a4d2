# dsl.py
from __future__ import annotations

from typing import List

from .context import StepContext
from .dag import transitive_dependencies
from .model import NO_TIMEOUT, Step, StepFunc


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def root_step(name: str, timeout: float | None, impl: StepFunc) -> Step:
    """Create a step with no dependencies."""
    return Step(name=name, timeout=timeout, impl=impl)


def step(name: str, timeout: float | None, impl: StepFunc, *depends_on: Step) -> Step:
    """
    Create a step with at least one dependency.

    Kept separate from root_step so a root step can't be created by
    accidentally leaving out the dependencies.
    """
    if not depends_on:
        raise ValueError(f"step({name!r}) needs at least one dependency; use root_step()")
    return Step(name=name, timeout=timeout, impl=impl, depends_on=list(depends_on))


async def _noop(ctx: StepContext) -> None:
    return None


def indicator(name: str, *depends_on: Step) -> Step:
    """
    Create a step with no implementation.

    Indicator steps name what it means for a set of steps to be complete and
    give later steps one thing to depend on.
    """
    return step(name, NO_TIMEOUT, _noop, *depends_on)


# ---------------------------------------------------------------------
# Workflow helper
# ---------------------------------------------------------------------

def graph(*finals: Step) -> List[Step]:
    """
    All steps needed to reach every one of finals, topologically sorted.

        steps = graph(complete)
        await StepRunner().execute(steps)
    """
    return transitive_dependencies(*finals)
