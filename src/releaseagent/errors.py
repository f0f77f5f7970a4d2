# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


class CoordinatorError(Exception):
    """Base class for every error raised by the step coordinator."""


def _describe(e: BaseException) -> str:
    return str(e) or type(e).__name__


# ----------------------------------------------------------------------
# Graph errors (raised before anything runs)
# ----------------------------------------------------------------------

@dataclass(eq=False)
class CycleError(CoordinatorError):
    """The dependency graph has a cycle.

    `cycle` starts and ends with the step that was encountered twice, e.g.
    ["a", "c", "b", "a"] for a -> b -> c -> a.
    """
    cycle: list[str]

    def __str__(self) -> str:
        return f"encountered cycle: {' <- '.join(self.cycle)}"


@dataclass(eq=False)
class DuplicateStepError(CoordinatorError):
    step: str

    def __str__(self) -> str:
        return f"step {self.step!r} in provided steps is a duplicate"


@dataclass(eq=False)
class UnknownDependencyError(CoordinatorError):
    step: str
    dependency: str

    def __str__(self) -> str:
        return f"step {self.step!r} depends on unknown step {self.dependency!r}"


# ----------------------------------------------------------------------
# Step errors (recorded on a step's run state)
# ----------------------------------------------------------------------

@dataclass(eq=False)
class StepError(CoordinatorError):
    """A step's implementation raised. `original` is also set as __cause__."""
    step: str
    original: BaseException

    def __post_init__(self) -> None:
        self.__cause__ = self.original

    def __str__(self) -> str:
        return f"step {self.step!r} failed: {_describe(self.original)}"


@dataclass(eq=False)
class StepPanicError(StepError):
    """
    The implementation hit a defect rather than a failed operation.

    Raised for ArithmeticError, AssertionError, AttributeError, LookupError,
    NameError, TypeError and RecursionError (runner.FAULT_TYPES). Any other
    exception is recorded as a plain StepError, whose traceback stays on
    `original`.
    """
    stack: str = ""

    def __str__(self) -> str:
        return (
            f"step {self.step!r} panicked: {type(self.original).__name__}: {self.original}; "
            f"stack:\n{self.stack}"
        )


@dataclass(eq=False)
class DependencyFailedError(StepError):
    """The step never ran because `dependency` failed with `original`."""
    dependency: str = ""

    def __str__(self) -> str:
        return f"step {self.step!r} not run: dependency {self.dependency!r} failed: {self.original}"


@dataclass(eq=False)
class StepCancelledError(StepError):
    """
    The run was cancelled before the step could finish: either another step
    failed while this one waited, or the caller cancelled execute().
    """
    original: BaseException = field(default_factory=lambda: RunCancelledError())

    def __str__(self) -> str:
        return f"step {self.step!r} cancelled: {_describe(self.original)}"


class RunCancelledError(CoordinatorError):
    """Raised inside implementations that observe a cancelled run."""

    def __init__(self, message: str = "run cancelled after another step failed") -> None:
        super().__init__(message)
