from .context import StepContext
from .dag import topo_levels, transitive_dependencies
from .dsl import graph, indicator, root_step, step
from .errors import (
    CoordinatorError,
    CycleError,
    DependencyFailedError,
    DuplicateStepError,
    RunCancelledError,
    StepCancelledError,
    StepError,
    StepPanicError,
    UnknownDependencyError,
)
from .model import NO_TIMEOUT, Step, StepStatus
from .runner import StepRunner, StepState, run_steps

__all__ = [
    "NO_TIMEOUT", "Step", "StepStatus", "StepContext",
    "root_step", "step", "indicator", "graph",
    "transitive_dependencies", "topo_levels",
    "StepRunner", "StepState", "run_steps",
    "CoordinatorError", "CycleError", "DuplicateStepError", "UnknownDependencyError",
    "StepError", "StepPanicError", "DependencyFailedError", "StepCancelledError",
    "RunCancelledError",
]
