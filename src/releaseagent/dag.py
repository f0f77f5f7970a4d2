# dag.py
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List

from .errors import CycleError, UnknownDependencyError

if TYPE_CHECKING:
    from .model import Step


class _Visit(Enum):
    VISITING = 1  # on the current DFS path; meeting it again means a cycle
    VISITED = 2   # dependencies traversed, known cycle-free


def transitive_dependencies(*roots: Step) -> List[Step]:
    """
    Return every step reachable from roots through depends_on, roots included.

    The list is topologically sorted: for each step x, every step x depends on
    comes before x. That is a valid order to run the steps one at a time, but
    the runner runs them in parallel, so the order is mostly useful for text
    representations of the graph.

    The result is reproducible: ties are broken by declaration order of
    roots and of each depends_on list.

    Raises CycleError if a cycle is found.
    """
    visits: Dict[Step, _Visit] = {}
    ordered: List[Step] = []

    def visit(step: Step) -> List[Step] | None:
        state = visits.get(step)
        if state is _Visit.VISITING:
            return [step]
        if state is _Visit.VISITED:
            return None

        visits[step] = _Visit.VISITING
        for dep in step.depends_on:
            cycle = visit(dep)
            if cycle is not None:
                cycle.append(step)
                return cycle
        visits[step] = _Visit.VISITED

        # Everything step depends on is already in ordered.
        ordered.append(step)
        return None

    for root in roots:
        cycle = visit(root)
        if cycle is not None:
            # Trim the path above the step that closes the loop.
            end = next(i for i in range(1, len(cycle)) if cycle[i] is cycle[0])
            raise CycleError(cycle=[s.name for s in cycle[: end + 1]])

    return ordered


def topo_levels(steps: Iterable[Step]) -> List[List[Step]]:
    """
    Group steps into "stages": a step's stage is one past the deepest stage of
    its dependencies, so every step in a stage can run in parallel once the
    earlier stages are done.

    Input order is kept within a stage.
    """
    steps = list(steps)
    known = set(steps)
    for s in steps:
        for dep in s.depends_on:
            if dep not in known:
                raise UnknownDependencyError(step=s.name, dependency=dep.name)

    depth: Dict[Step, int] = {}
    for s in transitive_dependencies(*steps):
        depth[s] = 1 + max((depth[d] for d in s.depends_on), default=-1)

    levels: List[List[Step]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
    for s in steps:
        levels[depth[s]].append(s)
    return levels
