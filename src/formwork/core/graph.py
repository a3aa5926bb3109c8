"""
Dependency ordering.

Kahn's algorithm with a stable tie-break: among nodes that are ready, the
one that came first in the input goes first.
"""

from __future__ import annotations

import heapq
from collections.abc import Mapping, Sequence

from .errors import DependencyCycleError


def find_cycle(names: Sequence[str], dependencies: Mapping[str, Sequence[str]]) -> list[str]:
    """Return one dependency cycle as ``[a, b, ..., a]``, or an empty list."""
    visiting: list[str] = []
    done: set[str] = set()

    def visit(name: str) -> list[str]:
        if name in visiting:
            return [*visiting[visiting.index(name) :], name]
        if name in done:
            return []
        visiting.append(name)
        for dep in dependencies.get(name, ()):
            cycle = visit(dep)
            if cycle:
                return cycle
        visiting.pop()
        done.add(name)
        return []

    for name in names:
        cycle = visit(name)
        if cycle:
            return cycle
    return []


def topological_sort(
    names: Sequence[str],
    dependencies: Mapping[str, Sequence[str]],
    what: str = "nodes",
) -> list[str]:
    """
    Order names so that every name comes after its dependencies.

    Args:
        names: Names in their preferred order
        dependencies: Map of name to the names it depends on. Names not in
            ``names`` are ignored.
        what: Noun used in the error message

    Returns:
        Names in dependency order

    Raises:
        DependencyCycleError: If the dependencies contain a cycle
    """
    index = {name: i for i, name in enumerate(names)}
    in_degree = {name: 0 for name in names}
    dependents: dict[str, list[str]] = {name: [] for name in names}

    for name in names:
        for dep in dict.fromkeys(dependencies.get(name, ())):
            if dep not in index or dep == name:
                continue
            in_degree[name] += 1
            dependents[dep].append(name)

    ready = [(index[name], name) for name in names if in_degree[name] == 0]
    heapq.heapify(ready)

    ordered: list[str] = []
    while ready:
        _, name = heapq.heappop(ready)
        ordered.append(name)
        for dependent in dependents[name]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, (index[dependent], dependent))

    if len(ordered) != len(names):
        remaining = [name for name in names if name not in set(ordered)]
        cycle = find_cycle(
            remaining,
            {n: [d for d in dependencies.get(n, ()) if d in in_degree] for n in remaining},
        )
        raise DependencyCycleError(
            f"Circular dependency detected between {what}: {' -> '.join(cycle)}",
            cycle=cycle,
        )
    return ordered
