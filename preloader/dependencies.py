"""Dependency gating between queued resources."""

from typing import Container, Dict, Iterable, List, Mapping, Set, Tuple

from .models import ResourceDescriptor


class DependencyGate:
    """Decides whether a queued resource may start.

    A prerequisite counts as resolved once it reaches any terminal state, so a
    failed prerequisite unblocks its dependents. Unknown prerequisite ids never
    resolve.
    """

    def __init__(self, loaded: Container[str], failed: Container[str]):
        self._loaded = loaded
        self._failed = failed

    def is_resolved(self, resource_id: str) -> bool:
        return resource_id in self._loaded or resource_id in self._failed

    def is_eligible(self, descriptor: ResourceDescriptor) -> bool:
        return all(self.is_resolved(dep) for dep in descriptor.depends_on)

    def pending(self, descriptor: ResourceDescriptor) -> List[str]:
        """Prerequisites that have not reached a terminal state yet."""
        return [dep for dep in descriptor.depends_on if not self.is_resolved(dep)]


def find_unregistered(
    resources: Mapping[str, ResourceDescriptor],
) -> Dict[str, List[str]]:
    """Map each resource id to the prerequisite ids that were never registered."""
    missing = {}
    for resource_id, descriptor in resources.items():
        unknown = [dep for dep in descriptor.depends_on if dep not in resources]
        if unknown:
            missing[resource_id] = unknown
    return missing


def find_cycles(resources: Mapping[str, ResourceDescriptor]) -> List[List[str]]:
    """Return dependency cycles among registered resources.

    One cycle is reported per back edge of a depth-first walk, as the path of
    ids that closes back on its first element. Rotations of the same cycle are
    listed once. This detects every cyclic component but is not an enumeration
    of all elementary cycles.
    """
    WHITE, GREY, BLACK = 0, 1, 2
    color = {rid: WHITE for rid in resources}
    cycles: List[List[str]] = []
    seen: Set[Tuple[str, ...]] = set()

    def visit(start: str) -> None:
        # Iterative DFS keeps deep chains off the recursion limit.
        stack = [(start, iter(_registered_deps(resources, start)))]
        path = [start]
        color[start] = GREY
        while stack:
            node, deps = stack[-1]
            advanced = False
            for dep in deps:
                if color[dep] == WHITE:
                    color[dep] = GREY
                    path.append(dep)
                    stack.append((dep, iter(_registered_deps(resources, dep))))
                    advanced = True
                    break
                if color[dep] == GREY:
                    cycle = path[path.index(dep):] + [dep]
                    key = _cycle_key(cycle)
                    if key not in seen:
                        seen.add(key)
                        cycles.append(cycle)
            if not advanced:
                color[node] = BLACK
                stack.pop()
                path.pop()

    for rid in resources:
        if color[rid] == WHITE:
            visit(rid)
    return cycles


def _registered_deps(
    resources: Mapping[str, ResourceDescriptor], resource_id: str
) -> Iterable[str]:
    return [dep for dep in resources[resource_id].depends_on if dep in resources]


def _cycle_key(cycle: List[str]) -> Tuple[str, ...]:
    # Rotate so the smallest id leads; direction is kept.
    nodes = cycle[:-1]
    pivot = nodes.index(min(nodes))
    return tuple(nodes[pivot:] + nodes[:pivot])
