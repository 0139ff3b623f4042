"""Dependency readiness and validation with cycle detection.

Pure domain logic for task dependencies.
No I/O operations - receives task data as parameters.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple


def is_ready(depends_on: Iterable[str], statuses: Mapping[str, str]) -> bool:
    """Answer "can this task start?".

    Args:
        depends_on: Task IDs the task depends on
        statuses: Mapping task_id -> status for every known record

    Returns:
        True when there are no dependencies or every one of them is "done".
        An id missing from ``statuses`` counts as not met.
    """
    for dep_id in depends_on or []:
        if statuses.get(dep_id) != "done":
            return False
    return True


def get_blocked_by_dependencies(
    task_id: str,
    depends_on: List[str],
    task_statuses: Mapping[str, str],
) -> List[str]:
    """Get list of incomplete dependencies that block this task.

    Args:
        task_id: The task to check
        depends_on: List of task IDs this task depends on
        task_statuses: Dictionary mapping task_id to status

    Returns:
        List of dependency task IDs that are missing or not yet done
    """
    return [dep_id for dep_id in depends_on or [] if task_statuses.get(dep_id) != "done"]


def detect_cycle(
    task_id: str,
    depends_on: List[str],
    dependency_graph: Dict[str, List[str]],
) -> Optional[List[str]]:
    """Detect if these dependencies would create a cycle through task_id.

    Args:
        task_id: The task being validated
        depends_on: List of task IDs this task would depend on
        dependency_graph: Current dependency graph {task_id: [dep_ids]}

    Returns:
        List of task IDs forming the cycle (first == last), or None
    """
    graph = {k: list(v) for k, v in dependency_graph.items()}
    graph[task_id] = list(depends_on)

    visited: Set[str] = set()
    rec_stack: Set[str] = set()
    path: List[str] = []

    def dfs(node: str) -> Optional[List[str]]:
        visited.add(node)
        rec_stack.add(node)
        path.append(node)

        for neighbor in graph.get(node, []):
            if neighbor not in visited:
                cycle = dfs(neighbor)
                if cycle:
                    return cycle
            elif neighbor in rec_stack:
                cycle_start = path.index(neighbor)
                return path[cycle_start:] + [neighbor]

        path.pop()
        rec_stack.remove(node)
        return None

    return dfs(task_id)


def find_cycles(dependency_graph: Dict[str, List[str]]) -> List[List[str]]:
    """Every distinct cycle reachable in the graph, each reported once."""
    seen: Set[frozenset] = set()
    cycles: List[List[str]] = []
    for task_id in sorted(dependency_graph):
        cycle = detect_cycle(task_id, dependency_graph[task_id], dependency_graph)
        if not cycle:
            continue
        key = frozenset(cycle)
        if key in seen:
            continue
        seen.add(key)
        cycles.append(cycle)
    return cycles


def build_dependency_graph(tasks: List[Tuple[str, List[str]]]) -> Dict[str, List[str]]:
    """Build dependency graph from list of (task_id, depends_on) tuples."""
    return {task_id: list(deps or []) for task_id, deps in tasks}


__all__ = [
    "is_ready",
    "get_blocked_by_dependencies",
    "detect_cycle",
    "find_cycles",
    "build_dependency_graph",
]
