"""Cycle detection over the dependency graph."""

from typing import Iterable, Mapping


def find_cycles(graph: Mapping[str, Iterable[str]]) -> list[list[str]]:
    """Find dependency cycles with an iterative depth-first search.

    Every node not yet visited starts a new traversal, so disconnected
    components are all covered. Edges pointing at IDs that aren't keys of
    `graph` are followed as nodes without outgoing edges.

    Each cycle is reported as the path from the first node on the stack that
    was revisited through the current node, closed by repeating the first
    node: A -> B -> C -> A yields ["A", "B", "C", "A"].

    Returns:
        List of cycles; empty if the graph is acyclic
    """
    cycles: list[list[str]] = []
    visited: set[str] = set()

    for root in graph:
        if root in visited:
            continue

        # Stack frames: (node, iterator over its outgoing edges)
        path: list[str] = [root]
        on_path: set[str] = {root}
        frames = [(root, iter(graph.get(root, ())))]
        visited.add(root)

        while frames:
            node, edges = frames[-1]
            advanced = False
            for dep in edges:
                if dep not in visited:
                    visited.add(dep)
                    path.append(dep)
                    on_path.add(dep)
                    frames.append((dep, iter(graph.get(dep, ()))))
                    advanced = True
                    break
                if dep in on_path:
                    start = path.index(dep)
                    cycles.append(path[start:] + [dep])
            if not advanced:
                frames.pop()
                path.pop()
                on_path.discard(node)

    return cycles
