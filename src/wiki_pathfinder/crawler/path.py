from typing import List, Mapping, Optional

from wiki_pathfinder.exceptions import InvariantViolation


def build_path(visited: Mapping[str, Optional[str]], target: str) -> List[str]:
    """
    Walk parent links from `target` back to the start title (the one whose
    parent is None) and return the titles in start -> target order.

    Raises:
        InvariantViolation: if the target was never visited, a parent is
            missing from the map, or the parent links loop.
    """
    if target not in visited:
        raise InvariantViolation(f"Cannot build a path to '{target}': it was never visited")

    path: List[str] = []
    current: Optional[str] = target
    while current is not None:
        if len(path) > len(visited):
            raise InvariantViolation(f"Parent links starting at '{target}' contain a cycle")
        if current not in visited:
            raise InvariantViolation(f"Parent '{current}' on the path to '{target}' was never visited")
        path.append(current)
        current = visited[current]

    path.reverse()
    return path
