"""
Sponsor and binary tree traversal.

Trees arrive as child -> parent maps built from stored rows. Corrupt data
can produce cycles or parents that do not exist, so every walk carries a
visited set and stops with a TreeIntegrityError instead of looping.
"""

from collections.abc import Collection, Iterator, Mapping

from app.models.enums import Leg
from app.utils.exceptions import TreeIntegrityError


def find_broken_chains(
    parent_of: Mapping[int, int],
    members: Collection[int],
    label: str,
) -> dict[int, str]:
    """
    Find members whose upward chain never reaches a root.

    A chain is broken when it loops back on itself or points at a parent
    that is not a member. Everyone below a broken link is broken too.

    Args:
        parent_of: child -> parent
        members: Known member IDs
        label: Tree name used in reasons ("sponsor", "binary")

    Returns:
        Mapping of user ID to reason, for broken members only
    """
    state: dict[int, str | None] = {}

    for start in sorted(members):
        if start in state:
            continue

        path: list[int] = []
        on_path: set[int] = set()
        node = start
        reason: str | None = None

        while True:
            if node in state:
                reason = state[node]
                break
            if node in on_path:
                reason = f"{label} cycle through user {node}"
                break
            if node not in members:
                reason = f"{label} parent {node} does not exist"
                break
            path.append(node)
            on_path.add(node)
            parent = parent_of.get(node)
            if parent is None:
                break
            node = parent

        for visited in path:
            state[visited] = reason

    return {user_id: reason for user_id, reason in state.items() if reason}


def sponsor_chain(
    sponsors: Mapping[int, int],
    user_id: int,
    depth: int | None = None,
) -> Iterator[tuple[int, int]]:
    """
    Walk the sponsor chain upward.

    Args:
        sponsors: referee -> sponsor
        user_id: Starting member (not yielded)
        depth: Max levels to walk (None = to the root)

    Yields:
        (level, sponsor_id), level starting at 1

    Raises:
        TreeIntegrityError: If the chain revisits a member
    """
    visited = {user_id}
    node = user_id
    level = 0
    while depth is None or level < depth:
        sponsor = sponsors.get(node)
        if sponsor is None:
            return
        if sponsor in visited:
            raise TreeIntegrityError(user_id, f"sponsor cycle through user {sponsor}")
        visited.add(sponsor)
        level += 1
        yield level, sponsor
        node = sponsor


def binary_ancestors(
    binary_parents: Mapping[int, tuple[int, Leg]],
    user_id: int,
) -> Iterator[tuple[int, Leg]]:
    """
    Walk the binary tree upward.

    Args:
        binary_parents: child -> (parent, leg the child sits on)
        user_id: Starting member (not yielded)

    Yields:
        (ancestor_id, leg of the ancestor the member descends through)

    Raises:
        TreeIntegrityError: If the walk revisits a node
    """
    visited = {user_id}
    node = user_id
    while True:
        link = binary_parents.get(node)
        if link is None:
            return
        parent, leg = link
        if parent in visited:
            raise TreeIntegrityError(user_id, f"binary cycle through user {parent}")
        visited.add(parent)
        yield parent, leg
        node = parent
