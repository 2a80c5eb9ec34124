"""
Merkle tree for settlement commitments.

Uses SHA-256. Leaves are sorted before tree construction so the root
does not depend on insertion order. A level with an odd node count pairs
the last node with itself.

Settlement leaves are hashed from canonical JSON (sorted keys, no
whitespace, money as 2-decimal strings).
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from app.utils.money import format_money

HASH_PREFIX = "sha256:"


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf."""
    leaf_hash: str
    path: list[tuple[str, str]]  # List of (sibling_hash, position: "L" | "R")
    root: str

    def to_json(self) -> list[list[str]]:
        """Path in a JSON-storable form."""
        return [[sibling, position] for sibling, position in self.path]


class MerkleTree:
    """A deterministic Merkle tree using SHA-256.

    Usage:
        tree = MerkleTree()
        tree.add_leaf("sha256:abc123...")
        tree.add_leaf("sha256:def456...")
        root = tree.compute_root()
        proof = tree.inclusion_proof("sha256:abc123...")
    """

    def __init__(self) -> None:
        self._leaves: list[str] = []
        self._tree: list[list[str]] = []
        self._computed = False

    def add_leaf(self, leaf_hash: str) -> None:
        """Add a leaf hash. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        self._leaves.append(_with_prefix(leaf_hash))

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    def compute_root(self) -> str:
        """Compute the Merkle root.

        If there are no leaves, returns the hash of the empty string.
        """
        if not self._leaves:
            self._computed = True
            self._tree = [[]]
            return _with_prefix(_sha256_hex(b""))

        current_level = sorted(self._leaves)
        self._tree = [current_level]

        while len(current_level) > 1:
            next_level: list[str] = []
            for i in range(0, len(current_level), 2):
                left = current_level[i]
                right = current_level[i + 1] if i + 1 < len(current_level) else left
                next_level.append(_with_prefix(_hash_pair(left, right)))
            self._tree.append(next_level)
            current_level = next_level

        self._computed = True
        return current_level[0]

    def inclusion_proof(self, leaf_hash: str) -> MerkleProof | None:
        """Generate an inclusion proof for a leaf.

        Returns None if the leaf is not in the tree.
        Must call compute_root first.
        """
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")

        leaf_hash = _with_prefix(leaf_hash)
        sorted_leaves = self._tree[0]
        if leaf_hash not in sorted_leaves:
            return None

        path: list[tuple[str, str]] = []
        current_idx = sorted_leaves.index(leaf_hash)
        for level in self._tree[:-1]:
            if current_idx % 2 == 0:
                sibling_idx = current_idx + 1
                if sibling_idx < len(level):
                    path.append((level[sibling_idx], "R"))
                else:
                    path.append((level[current_idx], "R"))  # Duplicate
            else:
                path.append((level[current_idx - 1], "L"))
            current_idx //= 2

        return MerkleProof(leaf_hash=leaf_hash, path=path, root=self._tree[-1][0])


def verify_proof(
    leaf_hash: str,
    path: list[tuple[str, str]] | list[list[str]],
    root: str,
) -> bool:
    """
    Check that a leaf is included under a root.

    Args:
        leaf_hash: Hash of the leaf
        path: (sibling_hash, "L"|"R") pairs from leaf to root
        root: Expected root

    Returns:
        True if folding the path reproduces the root
    """
    current = _with_prefix(leaf_hash)
    for sibling, position in path:
        if position == "L":
            current = _with_prefix(_hash_pair(sibling, current))
        elif position == "R":
            current = _with_prefix(_hash_pair(current, sibling))
        else:
            return False
    return current == _with_prefix(root)


def settlement_leaf(
    user_id: int,
    week_start: date,
    direct: Decimal,
    binary: Decimal,
    override: Decimal,
    total: Decimal,
) -> dict[str, Any]:
    """Canonical leaf content for one weekly settlement."""
    return {
        "userId": user_id,
        "weekStart": week_start.isoformat(),
        "direct": format_money(direct),
        "binary": format_money(binary),
        "override": format_money(override),
        "total": format_money(total),
    }


def hash_leaf(leaf: dict[str, Any]) -> str:
    """Hash canonical JSON of a leaf."""
    payload = json.dumps(leaf, sort_keys=True, separators=(",", ":"))
    return _with_prefix(_sha256_hex(payload.encode("utf-8")))


def _sha256_hex(data: bytes) -> str:
    """Compute SHA-256 hex digest."""
    return hashlib.sha256(data).hexdigest()


def _with_prefix(value: str) -> str:
    return value if value.startswith(HASH_PREFIX) else f"{HASH_PREFIX}{value}"


def _hash_pair(left: str, right: str) -> str:
    """Hash two nodes together. Strips sha256: prefix if present."""
    left_clean = left.removeprefix(HASH_PREFIX)
    right_clean = right.removeprefix(HASH_PREFIX)
    combined = f"{left_clean}{right_clean}".encode("utf-8")
    return _sha256_hex(combined)
