"""Disjoint-set (union-find) structure with path compression and union by rank."""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from typing import Generic, TypeVar

T = TypeVar("T", bound=Hashable)


class UnionFind(Generic[T]):
    """Groups hashable items into disjoint sets."""

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._parent: dict[T, T] = {}
        self._rank: dict[T, int] = {}
        for item in items:
            self.make_set(item)

    def make_set(self, item: T) -> None:
        """Add ``item`` as a singleton set unless it is already known."""
        if item not in self._parent:
            self._parent[item] = item
            self._rank[item] = 0

    def find(self, item: T) -> T:
        """Return the representative of the set holding ``item``.

        An unknown item is added as its own set and returned.
        """
        if item not in self._parent:
            self.make_set(item)
            return item

        root = item
        while self._parent[root] != root:
            root = self._parent[root]

        node = item
        while self._parent[node] != root:
            self._parent[node], node = root, self._parent[node]
        return root

    def union(self, a: T, b: T) -> bool:
        """Join the sets of ``a`` and ``b``.

        Returns True if two different sets were joined, False if they were
        already the same set.
        """
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return False

        rank_a = self._rank.get(root_a, 0)
        rank_b = self._rank.get(root_b, 0)
        if rank_a < rank_b:
            self._parent[root_a] = root_b
        elif rank_a > rank_b:
            self._parent[root_b] = root_a
        else:
            self._parent[root_b] = root_a
            self._rank[root_a] = rank_a + 1
        return True

    def connected(self, a: T, b: T) -> bool:
        """Tell whether ``a`` and ``b`` are in the same set."""
        return self.find(a) == self.find(b)

    def groups(self) -> dict[T, list[T]]:
        """Map each representative to the members of its set."""
        result: dict[T, list[T]] = {}
        for item in list(self._parent):
            result.setdefault(self.find(item), []).append(item)
        return result

    def __len__(self) -> int:
        return len(self._parent)

    def __contains__(self, item: object) -> bool:
        return item in self._parent


def from_ids(ids: Iterable[str]) -> UnionFind[str]:
    """Create a union-find with one singleton set per identifier."""
    return UnionFind(ids)