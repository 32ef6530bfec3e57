import pytest

from tracematch.union_find import UnionFind, from_ids


def test_documented_example():
    uf = UnionFind()
    for item in (1, 2, 3):
        uf.make_set(item)
    uf.union(1, 2)
    assert uf.find(1) == uf.find(2)
    assert uf.find(1) != uf.find(3)


def test_union_reports_whether_sets_changed():
    uf = UnionFind([1, 2])
    assert uf.union(1, 2) is True
    assert uf.union(2, 1) is False
    assert uf.union(1, 1) is False


def test_find_auto_creates():
    uf = UnionFind()
    assert "x" not in uf
    assert uf.find("x") == "x"
    assert "x" in uf
    assert len(uf) == 1


def test_make_set_is_idempotent():
    uf = UnionFind()
    uf.make_set("a")
    uf.make_set("b")
    uf.union("a", "b")
    uf.make_set("a")
    assert len(uf) == 2
    assert uf.connected("a", "b")


def test_transitive_connection():
    uf = UnionFind(range(6))
    uf.union(0, 1)
    uf.union(2, 3)
    uf.union(1, 3)
    assert uf.connected(0, 2)
    assert not uf.connected(0, 4)
    assert not uf.connected(4, 5)


def test_groups_partition_all_items():
    uf = UnionFind(range(10))
    for a, b in [(0, 1), (1, 2), (5, 6), (8, 9)]:
        uf.union(a, b)
    groups = uf.groups()
    members = sorted(m for group in groups.values() for m in group)
    assert members == list(range(10))
    sizes = sorted(len(g) for g in groups.values())
    assert sizes == [1, 1, 1, 2, 2, 3]
    for root, group in groups.items():
        assert root in group
        assert all(uf.find(m) == root for m in group)


def test_long_chain_compresses_to_one_root():
    uf = UnionFind(range(500))
    for i in range(499):
        uf.union(i, i + 1)
    roots = {uf.find(i) for i in range(500)}
    assert len(roots) == 1


def test_from_ids():
    uf = from_ids(["a", "b", "c"])
    assert len(uf) == 3
    assert "b" in uf
    uf.union("a", "c")
    assert uf.connected("a", "c")
    assert not uf.connected("a", "b")


@pytest.mark.parametrize("items", [[], ["only"]])
def test_small_structures(items):
    uf = from_ids(items)
    assert len(uf) == len(items)
    assert sum(len(g) for g in uf.groups().values()) == len(items)