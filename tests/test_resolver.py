import asyncio

import pytest

from dvid_mesh.core.cancellation import CancellationToken
from dvid_mesh.core.exceptions import (
    Cancelled,
    DecodeMalformed,
    ResolveBranchFailure,
    TransportFatal,
)
from dvid_mesh.mesh.base import MergeRecord
from dvid_mesh.mesh.resolver import MergeGraphResolver

from conftest import BASE, leaf_bytes, make_transport


def merge(key):
    return f"{BASE}/{key}.merge"


def leaf(key):
    return f"{BASE}/{key}.ngmesh"


def add_leaf(session, key, n=3):
    positions = [[float(i), 0.0, 0.0] for i in range(n)]
    session.routes[leaf(key)] = (200, leaf_bytes(positions, []))


def make_resolver(session, **kwargs):
    return MergeGraphResolver(make_transport(session), **kwargs)


def keys_of(leaves):
    return [l.key for l in leaves]


def test_master_only_returns_its_own_leaf(session):
    add_leaf(session, "10")
    resolver = make_resolver(session)

    leaves = asyncio.run(resolver.resolve(BASE, "10", "10"))

    assert keys_of(leaves) == ["10"]
    assert leaves[0].data == session.routes[leaf("10")][1]
    assert session.urls() == [leaf("10")]


def test_master_leaf_failure_propagates(session):
    resolver = make_resolver(session)
    with pytest.raises(TransportFatal):
        asyncio.run(resolver.resolve(BASE, "10", "10"))


def test_children_resolve_depth_first_in_declared_order(session):
    session.routes[merge("2")] = (200, ["21", "22", "2"])
    for key in ["1", "21", "22", "2", "10"]:
        add_leaf(session, key)
    record = MergeRecord.parse("10", ["1", "2", "10"])
    resolver = make_resolver(session)

    leaves = asyncio.run(resolver.resolve_record(BASE, record))

    assert keys_of(leaves) == ["1", "21", "22", "2", "10"]


def test_non_master_key_is_resolved_as_branch(session):
    session.routes[merge("5")] = (200, ["6", "5"])
    add_leaf(session, "6")
    add_leaf(session, "5")
    resolver = make_resolver(session)

    leaves = asyncio.run(resolver.resolve(BASE, "5", "10"))

    assert keys_of(leaves) == ["6", "5"]


def test_failed_branch_does_not_stop_siblings(session):
    add_leaf(session, "1")
    add_leaf(session, "3")
    add_leaf(session, "10")
    record = MergeRecord.parse("10", ["1", "2", "3", "10"])
    resolver = make_resolver(session)

    result = asyncio.run(resolver.resolve_record_detailed(BASE, record))

    assert keys_of(result.leaves) == ["1", "3", "10"]
    failures = result.all_failures()
    assert [f.key for f in failures] == ["2"]
    assert isinstance(failures[0].error, ResolveBranchFailure)


def test_missing_merge_document_falls_back_to_leaf(session):
    add_leaf(session, "7")
    resolver = make_resolver(session)

    leaves = asyncio.run(resolver.resolve(BASE, "7", "10"))

    assert keys_of(leaves) == ["7"]
    assert session.urls() == [merge("7"), leaf("7")]


def test_malformed_merge_document_falls_back_to_leaf(session):
    session.routes[merge("7")] = (200, "just a string")
    add_leaf(session, "7")
    resolver = make_resolver(session)

    assert keys_of(asyncio.run(resolver.resolve(BASE, "7", "10"))) == ["7"]


def test_cycle_fails_only_the_repeating_branch(session):
    session.routes[merge("1")] = (200, ["2", "1"])
    session.routes[merge("2")] = (200, ["1", "2"])
    for key in ["1", "2", "root"]:
        add_leaf(session, key)
    record = MergeRecord.parse("root", ["1", "root"])
    resolver = make_resolver(session)

    result = asyncio.run(resolver.resolve_record_detailed(BASE, record))

    assert keys_of(result.leaves) == ["2", "1", "root"]
    failures = result.all_failures()
    assert len(failures) == 1
    assert "cycle" in str(failures[0].error)


def test_depth_limit(session):
    session.routes[merge("a")] = (200, ["b", "a"])
    session.routes[merge("b")] = (200, ["c", "b"])
    for key in ["a", "b", "c", "root"]:
        add_leaf(session, key)
    record = MergeRecord.parse("root", ["a", "root"])
    resolver = make_resolver(session, max_depth=2)

    result = asyncio.run(resolver.resolve_record_detailed(BASE, record))

    assert keys_of(result.leaves) == ["b", "a", "root"]
    assert [f.key for f in result.all_failures()] == ["c"]
    assert merge("c") not in session.urls()


def test_shared_subgraph_is_not_a_cycle(session):
    session.routes[merge("a")] = (200, ["s", "a"])
    session.routes[merge("b")] = (200, ["s", "b"])
    for key in ["a", "b", "s", "root"]:
        add_leaf(session, key)
    record = MergeRecord.parse("root", ["a", "b", "root"])
    resolver = make_resolver(session)

    leaves = asyncio.run(resolver.resolve_record(BASE, record))

    assert keys_of(leaves) == ["s", "a", "s", "b", "root"]


def test_cancellation_propagates(session):
    add_leaf(session, "1")
    record = MergeRecord.parse("10", ["1", "10"])
    token = CancellationToken()
    token.cancel()
    resolver = make_resolver(session)

    with pytest.raises(Cancelled):
        asyncio.run(resolver.resolve_record(BASE, record, token))
    assert session.calls == []


def test_custom_suffixes(session):
    session.routes[f"{BASE}/9.mesh"] = (200, leaf_bytes([[0, 0, 0]], []))
    resolver = make_resolver(session, leaf_suffix="mesh", merge_suffix="children")

    leaves = asyncio.run(resolver.resolve(BASE, "9", "1"))

    assert keys_of(leaves) == ["9"]
    assert session.urls() == [f"{BASE}/9.children", f"{BASE}/9.mesh"]


class TestMergeRecord:

    def test_list_document_makes_owner_the_master(self):
        record = MergeRecord.parse("10", [1, "2", 10])
        assert record.keys == ["1", "2", "10"]
        assert record.master_key == "10"

    def test_object_document(self):
        record = MergeRecord.parse("10", {"keys": ["1", "2"], "master": "2"})
        assert record.keys == ["1", "2"]
        assert record.master_key == "2"

        record = MergeRecord.parse("10", {"children": ["3"]})
        assert record.keys == ["3"]
        assert record.master_key == "10"

    def test_null_keys_fall_back_to_children(self):
        record = MergeRecord.parse("10", {"keys": None, "children": ["3", 4]})
        assert record.keys == ["3", "4"]

    @pytest.mark.parametrize("document", [
        "1,2,3",
        42,
        None,
        {"master": "1"},
        [1.5],
        [True],
        [["nested"]],
    ])
    def test_rejects_other_shapes(self, document):
        with pytest.raises(DecodeMalformed):
            MergeRecord.parse("10", document)
