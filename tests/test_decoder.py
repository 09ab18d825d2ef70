import struct

import numpy as np
import pytest

from dvid_mesh.core.exceptions import DecodeMalformed
from dvid_mesh.mesh.base import MergedGeometry, TerminalLeaf
from dvid_mesh.mesh.decoder import decode_fragment, decode_merged, encode_fragment

from conftest import leaf_bytes


TRIANGLE = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]


def test_decode_single_triangle():
    data = (
        bytes([3, 0, 0, 0])
        + np.asarray(TRIANGLE, dtype="<f4").tobytes()
        + bytes([0, 0, 0, 0, 1, 0, 0, 0, 2, 0, 0, 0])
    )
    fragment = decode_fragment(data)

    assert fragment.num_vertices == 3
    assert fragment.num_triangles == 1
    assert fragment.indices.tolist() == [0, 1, 2]
    assert fragment.positions.dtype == np.float32
    assert fragment.indices.dtype == np.uint32
    np.testing.assert_array_equal(fragment.positions, np.asarray(TRIANGLE, dtype=np.float32))


def test_merged_indices_are_offset_by_preceding_vertices():
    first = TerminalLeaf("a", leaf_bytes(TRIANGLE, [0, 1, 2]))
    second = TerminalLeaf("b", leaf_bytes([[5, 5, 5], [6, 6, 6]], [0, 1]))

    merged = decode_merged([first, second])

    assert merged.num_vertices == 5
    assert merged.indices.tolist() == [0, 1, 2, 3, 4]
    assert merged.vertex_offsets == [0, 3]
    assert merged.keys == ["a", "b"]


def test_every_leaf_index_stays_within_its_vertex_range():
    rng = np.random.default_rng(7)
    counts = [4, 1, 9, 3]
    leaves = []
    for i, count in enumerate(counts):
        positions = rng.random((count, 3), dtype=np.float32)
        indices = rng.integers(0, count, size=6)
        leaves.append(TerminalLeaf(str(i), leaf_bytes(positions, indices)))

    merged = decode_merged(leaves)

    offset = 0
    for i, count in enumerate(counts):
        contribution = merged.indices[i * 6:(i + 1) * 6]
        assert merged.vertex_offsets[i] == offset
        assert contribution.min() >= offset
        assert contribution.max() < offset + count
        offset += count
    assert merged.num_vertices == sum(counts)


def test_encode_then_decode_reproduces_buffers():
    positions = np.arange(12, dtype=np.float32).reshape(4, 3)
    indices = [0, 1, 2, 2, 3, 0]

    fragment = decode_fragment(encode_fragment(positions, indices))

    np.testing.assert_array_equal(fragment.positions, positions)
    assert fragment.indices.tolist() == indices


def test_decoded_arrays_are_writable_copies():
    fragment = decode_fragment(leaf_bytes(TRIANGLE, [0, 1, 2]))
    fragment.positions[0, 0] = 42.0
    fragment.indices[0] = 1


def test_zero_vertex_leaf():
    fragment = decode_fragment(struct.pack("<I", 0))
    assert fragment.num_vertices == 0
    assert fragment.positions.shape == (0, 3)
    assert fragment.indices.size == 0


def test_no_leaves_gives_empty_geometry():
    merged = decode_merged([])
    assert isinstance(merged, MergedGeometry)
    assert merged.num_vertices == 0
    assert merged.num_leaves == 0
    assert merged.positions.shape == (0, 3)


@pytest.mark.parametrize("data", [
    b"",
    b"\x03\x00",
])
def test_incomplete_header(data):
    with pytest.raises(DecodeMalformed, match="header"):
        decode_fragment(data)


def test_truncated_vertex_data():
    data = struct.pack("<I", 3) + np.zeros(8, dtype="<f4").tobytes()
    with pytest.raises(DecodeMalformed, match="Truncated"):
        decode_fragment(data)


def test_partial_index_word():
    data = leaf_bytes(TRIANGLE, [0, 1, 2]) + b"\x00\x00"
    with pytest.raises(DecodeMalformed, match="uint32"):
        decode_fragment(data)


def test_index_count_must_be_whole_triangles_by_default():
    data = leaf_bytes(TRIANGLE, [0, 1])
    with pytest.raises(DecodeMalformed, match="multiple of 3"):
        decode_fragment(data)
    assert decode_fragment(data, require_triangles=False).indices.tolist() == [0, 1]


def test_index_out_of_range():
    with pytest.raises(DecodeMalformed, match="out of range"):
        decode_fragment(leaf_bytes(TRIANGLE, [0, 1, 3]))


def test_merged_error_names_the_leaf():
    good = TerminalLeaf("good", leaf_bytes(TRIANGLE, [0, 1, 2]))
    bad = TerminalLeaf("bad", b"\x01")
    with pytest.raises(DecodeMalformed, match="Leaf bad"):
        decode_merged([good, bad])
