"""
Binary decoder for ``.ngmesh`` fragment leaves.

Leaf layout (all little-endian):

    uint32              vertex count N
    float32[N * 3]      vertex positions (x, y, z)
    uint32[...]         triangle vertex indices

Merging keeps every leaf's vertices distinct; shared vertices across leaves are
not deduplicated.
"""

import struct
from typing import Iterable, List, Sequence, Union

import numpy as np

from ..core.exceptions import DecodeMalformed
from ..core import metrics
from ..core.utils import get_logger, PerformanceTimer
from .base import FragmentGeometry, MergedGeometry, TerminalLeaf

logger = get_logger(__name__)

HEADER_FORMAT = '<I'
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
VERTEX_SIZE = 3 * 4  # 3 float32 per vertex
INDEX_SIZE = 4

Leaf = Union[TerminalLeaf, bytes, bytearray, memoryview]


def _leaf_bytes(leaf: Leaf) -> bytes:
    return leaf.data if isinstance(leaf, TerminalLeaf) else bytes(leaf)


def decode_fragment(leaf: Leaf, require_triangles: bool = True) -> FragmentGeometry:
    """
    Decode one terminal leaf.

    Args:
        leaf: TerminalLeaf or raw bytes
        require_triangles: Reject index streams whose length is not a multiple of 3

    Returns:
        FragmentGeometry with (N, 3) float32 positions and (M,) uint32 indices

    Raises:
        DecodeMalformed: Truncated buffer, partial index word, index count not
            a multiple of 3, or an index >= vertex count
    """
    data = _leaf_bytes(leaf)
    if len(data) < HEADER_SIZE:
        raise DecodeMalformed(f"Incomplete header: {len(data)} < {HEADER_SIZE} bytes")

    (num_vertices,) = struct.unpack_from(HEADER_FORMAT, data, 0)
    vertex_end = HEADER_SIZE + num_vertices * VERTEX_SIZE
    if len(data) < vertex_end:
        raise DecodeMalformed(
            f"Truncated vertex data: header declares {num_vertices} vertices "
            f"({vertex_end} bytes) but buffer holds {len(data)}"
        )

    index_bytes = len(data) - vertex_end
    if index_bytes % INDEX_SIZE:
        raise DecodeMalformed(f"Index stream of {index_bytes} bytes is not whole uint32 words")

    # Copy out of the response buffer so callers own writable arrays
    positions = np.frombuffer(
        data, dtype='<f4', count=num_vertices * 3, offset=HEADER_SIZE
    ).reshape(-1, 3).astype(np.float32)
    indices = np.frombuffer(
        data, dtype='<u4', count=index_bytes // INDEX_SIZE, offset=vertex_end
    ).astype(np.uint32)

    if require_triangles and indices.size % 3:
        raise DecodeMalformed(f"Index count {indices.size} is not a multiple of 3")
    if indices.size and int(indices.max()) >= num_vertices:
        raise DecodeMalformed(
            f"Index {int(indices.max())} out of range for {num_vertices} vertices"
        )

    return FragmentGeometry(positions=positions, indices=indices)


def decode_merged(leaves: Sequence[Leaf], require_triangles: bool = False) -> MergedGeometry:
    """
    Decode and concatenate leaves in order.

    Indices of leaf ``i`` are shifted by the total vertex count of leaves
    ``0..i-1`` so the result is one vertex buffer with one index buffer
    referencing it.

    Args:
        leaves: Leaves in merge order
        require_triangles: Apply the multiple-of-3 check to each leaf

    Returns:
        MergedGeometry (empty when ``leaves`` is empty)

    Raises:
        DecodeMalformed: If any leaf fails to decode
    """
    with PerformanceTimer("decode_merged", logger) as timer:
        positions: List[np.ndarray] = []
        indices: List[np.ndarray] = []
        offsets: List[int] = []
        keys: List[str] = []

        offset = 0
        for position, leaf in enumerate(leaves):
            key = leaf.key if isinstance(leaf, TerminalLeaf) else str(position)
            try:
                fragment = decode_fragment(leaf, require_triangles=require_triangles)
            except DecodeMalformed as e:
                raise DecodeMalformed(f"Leaf {key}: {e}") from e

            positions.append(fragment.positions)
            indices.append(fragment.indices.astype(np.uint64) + offset)
            offsets.append(offset)
            keys.append(key)
            offset += fragment.num_vertices

        if offset > np.iinfo(np.uint32).max:
            raise DecodeMalformed(f"Merged vertex count {offset} exceeds uint32 index range")

        if positions:
            merged = MergedGeometry(
                positions=np.concatenate(positions, axis=0),
                indices=np.concatenate(indices).astype(np.uint32),
                vertex_offsets=offsets,
                keys=keys,
            )
        else:
            merged = MergedGeometry.empty()

    metrics.decode_time.observe(timer.elapsed_seconds)
    logger.debug(
        f"Merged {len(offsets)} leaves: {merged.num_vertices} vertices, "
        f"{merged.indices.size} indices"
    )
    return merged


def encode_fragment(positions: Union[np.ndarray, Iterable], indices: Union[np.ndarray, Iterable]) -> bytes:
    """
    Encode a leaf in the layout ``decode_fragment`` reads.

    Args:
        positions: (N, 3) vertex positions
        indices: Flat vertex indices

    Returns:
        Leaf bytes
    """
    positions = np.asarray(positions, dtype='<f4').reshape(-1, 3)
    indices = np.asarray(indices, dtype='<u4').reshape(-1)
    return (
        struct.pack(HEADER_FORMAT, positions.shape[0])
        + positions.tobytes()
        + indices.tobytes()
    )
