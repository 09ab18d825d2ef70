"""
SWC skeleton text decoding.

Each non-comment line is ``id type x y z radius parent``; a parent of -1 marks
a root. Node ids need not be contiguous or sorted.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from ..core.exceptions import DecodeMalformed


@dataclass
class Skeleton:
    """
    Attributes:
        node_ids: (N,) SWC node ids in file order
        positions: (N, 3) float32 node positions
        radii: (N,) float32 node radii
        edges: (E, 2) uint32 pairs of (child, parent) row indices
    """
    node_ids: np.ndarray
    positions: np.ndarray
    radii: np.ndarray
    edges: np.ndarray

    @property
    def num_nodes(self) -> int:
        return int(self.positions.shape[0])


def decode_swc(text: str) -> Skeleton:
    """
    Parse SWC text into arrays.

    Args:
        text: SWC file contents

    Returns:
        Skeleton with one row per node

    Raises:
        DecodeMalformed: On short lines, non-numeric fields, duplicate node ids
            or parents that are never defined
    """
    rows: List[Tuple[int, float, float, float, float, int]] = []
    for line_number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        fields = line.split()
        if len(fields) < 7:
            raise DecodeMalformed(f"SWC line {line_number} has {len(fields)} fields, expected 7")
        try:
            rows.append((
                int(fields[0]),
                float(fields[2]), float(fields[3]), float(fields[4]),
                float(fields[5]),
                int(fields[6]),
            ))
        except ValueError as e:
            raise DecodeMalformed(f"SWC line {line_number}: {e}") from e

    index_of: Dict[int, int] = {}
    for row_index, row in enumerate(rows):
        if row[0] in index_of:
            raise DecodeMalformed(f"Duplicate SWC node id {row[0]}")
        index_of[row[0]] = row_index

    edges = []
    for row_index, row in enumerate(rows):
        parent = row[5]
        if parent == -1:
            continue
        if parent not in index_of:
            raise DecodeMalformed(f"SWC node {row[0]} references missing parent {parent}")
        edges.append((row_index, index_of[parent]))

    if rows:
        table = np.array([r[1:5] for r in rows], dtype=np.float32)
        positions = table[:, :3].copy()
        radii = table[:, 3].copy()
    else:
        positions = np.zeros((0, 3), dtype=np.float32)
        radii = np.zeros((0,), dtype=np.float32)

    return Skeleton(
        node_ids=np.array([r[0] for r in rows], dtype=np.int64),
        positions=positions,
        radii=radii,
        edges=np.array(edges, dtype=np.uint32).reshape(-1, 2),
    )
