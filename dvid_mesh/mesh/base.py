"""
Data types for merge-graph mesh fragments.

Merge documents are validated into ``MergeRecord`` at the boundary; everything
past the boundary works with typed values only.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

import numpy as np
from pydantic import BaseModel, StrictInt, StrictStr, ValidationError, field_validator

from ..core.exceptions import DecodeMalformed

FragmentKey = str


class MergeRecord(BaseModel):
    """
    Contents of a ``<key>.merge`` document.

    Attributes:
        owner_key: Key whose merge document this is
        keys: Child keys in server order
        master_key: Child that names the owner's own terminal leaf
    """
    owner_key: str
    keys: List[Union[StrictStr, StrictInt]]
    master_key: str

    model_config = {"frozen": True}

    @field_validator('keys')
    def normalize_keys(cls, v):
        """Body ids may arrive as JSON numbers; keys are always strings."""
        return [str(k) for k in v]

    @field_validator('owner_key', 'master_key', mode='before')
    def normalize_key(cls, v):
        if isinstance(v, bool) or not isinstance(v, (str, int)):
            raise ValueError(f"Fragment key must be a string or integer, got {v!r}")
        return str(v)

    @classmethod
    def parse(cls, owner_key: str, document: Any) -> "MergeRecord":
        """
        Validate a merge document.

        Accepts either a bare JSON array of child keys (the owner is the master)
        or an object ``{"keys" | "children": [...], "master": key}``.

        Args:
            owner_key: Key the document was fetched for
            document: Parsed JSON body

        Returns:
            Validated MergeRecord

        Raises:
            DecodeMalformed: If the document has any other shape
        """
        if isinstance(document, list):
            data = {"owner_key": owner_key, "keys": document, "master_key": owner_key}
        elif isinstance(document, dict):
            keys = document.get("keys")
            if keys is None:
                keys = document.get("children")
            data = {
                "owner_key": owner_key,
                "keys": keys,
                "master_key": document.get("master", owner_key),
            }
        else:
            raise DecodeMalformed(
                f"Merge document for {owner_key} must be a list or object, "
                f"got {type(document).__name__}"
            )

        try:
            return cls(**data)
        except ValidationError as e:
            raise DecodeMalformed(f"Invalid merge document for {owner_key}: {e}") from e


@dataclass(frozen=True)
class TerminalLeaf:
    """Raw bytes of one ``<key>.<leaf_suffix>`` blob."""
    key: FragmentKey
    data: bytes

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class FragmentGeometry:
    """
    Decoded contents of a single leaf.

    Attributes:
        positions: (N, 3) float32 vertex positions
        indices: (M,) uint32 triangle vertex indices into ``positions``
    """
    positions: np.ndarray
    indices: np.ndarray

    @property
    def num_vertices(self) -> int:
        return int(self.positions.shape[0])

    @property
    def num_triangles(self) -> int:
        return int(self.indices.shape[0]) // 3


@dataclass
class MergedGeometry(FragmentGeometry):
    """
    Concatenation of several leaves into one vertex/index buffer pair.

    Attributes:
        vertex_offsets: Index of each leaf's first vertex in ``positions``
        keys: Keys of the contributing leaves, in merge order
    """
    vertex_offsets: List[int] = field(default_factory=list)
    keys: List[FragmentKey] = field(default_factory=list)

    @property
    def num_leaves(self) -> int:
        return len(self.vertex_offsets)

    @classmethod
    def empty(cls) -> "MergedGeometry":
        return cls(
            positions=np.zeros((0, 3), dtype=np.float32),
            indices=np.zeros((0,), dtype=np.uint32),
        )


@dataclass
class BranchResult:
    """
    Outcome of resolving one merge graph branch.

    A failed branch carries no leaves and the error that stopped it; it is
    reported, never raised, so sibling branches keep going.
    """
    key: FragmentKey
    leaves: List[TerminalLeaf] = field(default_factory=list)
    error: Optional[BaseException] = None
    failures: List["BranchResult"] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def all_failures(self) -> List["BranchResult"]:
        """This branch's failure (if any) plus every nested failed branch."""
        found = [self] if not self.ok else []
        for child in self.failures:
            found.extend(child.all_failures())
        return found
