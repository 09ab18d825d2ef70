"""
Mesh fragments: merge graph resolution, binary decoding and assembly.
"""

from .base import (
    FragmentKey,
    MergeRecord,
    TerminalLeaf,
    FragmentGeometry,
    MergedGeometry,
    BranchResult
)
from .decoder import decode_fragment, decode_merged, encode_fragment
from .resolver import MergeGraphResolver
from .assembler import FragmentAssembler

__all__ = [
    'FragmentKey',
    'MergeRecord',
    'TerminalLeaf',
    'FragmentGeometry',
    'MergedGeometry',
    'BranchResult',
    'decode_fragment',
    'decode_merged',
    'encode_fragment',
    'MergeGraphResolver',
    'FragmentAssembler'
]
