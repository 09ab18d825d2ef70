"""
dvid-mesh - fetch, decode and reassemble meshes, skeletons and annotations
from a DVID server.

Mesh fragments may be split across a merge graph of ``.merge`` indirection
documents; ``FragmentAssembler`` resolves the graph, decodes every ``.ngmesh``
leaf and returns one vertex/index buffer pair per fragment.
"""

from .client import DVIDClient
from .core import CancellationToken, Config
from .mesh import FragmentAssembler, MergedGeometry, MergeGraphResolver

__version__ = "1.0.0"

__all__ = [
    'DVIDClient',
    'CancellationToken',
    'Config',
    'FragmentAssembler',
    'MergedGeometry',
    'MergeGraphResolver'
]
