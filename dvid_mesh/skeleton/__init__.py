"""
SWC skeletons stored in DVID key-value instances.
"""

from .swc import Skeleton, decode_swc
from .source import SkeletonSource

__all__ = [
    'Skeleton',
    'decode_swc',
    'SkeletonSource'
]
