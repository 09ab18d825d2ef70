"""
Volume chunk requests with pluggable decoders.
"""

from .source import (
    VolumeChunkEncoding,
    VolumeChunkSource,
    volume_chunk_path,
    JPEG_BLOCK_HEADER_SIZE
)

__all__ = [
    'VolumeChunkEncoding',
    'VolumeChunkSource',
    'volume_chunk_path',
    'JPEG_BLOCK_HEADER_SIZE'
]
