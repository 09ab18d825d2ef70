"""
Volume chunk download.

Chunk decoding (JPEG, compressed segmentation) is done by a caller-supplied
decoder; this module only builds the request path and strips the block header
DVID prepends to JPEG subvolume blocks.
"""

from enum import Enum
from typing import Any, Callable, Optional, Sequence

from ..core.cancellation import CancellationToken
from ..core.utils import get_logger
from ..external.api import DVIDInstance
from ..external.transport import CredentialedTransport, HttpCall, ResponseType

logger = get_logger(__name__)

JPEG_BLOCK_HEADER_SIZE = 16

ChunkDecoder = Callable[[bytes], Any]


class VolumeChunkEncoding(Enum):
    JPEG = "jpeg"
    RAW = "raw"
    COMPRESSED_SEGMENTATION = "compressed_segmentation"
    COMPRESSED_SEGMENTATIONARRAY = "compressed_segmentationarray"


def _triple(values: Sequence[int]) -> str:
    return f"{values[0]}_{values[1]}_{values[2]}"


def volume_chunk_path(data_instance: str, encoding: VolumeChunkEncoding,
                      chunk_position: Sequence[int], chunk_data_size: Sequence[int],
                      data_scale: Optional[int] = None) -> str:
    """
    Node-relative path of one volume chunk.

    Args:
        data_instance: Name of the image or labels instance
        encoding: How the chunk is requested and encoded
        chunk_position: Chunk corner in voxels
        chunk_data_size: Chunk extent in voxels
        data_scale: Scale level (compressed segmentation arrays only)

    Returns:
        Path beginning with ``/<data_instance>/``
    """
    size = _triple(chunk_data_size)
    position = _triple(chunk_position)
    if encoding is VolumeChunkEncoding.JPEG:
        return f"/{data_instance}/subvolblocks/{size}/{position}"
    if encoding is VolumeChunkEncoding.RAW:
        return f"/{data_instance}/raw/0_1_2/{size}/{position}/jpeg"
    if encoding is VolumeChunkEncoding.COMPRESSED_SEGMENTATIONARRAY:
        return (f"/{data_instance}/raw/0_1_2/{size}/{position}"
                f"?compression=googlegzip&scale={data_scale if data_scale is not None else 0}")
    return f"/{data_instance}/raw/0_1_2/{size}/{position}?compression=googlegzip"


class VolumeChunkSource:
    """Fetches chunks of one volume instance and hands them to a decoder."""

    def __init__(self, transport: CredentialedTransport, instance: DVIDInstance,
                 data_instance: str, encoding: VolumeChunkEncoding,
                 decoder: ChunkDecoder, data_scale: Optional[int] = None):
        self.transport = transport
        self.instance = instance
        self.data_instance = data_instance
        self.encoding = encoding
        self.decoder = decoder
        self.data_scale = data_scale

    def chunk_url(self, chunk_position: Sequence[int], chunk_data_size: Sequence[int]) -> str:
        return self.instance.get_node_api_url(volume_chunk_path(
            self.data_instance, self.encoding, chunk_position, chunk_data_size, self.data_scale
        ))

    async def download(self, chunk_position: Sequence[int], chunk_data_size: Sequence[int],
                       cancellation: Optional[CancellationToken] = None) -> Any:
        """
        Download one chunk and return whatever the decoder makes of it.
        """
        data = await self.transport.execute(
            HttpCall.get(self.chunk_url(chunk_position, chunk_data_size), ResponseType.BINARY),
            cancellation
        )
        if self.encoding is VolumeChunkEncoding.JPEG:
            data = data[JPEG_BLOCK_HEADER_SIZE:]
        return self.decoder(data)
