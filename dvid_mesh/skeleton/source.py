"""
Skeleton download from a DVID key-value instance.
"""

from typing import Optional, Union

from ..core.cancellation import CancellationToken
from ..core.utils import get_logger
from ..external.transport import CredentialedTransport, HttpCall, ResponseType
from .swc import Skeleton, decode_swc

logger = get_logger(__name__)


class SkeletonSource:
    """Fetches ``<body>_swc`` keys and decodes them."""

    def __init__(self, transport: CredentialedTransport, key_base_url: str):
        self.transport = transport
        self.key_base_url = key_base_url

    @classmethod
    def from_config(cls, config, transport: CredentialedTransport) -> "SkeletonSource":
        return cls(transport, config.skeleton_key_base_url)

    def skeleton_url(self, body_id: Union[int, str]) -> str:
        return f"{self.key_base_url}/{body_id}_swc"

    async def download(self, body_id: Union[int, str],
                       cancellation: Optional[CancellationToken] = None) -> Skeleton:
        """
        Download and decode the skeleton of a body.

        Raises:
            TransportError: If the request fails
            DecodeMalformed: If the SWC text is invalid
        """
        text = await self.transport.execute(
            HttpCall.get(self.skeleton_url(body_id), ResponseType.TEXT), cancellation
        )
        skeleton = decode_swc(text)
        logger.debug(f"Skeleton {body_id}: {skeleton.num_nodes} nodes")
        return skeleton
