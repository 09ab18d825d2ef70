"""
Point annotation access through a DVID annotation instance.
"""

from typing import List, Optional, Sequence, Union

from ..core.cancellation import CancellationToken
from ..core.exceptions import DVIDError
from ..core.utils import get_logger
from ..external.api import DVIDInstance
from ..external.transport import CredentialedTransport, HttpCall, ResponseType
from .dvid import PointAnnotation, annotation_to_dvid, parse_annotation, parse_annotations

logger = get_logger(__name__)


class AnnotationSource:
    """
    Reads and writes point annotations of one annotation instance.

    Writes are only sent to the server when a user is configured; otherwise
    annotations stay local to the caller.
    """

    def __init__(self, transport: CredentialedTransport, instance: DVIDInstance,
                 data_instance: str, user: Optional[str] = None):
        self.transport = transport
        self.instance = instance
        self.data_instance = data_instance
        self.user = user

    @classmethod
    def from_config(cls, config, transport: CredentialedTransport) -> "AnnotationSource":
        return cls(transport, DVIDInstance.from_config(config),
                   config.annotation_instance, config.user)

    # ========== Paths ==========

    def _elements_path(self) -> str:
        return f"/{self.data_instance}/elements"

    def _chunk_path(self, position: Sequence[int], size: Sequence[int]) -> str:
        return (f"{self._elements_path()}/{size[0]}_{size[1]}_{size[2]}/"
                f"{position[0]}_{position[1]}_{position[2]}")

    def _url(self, path: str) -> str:
        return self.instance.get_node_api_url(path)

    @property
    def uploadable(self) -> bool:
        return bool(self.user)

    # ========== Reads ==========

    async def fetch_chunk(self, chunk_grid_position: Sequence[int], chunk_data_size: Sequence[int],
                          cancellation: Optional[CancellationToken] = None) -> List[PointAnnotation]:
        """
        Fetch annotations inside one chunk.

        Args:
            chunk_grid_position: Chunk index in the chunk grid
            chunk_data_size: Chunk extent in voxels

        Returns:
            Parsed annotations
        """
        position = [g * s for g, s in zip(chunk_grid_position, chunk_data_size)]
        values = await self.transport.execute(
            HttpCall.get(self._url(self._chunk_path(position, chunk_data_size))), cancellation
        )
        return parse_annotations(values)

    async def fetch_by_user(self, user: Optional[str] = None,
                            cancellation: Optional[CancellationToken] = None) -> List[PointAnnotation]:
        """Fetch every annotation tagged with ``user`` (defaults to the configured user)."""
        user = user or self.user
        if not user:
            raise ValueError("Expecting a valid user name.")
        values = await self.transport.execute(
            HttpCall.get(self._url(f"/{self.data_instance}/tag/user:{user}")), cancellation
        )
        return parse_annotations(values)

    async def fetch_by_body(self, body_id: Union[int, str],
                            cancellation: Optional[CancellationToken] = None) -> List[PointAnnotation]:
        """Fetch annotations attached to a segmentation body."""
        values = await self.transport.execute(
            HttpCall.get(self._url(f"/{self.data_instance}/label/{body_id}")), cancellation
        )
        return parse_annotations(values)

    async def fetch_by_id(self, annotation_id: str,
                          cancellation: Optional[CancellationToken] = None) -> Optional[PointAnnotation]:
        """
        Fetch a single annotation by its ``x_y_z`` id.

        Returns:
            The annotation, or None if it does not exist or cannot be read
        """
        try:
            values = await self.transport.execute(
                HttpCall.get(self._url(f"{self._elements_path()}/1_1_1/{annotation_id}")),
                cancellation
            )
            if values:
                return parse_annotation(values[0])
        except DVIDError as e:
            logger.warning(f"Annotation {annotation_id} unavailable: {e}")
        return None

    # ========== Writes ==========

    async def add(self, annotation: PointAnnotation,
                  cancellation: Optional[CancellationToken] = None) -> str:
        """
        Upload a new annotation.

        Returns:
            The annotation id (``x_y_z``)
        """
        if not self.uploadable:
            logger.debug(f"No user configured, keeping annotation {annotation.id} local")
            return annotation.id
        await self.transport.execute(
            HttpCall.post_json(self._url(self._elements_path()),
                               [annotation_to_dvid(annotation, self.user)]),
            cancellation
        )
        return annotation.id

    async def update(self, annotation_id: str, annotation: PointAnnotation,
                     cancellation: Optional[CancellationToken] = None) -> str:
        """Overwrite an annotation; DVID keys elements by position."""
        if not self.uploadable:
            return annotation.id
        url = f"{self._url(self._elements_path())}?app=Neuroglancer&u={self.user}"
        await self.transport.execute(
            HttpCall.post_json(url, [annotation_to_dvid(annotation, self.user)]),
            cancellation
        )
        if annotation_id != annotation.id:
            logger.debug(f"Annotation {annotation_id} moved to {annotation.id}")
        return annotation.id

    async def delete(self, annotation_id: str,
                     cancellation: Optional[CancellationToken] = None) -> None:
        await self.transport.execute(
            HttpCall("DELETE", self._url(f"/{self.data_instance}/element/{annotation_id}"),
                     response_type=ResponseType.TEXT),
            cancellation
        )
