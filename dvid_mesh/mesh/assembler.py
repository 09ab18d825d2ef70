"""
Fragment assembly.

Primary path: fetch ``<fragment>.merge``, resolve the merge graph and merge the
leaves. Fallback path: fetch ``<fragment>.ngmesh`` and decode it alone. Many
fragments have no merge document at all, so taking the fallback is routine.
"""

import asyncio
from typing import Dict, Iterable, Optional, Union

from ..core.cancellation import CancellationToken, ensure_token
from ..core.exceptions import DVIDError
from ..core import metrics
from ..core.utils import get_logger
from ..external.transport import CredentialedTransport
from .base import MergedGeometry
from .decoder import decode_merged
from .resolver import MergeGraphResolver

logger = get_logger(__name__)


class FragmentAssembler:
    """
    Produces one MergedGeometry per requested fragment id.

    The assembler is the only place where resolver and decoder errors are
    absorbed, and only on the primary path.
    """

    def __init__(self, resolver: MergeGraphResolver, base_url: Optional[str] = None,
                 require_triangles: bool = False):
        """
        Initialize assembler.

        Args:
            resolver: Merge graph resolver (owns the transport)
            base_url: Default key base URL of the mesh instance
            require_triangles: Enforce whole triangles when decoding merged leaves.
                Off by default: leaves whose index count is not a multiple of 3
                are merged as-is instead of failing the fragment. Truncated
                buffers and out-of-range indices are rejected either way.
        """
        self.resolver = resolver
        self.base_url = base_url
        self.require_triangles = require_triangles

    @classmethod
    def from_config(cls, config, transport: CredentialedTransport) -> "FragmentAssembler":
        return cls(MergeGraphResolver.from_config(config, transport),
                   base_url=config.key_base_url)

    async def assemble(self, fragment_id: str,
                       cancellation: Optional[CancellationToken] = None,
                       base_url: Optional[str] = None) -> MergedGeometry:
        """
        Assemble a fragment.

        Args:
            fragment_id: Fragment (body) id
            cancellation: Cancellation token shared by every request
            base_url: Key base URL overriding the default

        Returns:
            Merged geometry of the fragment

        Raises:
            DVIDError: If both the merge path and the direct leaf fetch fail
            Cancelled: If the token fires
        """
        token = ensure_token(cancellation)
        base_url = base_url or self.base_url
        if base_url is None:
            raise ValueError("No base_url given and no default configured")
        fragment_id = str(fragment_id)

        try:
            record = await self.resolver.fetch_merge_record(base_url, fragment_id, token)
            leaves = await self.resolver.resolve_record(base_url, record, token)
            geometry = decode_merged(leaves, require_triangles=self.require_triangles)
        except DVIDError as e:
            logger.info(f"Merge path unavailable for {fragment_id} ({e}), fetching single leaf")
        else:
            metrics.assemblies_total.labels("merge").inc()
            logger.debug(
                f"Assembled {fragment_id} from {geometry.num_leaves} leaves "
                f"({geometry.num_vertices} vertices)"
            )
            return geometry

        try:
            leaf = await self.resolver.fetch_leaf(base_url, fragment_id, token)
            geometry = decode_merged([leaf], require_triangles=self.require_triangles)
        except DVIDError as e:
            metrics.assemblies_total.labels("failed").inc()
            logger.error(f"Could not assemble fragment {fragment_id}: {e}")
            raise

        metrics.assemblies_total.labels("single").inc()
        return geometry

    async def assemble_many(self, fragment_ids: Iterable[str],
                            cancellation: Optional[CancellationToken] = None,
                            base_url: Optional[str] = None
                            ) -> Dict[str, Union[MergedGeometry, DVIDError]]:
        """
        Assemble several fragments concurrently.

        A fragment that fails maps to its error so the caller can render it as
        absent. Cancellation still propagates.

        Returns:
            Mapping of fragment id to geometry or error
        """
        ids = [str(f) for f in fragment_ids]

        async def _one(fragment_id: str):
            try:
                return await self.assemble(fragment_id, cancellation, base_url)
            except DVIDError as e:
                return e

        results = await asyncio.gather(*(_one(f) for f in ids))
        return dict(zip(ids, results))
