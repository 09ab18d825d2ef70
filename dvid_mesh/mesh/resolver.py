"""
Merge graph resolution.

A fragment key either names a terminal leaf (``<key>.ngmesh``) or a merge
document (``<key>.merge``) listing child keys. One child of every merge
document is the document's master key: the owner's own leaf. Resolution walks
the graph depth-first, left to right, and collects leaves in that order; the
order matters because it fixes vertex offsets when the leaves are merged.

Branch failures are collected as ``BranchResult`` values instead of being
raised, so a broken branch only removes its own leaves from the result.
"""

from typing import FrozenSet, List, Optional

from ..core.cancellation import CancellationToken, ensure_token
from ..core.exceptions import DecodeMalformed, ResolveBranchFailure, TransportError
from ..core import metrics
from ..core.utils import get_logger
from ..external.transport import CredentialedTransport, HttpCall, ResponseType
from .base import BranchResult, MergeRecord, TerminalLeaf

logger = get_logger(__name__)


class MergeGraphResolver:
    """
    Resolves fragment keys to the ordered list of terminal leaves behind them.
    """

    def __init__(self, transport: CredentialedTransport,
                 leaf_suffix: str = "ngmesh",
                 merge_suffix: str = "merge",
                 max_depth: int = 32):
        """
        Initialize resolver.

        Args:
            transport: Credentialed transport used for every fetch
            leaf_suffix: Suffix of terminal leaf keys
            merge_suffix: Suffix of merge document keys
            max_depth: Deepest nesting of merge documents followed
        """
        self.transport = transport
        self.leaf_suffix = leaf_suffix
        self.merge_suffix = merge_suffix
        self.max_depth = max_depth

    def leaf_url(self, base_url: str, key: str) -> str:
        return f"{base_url}/{key}.{self.leaf_suffix}"

    def merge_url(self, base_url: str, key: str) -> str:
        return f"{base_url}/{key}.{self.merge_suffix}"

    async def fetch_leaf(self, base_url: str, key: str,
                         cancellation: Optional[CancellationToken] = None) -> TerminalLeaf:
        """
        Fetch the terminal leaf of ``key``.

        Raises:
            TransportError: If the leaf cannot be fetched
        """
        data = await self.transport.execute(
            HttpCall.get(self.leaf_url(base_url, key), ResponseType.BINARY), cancellation
        )
        return TerminalLeaf(key=key, data=data)

    async def fetch_merge_record(self, base_url: str, key: str,
                                 cancellation: Optional[CancellationToken] = None) -> MergeRecord:
        """
        Fetch and validate the merge document of ``key``.

        Raises:
            TransportError: If the document cannot be fetched
            DecodeMalformed: If the document is not a valid merge record
        """
        document = await self.transport.execute(
            HttpCall.get(self.merge_url(base_url, key), ResponseType.JSON), cancellation
        )
        return MergeRecord.parse(key, document)

    async def resolve(self, base_url: str, key: str, master_key: str,
                      cancellation: Optional[CancellationToken] = None) -> List[TerminalLeaf]:
        """
        Resolve one key to its leaves.

        Args:
            base_url: Key base URL of the mesh instance
            key: Key to resolve
            master_key: Master key of the merge document ``key`` came from
            cancellation: Cancellation token

        Returns:
            Leaves in depth-first order; empty if the branch failed

        Raises:
            TransportError: If ``key`` is the master key and its leaf fetch fails
            Cancelled: If the token fires
        """
        token = ensure_token(cancellation)
        if key == master_key:
            return [await self.fetch_leaf(base_url, key, token)]

        result = await self._resolve_branch(base_url, key, token, depth=1,
                                            ancestors=frozenset({master_key}))
        self._log_failures(result)
        return result.leaves

    async def resolve_record(self, base_url: str, record: MergeRecord,
                             cancellation: Optional[CancellationToken] = None) -> List[TerminalLeaf]:
        """
        Resolve every child of an already fetched merge record.

        Args:
            base_url: Key base URL of the mesh instance
            record: Merge record of the requested fragment
            cancellation: Cancellation token

        Returns:
            Leaves of all successful branches, in child order
        """
        result = await self.resolve_record_detailed(base_url, record, cancellation)
        self._log_failures(result)
        return result.leaves

    async def resolve_record_detailed(self, base_url: str, record: MergeRecord,
                                      cancellation: Optional[CancellationToken] = None) -> BranchResult:
        """Like ``resolve_record`` but returns the full branch report."""
        token = ensure_token(cancellation)
        children = await self._resolve_children(
            base_url, record, token, depth=0, ancestors=frozenset({record.owner_key})
        )
        return self._aggregate(record.owner_key, children)

    async def _resolve_children(self, base_url: str, record: MergeRecord,
                                token: CancellationToken, depth: int,
                                ancestors: FrozenSet[str]) -> List[BranchResult]:
        results = []
        # Children are resolved one at a time to keep leaf order deterministic
        for child in record.keys:
            token.raise_if_cancelled()
            if child == record.master_key:
                results.append(await self._resolve_master(base_url, child, token))
            else:
                results.append(
                    await self._resolve_branch(base_url, child, token, depth + 1, ancestors)
                )
        return results

    async def _resolve_master(self, base_url: str, key: str,
                              token: CancellationToken) -> BranchResult:
        try:
            leaf = await self.fetch_leaf(base_url, key, token)
        except TransportError as e:
            return BranchResult(key=key, error=e)
        return BranchResult(key=key, leaves=[leaf])

    async def _resolve_branch(self, base_url: str, key: str, token: CancellationToken,
                              depth: int, ancestors: FrozenSet[str]) -> BranchResult:
        if key in ancestors:
            return BranchResult(key=key, error=ResolveBranchFailure(
                f"Merge graph cycle through {key}", key=key))
        if depth > self.max_depth:
            return BranchResult(key=key, error=ResolveBranchFailure(
                f"Merge graph deeper than {self.max_depth} at {key}", key=key))

        try:
            record = await self.fetch_merge_record(base_url, key, token)
        except (TransportError, DecodeMalformed) as e:
            # Not a merge pointer; treat the key as a plain leaf
            logger.debug(f"No merge document for {key} ({e}), fetching leaf")
            try:
                leaf = await self.fetch_leaf(base_url, key, token)
            except TransportError as leaf_error:
                return BranchResult(key=key, error=ResolveBranchFailure(
                    f"Neither merge document nor leaf available for {key}: {leaf_error}",
                    key=key))
            return BranchResult(key=key, leaves=[leaf])

        children = await self._resolve_children(
            base_url, record, token, depth, ancestors | {key}
        )
        return self._aggregate(key, children)

    @staticmethod
    def _aggregate(key: str, children: List[BranchResult]) -> BranchResult:
        leaves: List[TerminalLeaf] = []
        for child in children:
            leaves.extend(child.leaves)
        return BranchResult(key=key, leaves=leaves, failures=children)

    @staticmethod
    def _log_failures(result: BranchResult) -> None:
        for failure in result.all_failures():
            metrics.merge_branch_failures_total.inc()
            logger.warning(f"Merge branch {failure.key} contributed no leaves: {failure.error}")

    @classmethod
    def from_config(cls, config, transport: CredentialedTransport) -> "MergeGraphResolver":
        return cls(
            transport,
            leaf_suffix=config.leaf_suffix,
            merge_suffix=config.merge_suffix,
            max_depth=config.max_merge_depth,
        )
