"""
Unified client for one DVID data source.

Wires a Config into the credentials provider, the shared transport and the
mesh, skeleton and annotation sources so callers deal with a single object.
"""

from typing import Optional

import aiohttp

from .annotations import AnnotationSource
from .core.config import Config, get_config
from .core.utils import get_logger
from .external.api import DVIDInstance
from .external.credentials import CredentialsProvider, create_credentials_provider
from .external.transport import CredentialedTransport
from .mesh import FragmentAssembler
from .skeleton import SkeletonSource

logger = get_logger(__name__)


class DVIDClient:
    """
    Entry point bundling every source of one DVID node.

    Usable as an async context manager: without an injected session the
    client opens its own on entry and closes it on exit.
    """

    def __init__(self, config: Optional[Config] = None,
                 credentials_provider: Optional[CredentialsProvider] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize client with configuration.

        Args:
            config: Application configuration (defaults to the singleton)
            credentials_provider: Token owner (built from config if omitted)
            session: aiohttp session (defaults to the process-wide session)
        """
        self.config = config or get_config()
        self.credentials_provider = credentials_provider or create_credentials_provider(self.config)
        self.transport = CredentialedTransport.from_config(
            self.config, self.credentials_provider, session=session
        )
        self.instance = DVIDInstance.from_config(self.config)
        self._owned_session: Optional[aiohttp.ClientSession] = None

        self.meshes = FragmentAssembler.from_config(self.config, self.transport)
        self.skeletons = SkeletonSource.from_config(self.config, self.transport)
        self.annotations = AnnotationSource.from_config(self.config, self.transport)

        logger.info(
            f"DVIDClient initialized - server: {self.config.server_url}, "
            f"node: {self.config.node_key}, meshes: {self.config.mesh_instance}"
        )

    async def __aenter__(self) -> "DVIDClient":
        if self.transport.session is None:
            session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
            self._owned_session = session
            self.transport.session = session
            if hasattr(self.credentials_provider, "session_getter"):
                async def _session() -> aiohttp.ClientSession:
                    return session
                self.credentials_provider.session_getter = _session
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._owned_session is not None:
            await self._owned_session.close()
            self.transport.session = None
            self._owned_session = None
