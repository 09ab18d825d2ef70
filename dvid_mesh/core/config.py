"""
Centralized configuration management using Pydantic.

All settings can be overridden via ``DVID_``-prefixed environment variables or a
``.env`` file, e.g. ``DVID_SERVER_URL=https://emdata.example.org``.
"""

from pydantic import field_validator, Field, model_validator
from pydantic_settings import BaseSettings
from typing import Dict, Optional
from pathlib import Path

from .utils import get_logger

logger = get_logger(__name__)


class Config(BaseSettings):
    """
    Connection, retry and resolution settings for one DVID data source.
    """

    # ========== Server Addressing ==========
    server_url: str = Field(
        default="http://localhost:8000",
        description="DVID server base URL (scheme and host, no trailing slash)"
    )
    node_key: str = Field(
        default="",
        description="UUID of the repository node to read from"
    )
    mesh_instance: str = Field(
        default="segmentation_meshes",
        description="Key-value instance holding .ngmesh/.merge fragments"
    )
    skeleton_instance: str = Field(
        default="segmentation_skeletons",
        description="Key-value instance holding <body>_swc skeletons"
    )
    annotation_instance: str = Field(
        default="bookmark_annotations",
        description="Annotation instance for point annotations"
    )
    user: Optional[str] = Field(
        default=None,
        description="User name attached to uploaded annotations"
    )

    # ========== Credentials ==========
    auth_token: str = Field(
        default="",
        description="Bearer token; empty means send ambient cookies instead"
    )
    cookies: Dict[str, str] = Field(
        default_factory=dict,
        description="Cookies sent to https servers when no bearer token is held"
    )
    token_url: Optional[str] = Field(
        default=None,
        description="Endpoint returning a fresh token (defaults to <server>/api/server/token)"
    )

    # ========== Fragment Layout ==========
    leaf_suffix: str = Field(
        default="ngmesh",
        description="Key suffix of terminal binary mesh leaves"
    )
    merge_suffix: str = Field(
        default="merge",
        description="Key suffix of merge indirection documents"
    )
    max_merge_depth: int = Field(
        default=32,
        ge=1,
        le=1024,
        description="Deepest merge record nesting followed before a branch fails"
    )

    # ========== Transport / Retry ==========
    request_timeout: float = Field(
        default=60.0,
        gt=0.0,
        description="Total timeout for one HTTP attempt in seconds"
    )
    max_transient_retries: Optional[int] = Field(
        default=8,
        ge=0,
        description="Retries for 504/timeouts per call (None retries forever)"
    )
    retry_base_delay: float = Field(
        default=0.25,
        ge=0.0,
        description="First backoff delay before a transient retry (seconds)"
    )
    retry_max_delay: float = Field(
        default=16.0,
        ge=0.0,
        description="Upper bound on a single backoff delay (seconds)"
    )
    max_auth_refreshes: int = Field(
        default=3,
        ge=1,
        description="Credential refreshes allowed over the lifetime of one call"
    )
    refresh_backoff: float = Field(
        default=0.5,
        ge=0.0,
        description="Delay applied by the credentials provider between refreshes"
    )

    # ========== Monitoring Configuration ==========
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    log_dir: Optional[Path] = Field(
        default=None,
        description="Directory for rotating JSON log files"
    )

    # ========== Validators ==========

    @field_validator('server_url')
    def validate_server_url(cls, v):
        """Strip trailing slashes and require an http(s) scheme."""
        v = v.rstrip('/')
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"server_url must start with http:// or https://, got {v}")
        return v

    @field_validator('leaf_suffix', 'merge_suffix')
    def validate_suffix(cls, v):
        """Suffixes are appended after a dot, so drop a leading one."""
        v = v.lstrip('.')
        if not v:
            raise ValueError("Key suffix must not be empty")
        return v

    @model_validator(mode='after')
    def validate_retry_delays(self):
        """Ensure the backoff ceiling is not below the first delay."""
        if self.retry_max_delay < self.retry_base_delay:
            logger.warning(
                f"retry_max_delay {self.retry_max_delay} < retry_base_delay "
                f"{self.retry_base_delay}, raising ceiling"
            )
            self.retry_max_delay = self.retry_base_delay
        if self.leaf_suffix == self.merge_suffix:
            raise ValueError("leaf_suffix and merge_suffix must differ")
        return self

    # ========== Derived URLs ==========

    @property
    def node_api_url(self) -> str:
        return f"{self.server_url}/api/node/{self.node_key}"

    @property
    def key_base_url(self) -> str:
        """Base URL of mesh fragment keys."""
        return f"{self.node_api_url}/{self.mesh_instance}/key"

    @property
    def skeleton_key_base_url(self) -> str:
        return f"{self.node_api_url}/{self.skeleton_instance}/key"

    @property
    def resolved_token_url(self) -> str:
        return self.token_url or f"{self.server_url}/api/server/token"

    model_config = {
        "env_prefix": "DVID_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Get the configuration singleton.

    Returns:
        Config instance with validated settings
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reload_config() -> Config:
    """
    Force reload configuration from environment.

    Returns:
        Fresh Config instance
    """
    global _config_instance
    _config_instance = Config()
    return _config_instance
