"""
Core utilities and configuration for the DVID mesh client.

This module provides:
- Configuration management with Pydantic
- Logging setup and utilities
- Cancellation tokens
- The shared error taxonomy
"""

from .config import Config, get_config, reload_config
from .utils import (
    setup_logging,
    get_logger,
    PerformanceTimer,
    JSONFormatter,
    ConsoleFormatter
)
from .cancellation import CancellationToken, uncancelable_token, ensure_token
from .exceptions import (
    DVIDError,
    TransportError,
    TransportUnauthorized,
    TransportTransient,
    TransportFatal,
    CredentialsRefreshError,
    ResolveBranchFailure,
    DecodeMalformed,
    Cancelled
)

__all__ = [
    'Config',
    'get_config',
    'reload_config',
    'setup_logging',
    'get_logger',
    'PerformanceTimer',
    'JSONFormatter',
    'ConsoleFormatter',
    'CancellationToken',
    'uncancelable_token',
    'ensure_token',
    'DVIDError',
    'TransportError',
    'TransportUnauthorized',
    'TransportTransient',
    'TransportFatal',
    'CredentialsRefreshError',
    'ResolveBranchFailure',
    'DecodeMalformed',
    'Cancelled'
]
