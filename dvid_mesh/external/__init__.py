"""
Remote access to DVID: credentials, the credentialed transport and URL builders.
"""

from .api import DVIDInstance
from .credentials import (
    CredentialsProvider,
    StaticCredentialsProvider,
    RefreshingCredentialsProvider,
    DVIDTokenCredentialsProvider,
    create_credentials_provider
)
from .session import get_aiohttp_session, close_aiohttp_session
from .transport import (
    CredentialedTransport,
    HttpCall,
    ResponseType,
    apply_credentials,
    classify_status
)

__all__ = [
    'DVIDInstance',
    'CredentialsProvider',
    'StaticCredentialsProvider',
    'RefreshingCredentialsProvider',
    'DVIDTokenCredentialsProvider',
    'create_credentials_provider',
    'get_aiohttp_session',
    'close_aiohttp_session',
    'CredentialedTransport',
    'HttpCall',
    'ResponseType',
    'apply_credentials',
    'classify_status'
]
