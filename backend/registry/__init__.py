"""
Registry Module

Client for the Docker Registry HTTP API v2.

Architecture (each layer only calls the one below it):
- RegistryService: business-level records (ImageInfo, repository listings)
- RegistryClient: one method per registry endpoint
- RegistryTransport: single HTTP request, bearer auth replay, digest resolution
- DigestCache: session-scoped cache of digest-addressed responses
"""

from registry.auth import (
    AuthChallenge,
    BearerCredential,
    StaticCredentialResolver,
    TokenEndpointResolver,
    parse_authenticate_header,
)
from registry.client import RegistryClient, RegistryResult
from registry.digest_cache import CacheEntry, DigestCache, SessionStore, get_digest_key
from registry.errors import HttpErrorInfo, RegistryError, TransportError
from registry.models import ConfigBlob, ImageInfo, Manifest
from registry.service import RegistryService, RepositoryTags, create_registry_service
from registry.transport import RegistryResponse, RegistryTransport, calculate_digest

__all__ = [
    'AuthChallenge',
    'BearerCredential',
    'StaticCredentialResolver',
    'TokenEndpointResolver',
    'parse_authenticate_header',
    'RegistryClient',
    'RegistryResult',
    'CacheEntry',
    'DigestCache',
    'SessionStore',
    'get_digest_key',
    'HttpErrorInfo',
    'RegistryError',
    'TransportError',
    'ConfigBlob',
    'ImageInfo',
    'Manifest',
    'RegistryService',
    'RepositoryTags',
    'create_registry_service',
    'RegistryResponse',
    'RegistryTransport',
    'calculate_digest',
]
