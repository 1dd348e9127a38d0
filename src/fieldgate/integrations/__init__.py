"""FieldGate collaborator clients (storage, identity)."""

from fieldgate.integrations.identity import (
    CachedIdentity,
    HttpIdentityClient,
    Identity,
    get_identity_client,
)
from fieldgate.integrations.storage import HttpStorageClient, Storage, get_storage_client

__all__ = [
    "CachedIdentity",
    "HttpIdentityClient",
    "HttpStorageClient",
    "Identity",
    "Storage",
    "get_identity_client",
    "get_storage_client",
]
