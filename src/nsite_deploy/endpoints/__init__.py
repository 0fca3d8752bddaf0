"""Collaborator protocols and the bundled HTTP blob adapter."""

from .base import BlobEndpoint, EventEndpoint, LocalReader, Signer
from .http_blob import HttpBlobEndpoint
from .signer import SerializedSigner, get_public_key, sign

__all__ = [
    "BlobEndpoint",
    "EventEndpoint",
    "HttpBlobEndpoint",
    "LocalReader",
    "SerializedSigner",
    "Signer",
    "get_public_key",
    "sign",
]
