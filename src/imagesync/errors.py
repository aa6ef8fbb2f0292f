"""
Error classes for image synchronization.

Provides a clear taxonomy of errors that can occur while resolving references,
talking to registries, and garbage collecting mirrored images. Registry
adapters map HTTP status codes onto these classes so the sync engine and
garbage collector can make decisions without knowing the transport.
"""
from __future__ import annotations


class ImageSyncError(Exception):
    """Base class for all imagesync errors."""
    pass


class InvalidReference(ImageSyncError, ValueError):
    """
    Malformed registry reference.

    Never retried; the input has to be fixed.
    """
    pass


class RegistryError(ImageSyncError):
    """
    Base class for errors reported by a registry gateway.
    """
    pass


class NotFound(RegistryError):
    """
    Registry has no such tag, digest or repository.

    Raised when:
    - HTTP 404 Not Found (manifest, blob, or repository doesn't exist)
    """
    pass


class Unsupported(RegistryError):
    """
    Registry lacks a capability, e.g. tag listing.

    Callers degrade gracefully; this is never escalated to a fatal error.
    """
    pass


class TransportError(RegistryError):
    """
    Network, authentication or server failure.

    Surfaced to the caller unchanged and not retried by the core.
    """
    pass


class AuthError(TransportError):
    """
    Authentication or authorization error.

    Raised when:
    - HTTP 401 Unauthorized (invalid credentials)
    - HTTP 403 Forbidden (insufficient permissions)
    """
    pass


class RateLimited(TransportError):
    """
    Rate limit exceeded.

    Raised when:
    - HTTP 429 Too Many Requests
    """
    pass


class DigestMismatch(TransportError):
    """
    Content digest validation failed.

    Raised when the registry returns a Docker-Content-Digest that does not
    match the digest computed from the bytes it served.
    """

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class SourceNotFound(ImageSyncError):
    """The source image of a sync does not exist."""

    def __init__(self, source: str):
        super().__init__(f"source image '{source}' not present in remote")
        self.source = source


class DriftDetected(ImageSyncError):
    """
    The source now resolves to different content than was last synced.

    The destination identity is digest-qualified, so the resource has to be
    replaced rather than updated in place.
    """

    def __init__(self, source: str, previous_digest: str, new_digest: str):
        super().__init__(
            f"source '{source}' changed from {previous_digest or '<unknown>'} to {new_digest}; "
            f"replace the destination to resync"
        )
        self.source = source
        self.previous_digest = previous_digest
        self.new_digest = new_digest


class PartialCleanup(ImageSyncError):
    """
    Garbage collection could not finish scanning sibling tags.

    The destination tag is already gone at this point. The manifest it referenced
    was left in place, so manual cleanup may be required.
    """

    def __init__(self, destination: str, identity: str, cause: BaseException,
                 tag_deleted: bool = True):
        super().__init__(
            f"deleted '{destination}' but could not check '{identity}' for other tags, "
            f"manual cleanup may be required: {cause}"
        )
        self.destination = destination
        self.identity = identity
        self.cause = cause
        self.tag_deleted = tag_deleted


class OperationCancelled(ImageSyncError):
    """The caller cancelled the operation before it completed."""
    pass


__all__ = [
    "ImageSyncError",
    "InvalidReference",
    "RegistryError",
    "NotFound",
    "Unsupported",
    "TransportError",
    "AuthError",
    "RateLimited",
    "DigestMismatch",
    "SourceNotFound",
    "DriftDetected",
    "PartialCleanup",
    "OperationCancelled",
]
