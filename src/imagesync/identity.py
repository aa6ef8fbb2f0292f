"""
Canonical content-addressed identities.

An identity has the form ``<registry>/<repository>@<digest>`` and is what
callers persist for a synced image. Two identities are equal exactly when they
name the same repository and the same content, whichever tag produced them.
"""
from __future__ import annotations

from .reference import extract_digest, parse_reference
from .settings import DEFAULT_REGISTRY
from .storage.base import Image

__all__ = ["canonical_identity", "identity_digest"]


def canonical_identity(reference: str, image: Image,
                       default_registry: str = DEFAULT_REGISTRY) -> str:
    """
    Replace any tag in ``reference`` with the digest of ``image``.

    A reference that already carries a digest is returned unchanged, so
    resolving an identity again is a no-op. Otherwise the digest of the
    freshly fetched image is used.

    Args:
        reference: Tag- or digest-qualified reference the image was read from
        image: Image fetched from that reference
        default_registry: Registry assumed when the reference names none

    Returns:
        Canonical identity string

    Raises:
        InvalidReference: If the reference is malformed or names neither a tag
            nor a digest

    Examples:
        >>> canonical_identity("localhost:5000/app:v1", image)
        'localhost:5000/app@sha256:...'
    """
    ref = parse_reference(reference, default_registry=default_registry)
    if ref.digest:
        return reference
    return f"{ref.context}@{image.digest}"


def identity_digest(identity: str) -> str:
    """Digest part of an identity, or an empty string if it has none."""
    return extract_digest(identity)
