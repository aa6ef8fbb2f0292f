"""
Image synchronization.

Implements create, read and update for a mirrored image. None of these keep
state between calls: every identity is computed from live registry reads,
and the caller persists whatever it needs.
"""
from __future__ import annotations

import logging
from typing import Optional

from .drift import has_drifted
from .errors import DriftDetected, NotFound, SourceNotFound, TransportError
from .identity import canonical_identity
from .reference import parse_destination, parse_reference
from .settings import DEFAULT_REGISTRY
from .storage.base import RegistryGateway

logger = logging.getLogger(__name__)

__all__ = ["create", "read", "update"]


def create(gateway: RegistryGateway, source: str, destination: str,
           default_registry: str = DEFAULT_REGISTRY) -> str:
    """
    Copy the image at ``source`` to ``destination``.

    Args:
        gateway: Registry gateway
        source: Tag- or digest-qualified source reference
        destination: Tag-qualified destination reference
        default_registry: Registry assumed when a reference names none

    Returns:
        Canonical identity of the destination after the copy

    Raises:
        InvalidReference: If either reference is malformed or the destination carries a digest
        SourceNotFound: If the source does not exist
        TransportError: If the copy fails or the destination is unreadable afterwards
    """
    src_ref = parse_reference(source, default_registry=default_registry)
    dest_ref = parse_destination(destination, default_registry=default_registry)

    try:
        image = gateway.get(src_ref)
    except NotFound as e:
        raise SourceNotFound(source) from e

    gateway.write(dest_ref, image)
    logger.info(f"Synced {source} ({image.digest}) to {destination}")

    # Re-read so the identity reflects what the destination actually holds
    identity = read(gateway, destination, default_registry=default_registry)
    if identity is None:
        raise TransportError(f"'{destination}' is not readable after writing {image.digest}")
    return identity


def read(gateway: RegistryGateway, destination: str,
         default_registry: str = DEFAULT_REGISTRY) -> Optional[str]:
    """
    Compute the current identity of ``destination``.

    Returns:
        Canonical identity, or None if the destination no longer exists
    """
    dest_ref = parse_destination(destination, default_registry=default_registry)
    try:
        image = gateway.get(dest_ref)
    except NotFound:
        logger.info(f"Destination {destination} no longer exists")
        return None
    return canonical_identity(destination, image, default_registry=default_registry)


def update(gateway: RegistryGateway, source: str, destination: str, last_known_digest: str,
           default_registry: str = DEFAULT_REGISTRY) -> Optional[str]:
    """
    Accept a changed source reference whose content is unchanged.

    When the source still resolves to ``last_known_digest`` nothing is copied
    and this is a plain read of the destination.

    Returns:
        Canonical identity of the destination, or None if it no longer exists

    Raises:
        SourceNotFound: If the source does not exist
        DriftDetected: If the source content changed; the destination has to
            be replaced
    """
    drift = has_drifted(gateway, source, last_known_digest, default_registry=default_registry)
    if drift.drifted:
        raise DriftDetected(source, drift.previous_digest, drift.new_digest)
    return read(gateway, destination, default_registry=default_registry)
