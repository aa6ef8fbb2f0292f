"""
Source drift detection.

A source reference can change without its content changing: the same image
promoted under another tag, or a tag re-pointed at identical content. Only a
change of the source digest requires copying again.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import NotFound, SourceNotFound
from .reference import extract_digest, parse_reference
from .settings import DEFAULT_REGISTRY
from .storage.base import RegistryGateway

logger = logging.getLogger(__name__)

__all__ = ["DriftResult", "has_drifted"]


@dataclass(frozen=True)
class DriftResult:
    """Outcome of comparing a source's current digest with the last synced one."""
    drifted: bool
    new_digest: str
    previous_digest: str


def has_drifted(gateway: RegistryGateway, source: str, last_known_digest: str,
                default_registry: str = DEFAULT_REGISTRY) -> DriftResult:
    """
    Check whether ``source`` now resolves to different content.

    Args:
        gateway: Registry gateway
        source: Tag- or digest-qualified source reference
        last_known_digest: Digest recorded at the last sync; a full identity
            (``name@digest``) is accepted too
        default_registry: Registry assumed when the reference names none

    Returns:
        DriftResult with the freshly fetched digest

    Raises:
        InvalidReference: If ``source`` is malformed
        SourceNotFound: If the source no longer exists
    """
    ref = parse_reference(source, default_registry=default_registry)
    previous = extract_digest(last_known_digest) if "@" in last_known_digest else last_known_digest

    try:
        image = gateway.get(ref)
    except NotFound as e:
        raise SourceNotFound(source) from e

    result = DriftResult(
        drifted=image.digest != previous,
        new_digest=image.digest,
        previous_digest=previous,
    )
    if result.drifted:
        logger.info(f"Source {source} drifted from {previous or '<none>'} to {image.digest}")
    else:
        logger.debug(f"Source {source} still resolves to {previous}")
    return result
