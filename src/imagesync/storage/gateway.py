"""
HTTP registry gateway.

Implements the RegistryGateway protocol over one RegistryHTTP client per
registry host, so a single gateway can read from one registry and write to
another. Image copies move blobs before manifests, and child manifests before
the index that lists them, so a registry never sees a manifest whose content
is missing.
"""
from __future__ import annotations

import json
import logging
from typing import Callable, Dict, List, Optional

from ..errors import DigestMismatch
from ..reference import Reference
from ..settings import Settings
from .auth import CredentialResolver, default_resolver
from .base import Image
from .registry_http import RegistryHTTP

logger = logging.getLogger(__name__)

__all__ = ["HttpRegistryGateway"]

ClientFactory = Callable[[str], RegistryHTTP]


class HttpRegistryGateway:
    """
    Registry gateway speaking the OCI Distribution API.

    Clients are created lazily per registry host and reused, so tokens are
    cached across calls made by the same gateway.
    """

    def __init__(self, settings: Settings, resolver: Optional[CredentialResolver] = None,
                 client_factory: Optional[ClientFactory] = None):
        """
        Initialize the gateway.

        Args:
            settings: Timeouts, retries, insecure hosts and credential settings
            resolver: Credential rules (defaults to ``default_resolver(settings)``)
            client_factory: Builds the client for a host (tests inject mock transports)
        """
        self.settings = settings
        self.resolver = resolver or default_resolver(settings)
        self._client_factory = client_factory or self._create_client
        self._clients: Dict[str, RegistryHTTP] = {}

    def _create_client(self, registry: str) -> RegistryHTTP:
        return RegistryHTTP(
            registry=registry,
            auth=self.resolver.provider_for(registry),
            insecure=self.settings.is_insecure(registry),
            timeout_s=self.settings.http_timeout_s,
            retries=self.settings.http_retry,
            user_agent=self.settings.user_agent,
        )

    def client(self, registry: str) -> RegistryHTTP:
        if registry not in self._clients:
            self._clients[registry] = self._client_factory(registry)
        return self._clients[registry]

    def get(self, ref: Reference) -> Image:
        """Fetch the manifest ``ref`` points at."""
        client = self.client(ref.registry)
        manifest, media_type, reported = client.get_manifest(ref.repository, ref.identifier)
        image = Image(manifest=manifest, media_type=media_type or _embedded_media_type(manifest),
                      reference=ref)

        # Registries may report digests of other algorithms; only sha256 is comparable
        if reported and reported.startswith("sha256:") and reported != image.digest:
            raise DigestMismatch(
                f"Registry reported {reported} for {ref} but served content with digest {image.digest}",
                expected=reported, actual=image.digest,
            )
        logger.debug(f"Fetched {ref} ({image.media_type}, {image.digest})")
        return image

    def digest(self, ref: Reference) -> str:
        """Digest ``ref`` points at, from a HEAD request when the registry reports one."""
        reported = self.client(ref.registry).head_manifest(ref.repository, ref.identifier)
        # Only sha256 is comparable with digests computed locally
        if reported and reported.startswith("sha256:"):
            return reported
        return self.get(ref).digest

    def write(self, ref: Reference, image: Image) -> None:
        """Copy ``image`` and everything it references to ``ref``."""
        for child_digest in image.child_digests():
            child = self.get(image.reference.with_digest(child_digest))
            self._copy_blobs(ref, child)
            self.client(ref.registry).put_manifest(
                ref.repository, child_digest, child.media_type, child.manifest,
            )

        self._copy_blobs(ref, image)
        self.client(ref.registry).put_manifest(
            ref.repository, ref.identifier, image.media_type, image.manifest,
        )
        logger.info(f"Wrote {image.digest} to {ref}")

    def list_tags(self, repo: Reference) -> List[str]:
        return self.client(repo.registry).list_tags(repo.repository)

    def delete(self, ref: Reference) -> None:
        self.client(ref.registry).delete_manifest(ref.repository, ref.identifier)
        logger.debug(f"Deleted {ref}")

    def _copy_blobs(self, dest: Reference, image: Image) -> None:
        """Make every blob of ``image`` present in the destination repository."""
        source = image.reference
        src_client = self.client(source.registry)
        dest_client = self.client(dest.registry)

        for descriptor in image.blob_descriptors():
            digest = descriptor["digest"]

            if dest_client.blob_exists(dest.repository, digest):
                logger.debug(f"Blob {digest} already present in {dest.context}")
                continue

            session = None
            if source.registry == dest.registry and source.repository != dest.repository:
                mounted, session = dest_client.mount_blob(dest.repository, digest, source.repository)
                if mounted:
                    logger.debug(f"Mounted {digest} from {source.context}")
                    continue

            with src_client.open_blob(source.repository, digest) as (chunks, length):
                size = descriptor.get("size", length)
                dest_client.upload_blob(dest.repository, digest, chunks, size=size, location=session)
            logger.debug(f"Copied blob {digest} to {dest.context}")

    def close(self) -> None:
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _embedded_media_type(manifest: bytes) -> str:
    """Fallback media type from the manifest body when no Content-Type was sent."""
    try:
        return json.loads(manifest.decode("utf-8")).get("mediaType", "")
    except (ValueError, UnicodeDecodeError, AttributeError):
        return ""
