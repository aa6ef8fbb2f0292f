"""
Registry gateway interface for imagesync.

These types define the boundary between the sync/GC core and registry
implementations, enabling clean dependency injection and testing with fakes.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import List, Protocol, runtime_checkable

from ..reference import Reference
from .media_types import INDEX_TYPES, NON_DISTRIBUTABLE_LAYER_TYPES

__all__ = ["Image", "RegistryGateway", "compute_digest"]


def compute_digest(payload: bytes) -> str:
    """Content digest of ``payload`` (``sha256:<hex>``)."""
    return f"sha256:{hashlib.sha256(payload).hexdigest()}"


@dataclass(frozen=True)
class Image:
    """
    An image manifest fetched from a registry.

    Invariants:
    - digest is derived from the manifest bytes, never stored independently;
      identical manifests always have identical digests
    - reference records where the manifest was fetched from, so blobs can be
      copied from the same place
    """
    manifest: bytes
    media_type: str
    reference: Reference

    @property
    def digest(self) -> str:
        return compute_digest(self.manifest)

    @property
    def size(self) -> int:
        return len(self.manifest)

    def parsed(self) -> dict:
        """Manifest as a JSON object."""
        return json.loads(self.manifest.decode("utf-8"))

    @property
    def is_index(self) -> bool:
        """Whether this is a multi-platform index / manifest list."""
        return self.media_type in INDEX_TYPES

    def child_digests(self) -> List[str]:
        """Digests of the platform manifests of an index, in index order."""
        if not self.is_index:
            return []
        return [desc["digest"] for desc in self.parsed().get("manifests", [])]

    def blob_descriptors(self) -> List[dict]:
        """
        Config and layer descriptors that must exist before the manifest is pushed.

        Foreign and non-distributable layers are left out; registries serve
        those from the URLs in their descriptors.
        """
        if self.is_index:
            return []
        manifest = self.parsed()
        descriptors = []
        config = manifest.get("config")
        if config:
            descriptors.append(config)
        for layer in manifest.get("layers", []):
            if layer.get("mediaType") in NON_DISTRIBUTABLE_LAYER_TYPES or layer.get("urls"):
                continue
            descriptors.append(layer)
        return descriptors


@runtime_checkable
class RegistryGateway(Protocol):
    """
    Registry operations the sync engine and garbage collector rely on.

    Implementations report a missing tag, digest or repository with
    ``NotFound`` and a missing capability with ``Unsupported``; every other
    failure is a ``TransportError``.
    """

    def get(self, ref: Reference) -> Image:
        """
        Fetch the image a tag or digest reference points at.

        Raises:
            NotFound: If the reference does not exist
            TransportError: For network, auth or server errors
        """
        ...

    def digest(self, ref: Reference) -> str:
        """
        Digest of the manifest a tag points at, without needing its content.

        Raises:
            NotFound: If the reference does not exist
            TransportError: For network, auth or server errors
        """
        ...

    def write(self, ref: Reference, image: Image) -> None:
        """
        Copy ``image`` (manifest and all blobs it needs) to ``ref``.

        Writing the same image twice yields the same digest.

        Raises:
            TransportError: For network, auth or server errors
        """
        ...

    def list_tags(self, repo: Reference) -> List[str]:
        """
        List the tags of the repository ``repo`` belongs to.

        Raises:
            NotFound: If the repository does not exist
            Unsupported: If the registry cannot list tags
            TransportError: For network, auth or server errors
        """
        ...

    def delete(self, ref: Reference) -> None:
        """
        Delete a tag, or the manifest a digest reference names.

        Raises:
            NotFound: If the reference does not exist
            TransportError: For network, auth or server errors
        """
        ...
