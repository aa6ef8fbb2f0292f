"""
Fake registry gateway implementation for testing.

This implementation explicitly subclasses RegistryGateway to ensure interface
changes break CI immediately, preventing silent drift. Manifests are stored
per repository by digest, with tags pointing at digests, the same way a
Distribution registry stores them.
"""
from __future__ import annotations

import hashlib
import json
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ...errors import NotFound, Unsupported
from ...reference import Reference, parse_reference
from ..base import Image, RegistryGateway, compute_digest
from ..media_types import OCI_IMAGE_MANIFEST

__all__ = ["FakeRegistry", "make_manifest"]


def make_manifest(seed: str, layers: int = 1) -> bytes:
    """
    Deterministic OCI image manifest for ``seed``.

    Different seeds give different content and therefore different digests.
    """
    def descriptor(kind: str, index: int) -> dict:
        content = f"{seed}-{kind}-{index}".encode()
        return {
            "mediaType": f"application/vnd.oci.image.{kind}.v1+json",
            "digest": f"sha256:{hashlib.sha256(content).hexdigest()}",
            "size": len(content),
        }

    manifest = {
        "schemaVersion": 2,
        "mediaType": OCI_IMAGE_MANIFEST,
        "config": descriptor("config", 0),
        "layers": [descriptor("layer", i) for i in range(layers)],
    }
    return json.dumps(manifest, sort_keys=True, separators=(",", ":")).encode()


class FakeRegistry(RegistryGateway):
    """
    In-memory registry gateway for testing.

    This is a test double; not for production use.

    Test utilities:
    - ``seed`` puts a manifest under a tag
    - ``supports_tag_listing`` switches ``list_tags`` to raising Unsupported
    - ``fail_on`` makes one operation on one reference raise
    - ``on_call`` runs a callback before every operation (concurrency tests)
    - ``calls`` records (operation, reference) pairs in order
    """

    def __init__(self, supports_tag_listing: bool = True) -> None:
        self.supports_tag_listing = supports_tag_listing
        self._manifests: Dict[str, Dict[str, Tuple[bytes, str]]] = {}  # repo -> {digest: (manifest, media_type)}
        self._tags: Dict[str, Dict[str, str]] = {}                     # repo -> {tag: digest}
        self._failures: Dict[Tuple[str, str], Exception] = {}
        self._lock = threading.Lock()
        self.calls: List[Tuple[str, str]] = []
        self.on_call: Optional[Callable[[str, str], None]] = None

    def _ensure_repo(self, repo: str) -> None:
        """Ensure repo exists in storage."""
        self._manifests.setdefault(repo, {})
        self._tags.setdefault(repo, {})

    def _record(self, operation: str, ref: Reference | str) -> None:
        key = str(ref)
        self.calls.append((operation, key))
        if self.on_call is not None:
            self.on_call(operation, key)
        failure = self._failures.get((operation, key))
        if failure is not None:
            raise failure

    def _resolve(self, ref: Reference) -> Optional[str]:
        """Digest ``ref`` points at, or None."""
        repo = ref.context
        if ref.digest:
            return ref.digest if ref.digest in self._manifests.get(repo, {}) else None
        return self._tags.get(repo, {}).get(ref.tag or "")

    # RegistryGateway

    def get(self, ref: Reference) -> Image:
        self._record("get", ref)
        with self._lock:
            digest = self._resolve(ref)
            if digest is None:
                raise NotFound(f"Manifest not found: {ref}")
            manifest, media_type = self._manifests[ref.context][digest]
        return Image(manifest=manifest, media_type=media_type, reference=ref)

    def digest(self, ref: Reference) -> str:
        self._record("digest", ref)
        with self._lock:
            digest = self._resolve(ref)
        if digest is None:
            raise NotFound(f"Manifest not found: {ref}")
        return digest

    def write(self, ref: Reference, image: Image) -> None:
        self._record("write", ref)
        digest = compute_digest(image.manifest)
        with self._lock:
            self._ensure_repo(ref.context)
            self._manifests[ref.context][digest] = (image.manifest, image.media_type)
            if ref.tag and not ref.digest:
                self._tags[ref.context][ref.tag] = digest

    def list_tags(self, repo: Reference) -> List[str]:
        self._record("list_tags", repo.context)
        if not self.supports_tag_listing:
            raise Unsupported(f"{repo.registry} does not support tag listing")
        with self._lock:
            if repo.context not in self._tags:
                raise NotFound(f"Repository not found: {repo.context}")
            return sorted(self._tags[repo.context])

    def delete(self, ref: Reference) -> None:
        self._record("delete", ref)
        with self._lock:
            repo = ref.context
            if ref.digest:
                if ref.digest not in self._manifests.get(repo, {}):
                    raise NotFound(f"Manifest not found: {ref}")
                del self._manifests[repo][ref.digest]
                # Deleting a manifest removes every tag that points at it
                self._tags[repo] = {t: d for t, d in self._tags[repo].items() if d != ref.digest}
            else:
                if (ref.tag or "") not in self._tags.get(repo, {}):
                    raise NotFound(f"Tag not found: {ref}")
                del self._tags[repo][ref.tag]

    # Test utilities

    def seed(self, reference: str, manifest: Optional[bytes] = None,
             media_type: str = OCI_IMAGE_MANIFEST) -> Image:
        """Store ``manifest`` under a tag reference without recording a call."""
        ref = parse_reference(reference)
        payload = manifest if manifest is not None else make_manifest(reference)
        digest = compute_digest(payload)
        with self._lock:
            self._ensure_repo(ref.context)
            self._manifests[ref.context][digest] = (payload, media_type)
            if ref.tag and not ref.digest:
                self._tags[ref.context][ref.tag] = digest
        return Image(manifest=payload, media_type=media_type, reference=ref)

    def fail_on(self, operation: str, reference: str, error: Exception) -> None:
        """Raise ``error`` whenever ``operation`` is called for ``reference``."""
        ref = parse_reference(reference, strict=False)
        key = ref.context if operation == "list_tags" else str(ref)
        self._failures[(operation, key)] = error

    def has_tag(self, reference: str) -> bool:
        ref = parse_reference(reference)
        return self._resolve(ref) is not None

    def has_manifest(self, identity: str) -> bool:
        ref = parse_reference(identity)
        return ref.digest is not None and self._resolve(ref) is not None

    def calls_for(self, operation: str) -> List[str]:
        return [key for op, key in self.calls if op == operation]

    def clear(self) -> None:
        """Clear all stored data (test utility)."""
        self._manifests.clear()
        self._tags.clear()
        self._failures.clear()
        self.calls.clear()
