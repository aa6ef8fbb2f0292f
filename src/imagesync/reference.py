"""
Registry reference parsing.

Parses references such as ``ghcr.io/org/app:v1`` or
``localhost:5000/app@sha256:...`` into their registry, repository, tag and
digest components, with strict or permissive validation.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional

from .errors import InvalidReference
from .settings import DEFAULT_REGISTRY

__all__ = [
    "Reference",
    "parse_reference",
    "parse_destination",
    "extract_digest",
    "is_digest",
    "DIGEST_PATTERN",
    "DEFAULT_TAG",
]

# Same shape as the OCI go-digest reference grammar
DIGEST_PATTERN = re.compile(r"[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+")

DEFAULT_TAG = "latest"

_TAG_PATTERN = re.compile(r"[\w][\w.-]{0,127}")
_COMPONENT_PATTERN = re.compile(r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*")
_HOST_PATTERN = re.compile(r"[a-zA-Z0-9](?:[a-zA-Z0-9.-]*[a-zA-Z0-9])?(?::[0-9]+)?")

# Registries whose single-component repositories live under library/
_DOCKER_HUB_HOSTS = frozenset({"docker.io", "index.docker.io"})


@dataclass(frozen=True)
class Reference:
    """
    Parsed components of a registry reference.

    Attributes:
        registry: Registry host, with port if one was given
        repository: Repository path within the registry
        tag: Tag, if the reference names one
        digest: Algorithm-qualified digest, if the reference names one
        original: Original reference string for error messages
    """
    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None
    original: str = ""

    @property
    def identifier(self) -> str:
        """Digest when present, otherwise the tag."""
        return self.digest or self.tag or ""

    @property
    def context(self) -> str:
        """Repository-level name, without tag or digest."""
        return f"{self.registry}/{self.repository}"

    def same_repository(self, other: Reference) -> bool:
        """Exact registry and repository match, no normalization."""
        return self.registry == other.registry and self.repository == other.repository

    def with_tag(self, tag: str) -> Reference:
        return replace(self, tag=tag, digest=None, original=f"{self.context}:{tag}")

    def with_digest(self, digest: str) -> Reference:
        return replace(self, tag=None, digest=digest, original=f"{self.context}@{digest}")

    def __str__(self) -> str:
        text = self.context
        if self.tag:
            text += f":{self.tag}"
        if self.digest:
            text += f"@{self.digest}"
        return text


def is_digest(value: str) -> bool:
    """Whether ``value`` has the ``algorithm:hash`` digest shape."""
    return bool(value) and DIGEST_PATTERN.fullmatch(value) is not None


def parse_reference(text: str, strict: bool = True,
                    default_registry: str = DEFAULT_REGISTRY) -> Reference:
    """
    Parse and validate a registry reference.

    Accepts references in the forms ``[host/]path:tag``, ``[host/]path@digest``
    and ``[host/]path:tag@digest``. In permissive mode a bare ``[host/]path``
    is accepted and resolves to the ``latest`` tag.

    Args:
        text: Reference string to parse
        strict: Require an explicit tag or digest
        default_registry: Registry used when the reference names none

    Returns:
        Reference with validated components

    Raises:
        InvalidReference: If the reference is malformed

    Examples:
        >>> parse_reference("localhost:5000/app:v1")
        Reference(registry='localhost:5000', repository='app', tag='v1', ...)

        >>> parse_reference("ubuntu", strict=False)
        Reference(registry='index.docker.io', repository='library/ubuntu', tag='latest', ...)
    """
    if not text:
        raise InvalidReference("reference cannot be empty")

    if any(ch.isspace() for ch in text):
        raise InvalidReference(f"invalid reference '{text}': contains whitespace")

    base, digest = text, None
    if "@" in text:
        base, _, digest = text.partition("@")
        if "@" in digest:
            raise InvalidReference(f"invalid reference '{text}': more than one '@'")
        if not is_digest(digest):
            raise InvalidReference(
                f"invalid digest '{digest}' in '{text}': must match '{DIGEST_PATTERN.pattern}'"
            )

    # A tag is whatever follows the last ':' after the last '/'
    tag = None
    slash = base.rfind("/")
    colon = base.rfind(":")
    if colon > slash:
        base, tag = base[:colon], base[colon + 1:]
        if not _TAG_PATTERN.fullmatch(tag):
            raise InvalidReference(f"invalid tag '{tag}' in '{text}'")

    if not base:
        raise InvalidReference(f"invalid reference '{text}': missing repository")

    parts = base.split("/")
    first = parts[0]
    if len(parts) > 1 and ("." in first or ":" in first or first == "localhost"):
        registry, path = first, parts[1:]
        if not _HOST_PATTERN.fullmatch(registry):
            raise InvalidReference(f"invalid registry '{registry}' in '{text}'")
    else:
        registry, path = default_registry, parts

    if registry in _DOCKER_HUB_HOSTS and len(path) == 1:
        path = ["library", *path]

    for component in path:
        if not _COMPONENT_PATTERN.fullmatch(component):
            raise InvalidReference(f"invalid repository component '{component}' in '{text}'")

    if tag is None and digest is None:
        if strict:
            raise InvalidReference(f"invalid reference '{text}': must specify a tag or digest")
        tag = DEFAULT_TAG

    return Reference(
        registry=registry,
        repository="/".join(path),
        tag=tag,
        digest=digest,
        original=text,
    )


def parse_destination(text: str, default_registry: str = DEFAULT_REGISTRY) -> Reference:
    """
    Parse a destination reference, which must name a tag and no digest.

    Deleting a digest-qualified reference removes the manifest together with
    every tag pointing at it, so destinations are tag-only.

    Raises:
        InvalidReference: If the reference is malformed or carries a digest
    """
    ref = parse_reference(text, default_registry=default_registry)
    if ref.digest:
        raise InvalidReference(
            f"invalid destination '{text}': must be tag-qualified without a digest"
        )
    return ref


def extract_digest(text: str) -> str:
    """
    Return everything after the last '@' in ``text``.

    Returns an empty string if there is no '@' or nothing follows it.

    Examples:
        >>> extract_digest("host/repo@sha256:abc")
        'sha256:abc'
        >>> extract_digest("host/repo@")
        ''
    """
    at = text.rfind("@")
    if at == -1 or at + 1 >= len(text):
        return ""
    return text[at + 1:]
