"""
Garbage-collected deletion of mirrored tags.

Deleting a destination tag can leave its manifest dangling when no other tag
points at it. Like ``docker rmi``, the manifest is removed too, but only after
every remaining tag in the repository has been checked and none of them
references the same digest.

The work is split into three phases so each can be tested on its own:

- ``scan_siblings`` reads tags and digests and never deletes
- ``decide`` is a pure function of the scan
- ``act`` is the only place a manifest is deleted

A scan that cannot complete raises instead of returning, so a partial scan can
never reach ``act``. When the tag was already gone the delete counts as done,
and a cleanup that cannot finish leaves the manifest in place. There is no
registry-side transaction: another client can tag the manifest between the
scan and the delete. That window is accepted.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .errors import NotFound, OperationCancelled, PartialCleanup, RegistryError, Unsupported
from .reference import Reference, extract_digest, parse_destination, parse_reference
from .settings import DEFAULT_REGISTRY
from .storage.base import RegistryGateway

logger = logging.getLogger(__name__)

__all__ = ["GcDecision", "SiblingScan", "DeleteResult", "scan_siblings", "decide", "act", "delete_with_gc"]


class GcDecision(str, Enum):
    """What to do with the manifest after its tag was deleted."""
    PURGE = "purge"
    KEEP_SHARED = "keep_shared"
    SKIP_UNSUPPORTED = "skip_unsupported"
    SKIP_NO_IDENTITY = "skip_no_identity"
    SKIP_OTHER_REPOSITORY = "skip_other_repository"
    SKIP_ALREADY_DELETED = "skip_already_deleted"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class SiblingScan:
    """
    Result of a completed sibling scan.

    Attributes:
        repository: Repository that was scanned
        listing_supported: False if the registry cannot list tags
        tags: Tags that were listed
        shared_with: First tag found pointing at the target digest
        skipped: Tags that disappeared while they were being checked
    """
    repository: str
    listing_supported: bool = True
    tags: Tuple[str, ...] = ()
    shared_with: Optional[str] = None
    skipped: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of ``delete_with_gc``."""
    destination: str
    identity: str
    tag_deleted: bool
    decision: GcDecision
    manifest_deleted: bool = False
    shared_with: Optional[str] = None
    skipped_tags: Tuple[str, ...] = ()
    cleanup_complete: bool = True


def _check_cancelled(cancel: Optional[threading.Event], stage: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"cancelled {stage}")


def scan_siblings(gateway: RegistryGateway, repo: Reference, target_digest: str,
                  cancel: Optional[threading.Event] = None) -> SiblingScan:
    """
    Look for a tag in ``repo`` that still points at ``target_digest``.

    Stops at the first such tag. Tags that vanish while being checked are
    skipped; they cannot be the tag that keeps the manifest alive.

    Raises:
        OperationCancelled: If ``cancel`` is set before a registry call
        TransportError: If listing or any digest lookup fails
    """
    _check_cancelled(cancel, f"before listing tags of {repo.context}")
    try:
        tags = gateway.list_tags(repo)
    except Unsupported:
        logger.debug(f"{repo.registry} cannot list tags")
        return SiblingScan(repository=repo.context, listing_supported=False)
    except NotFound:
        tags = []

    skipped: List[str] = []
    for tag in tags:
        _check_cancelled(cancel, f"while scanning {repo.context}")
        try:
            tag_digest = gateway.digest(repo.with_tag(tag))
        except NotFound:
            skipped.append(tag)
            continue

        if tag_digest == target_digest:
            logger.debug(f"{repo.context}:{tag} still references {target_digest}")
            return SiblingScan(
                repository=repo.context,
                tags=tuple(tags),
                shared_with=tag,
                skipped=tuple(skipped),
            )

    return SiblingScan(repository=repo.context, tags=tuple(tags), skipped=tuple(skipped))


def decide(scan: SiblingScan) -> GcDecision:
    """Whether a completed scan allows purging the manifest."""
    if not scan.listing_supported:
        return GcDecision.SKIP_UNSUPPORTED
    if scan.shared_with is not None:
        return GcDecision.KEEP_SHARED
    return GcDecision.PURGE


def act(gateway: RegistryGateway, manifest: Reference,
        cancel: Optional[threading.Event] = None) -> bool:
    """
    Delete an orphaned manifest by digest.

    Returns:
        True if the manifest was deleted, False if it was already gone
    """
    _check_cancelled(cancel, f"before deleting {manifest}")
    try:
        gateway.delete(manifest)
    except NotFound:
        logger.debug(f"Manifest {manifest} already deleted")
        return False
    logger.info(f"Deleted orphaned manifest {manifest}")
    return True


def delete_with_gc(gateway: RegistryGateway, destination: str, last_known_identity: str,
                   cancel: Optional[threading.Event] = None,
                   default_registry: str = DEFAULT_REGISTRY) -> DeleteResult:
    """
    Delete ``destination`` and its manifest if no other tag references it.

    Args:
        gateway: Registry gateway
        destination: Tag reference to delete
        last_known_identity: Canonical identity recorded for the destination
        cancel: Event that aborts the operation before any further registry call
        default_registry: Registry assumed when a reference names none

    Returns:
        DeleteResult describing what was deleted and why

    Raises:
        InvalidReference: If a reference is malformed or the destination carries a
            digest (checked before deleting anything)
        PartialCleanup: If this call deleted the tag but the sibling scan failed
        OperationCancelled: If ``cancel`` was set; the manifest is never deleted then.
            Once the tag turns out to be already absent, scan failures and
            cancellation leave the manifest in place and still return a result
        TransportError: If deleting the tag itself fails
    """
    dest_ref = parse_destination(destination, default_registry=default_registry)
    digest = extract_digest(last_known_identity)
    identity_ref = (parse_reference(last_known_identity, default_registry=default_registry)
                    if digest else None)

    _check_cancelled(cancel, f"before deleting {destination}")
    try:
        gateway.delete(dest_ref)
        tag_deleted = True
    except NotFound:
        logger.debug(f"{destination} already deleted")
        tag_deleted = False

    def result(decision: GcDecision, **kwargs) -> DeleteResult:
        return DeleteResult(destination=destination, identity=last_known_identity,
                            tag_deleted=tag_deleted, decision=decision, **kwargs)

    def left_in_place(e: Exception) -> DeleteResult:
        # An absent tag already counts as deleted, so this call still succeeds
        logger.warning(
            f"{destination} was already deleted and cleanup of {last_known_identity} "
            f"did not finish: {e}; leaving the manifest in place"
        )
        return result(GcDecision.SKIP_ALREADY_DELETED)

    if identity_ref is None:
        logger.warning(f"No digest recorded for {destination}; skipping manifest cleanup")
        return result(GcDecision.SKIP_NO_IDENTITY)

    if not identity_ref.same_repository(dest_ref):
        logger.warning(
            f"Identity {last_known_identity} is not in the repository of {destination}; "
            f"skipping manifest cleanup"
        )
        return result(GcDecision.SKIP_OTHER_REPOSITORY)

    try:
        scan = scan_siblings(gateway, dest_ref, digest, cancel=cancel)
    except RegistryError as e:
        if not tag_deleted:
            return left_in_place(e)
        raise PartialCleanup(destination, last_known_identity, e, tag_deleted=tag_deleted) from e
    except OperationCancelled as e:
        if not tag_deleted:
            return left_in_place(e)
        raise

    decision = decide(scan)
    if decision is GcDecision.SKIP_UNSUPPORTED:
        logger.warning(
            f"{dest_ref.registry} cannot list tags; leaving {last_known_identity} in place"
        )
        return result(decision)
    if decision is GcDecision.KEEP_SHARED:
        logger.info(f"Keeping {last_known_identity}, still tagged as {scan.shared_with}")
        return result(decision, shared_with=scan.shared_with, skipped_tags=scan.skipped)

    try:
        manifest_deleted = act(gateway, identity_ref.with_digest(digest), cancel=cancel)
    except (RegistryError, OperationCancelled) as e:
        if not tag_deleted:
            return left_in_place(e)
        raise
    return result(decision, manifest_deleted=manifest_deleted, skipped_tags=scan.skipped)
