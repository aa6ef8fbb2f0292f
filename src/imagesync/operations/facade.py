"""
Operations Facade - Application service layer.

Maps the lifecycle host's create/read/update/delete boundary onto the sync
engine and the garbage collector while keeping CLI commands thin and testable.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from ..drift import DriftResult, has_drifted
from ..errors import PartialCleanup
from ..gc import DeleteResult, GcDecision, delete_with_gc
from ..identity import canonical_identity, identity_digest
from ..models import SyncRecord
from ..reference import parse_reference
from ..settings import Settings
from ..storage.base import RegistryGateway
from .. import sync as _sync

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes policy decisions so they are not scattered across commands.
    """
    strict_cleanup: bool = False  # Raise PartialCleanup instead of downgrading it


class Operations:
    """
    Application service facade for CLI and host operations.

    One method per lifecycle verb. The facade holds no state besides the
    injected config, gateway and settings; exceptions bubble up for central
    mapping in ``operations.mappers``.
    """

    def __init__(self, config: OpsConfig, gateway: Optional[RegistryGateway] = None,
                 settings: Optional[Settings] = None):
        """
        Initialize Operations facade.

        Args:
            config: Configuration settings
            gateway: Registry gateway (if None, created from settings)
            settings: Optional settings (if None, loaded from environment)
        """
        self.cfg = config

        if settings is None:
            from ..settings import create_settings_from_env
            settings = create_settings_from_env()
        self.settings = settings

        if gateway is None:
            from ..storage.registry_factory import make_gateway
            gateway = make_gateway(settings)
        self.gateway = gateway

    @property
    def _registry(self) -> str:
        return self.settings.default_registry

    def identity(self, reference: str) -> str:
        """Canonical identity of whatever ``reference`` currently resolves to."""
        ref = parse_reference(reference, default_registry=self._registry)
        image = self.gateway.get(ref)
        return canonical_identity(reference, image, default_registry=self._registry)

    def create(self, source: str, destination: str) -> SyncRecord:
        """
        Mirror ``source`` to ``destination``.

        Returns:
            Record holding the destination identity and the copied source digest
        """
        identity = _sync.create(self.gateway, source, destination,
                                default_registry=self._registry)
        return SyncRecord(
            source=source,
            destination=destination,
            source_digest=identity_digest(identity),
            id=identity,
        )

    def read(self, record: SyncRecord) -> Optional[SyncRecord]:
        """
        Refresh ``record`` from the destination.

        Returns:
            Updated record, or None if the destination is gone and the host
            should forget it
        """
        identity = _sync.read(self.gateway, record.destination,
                              default_registry=self._registry)
        if identity is None:
            return None
        return record.model_copy(update={"id": identity})

    def drift(self, source: str, digest: str) -> DriftResult:
        return has_drifted(self.gateway, source, digest, default_registry=self._registry)

    def update(self, record: SyncRecord, source: str) -> SyncRecord:
        """
        Accept a new source reference that still resolves to the same content.

        Nothing is copied. The returned record has an empty ``id`` when the
        destination disappeared in the meantime.

        Raises:
            DriftDetected: If the content changed; use ``replace`` instead
        """
        identity = _sync.update(self.gateway, source, record.destination,
                                record.source_digest or record.id,
                                default_registry=self._registry)
        return record.model_copy(update={"source": source, "id": identity or ""})

    def replace(self, record: SyncRecord, source: str,
                cancel: Optional[threading.Event] = None) -> SyncRecord:
        """
        Replace the destination with the current content of ``source``.

        The old destination is deleted first. Copying first would write the
        same tag that the delete then removes.
        """
        self.delete(record, cancel=cancel)
        return self.create(source, record.destination)

    def delete(self, record: SyncRecord,
               cancel: Optional[threading.Event] = None) -> DeleteResult:
        """
        Delete the destination tag and garbage-collect its manifest.

        A failed sibling scan leaves the manifest in place. Unless
        ``strict_cleanup`` is set this is logged and reported through
        ``DeleteResult.cleanup_complete`` instead of raised, since the tag
        itself is already gone.

        Raises:
            OperationCancelled: If ``cancel`` was set
            PartialCleanup: Only with ``strict_cleanup``
        """
        try:
            return delete_with_gc(self.gateway, record.destination, record.id,
                                  cancel=cancel, default_registry=self._registry)
        except PartialCleanup as e:
            if self.cfg.strict_cleanup:
                raise
            logger.warning(str(e))
            return DeleteResult(
                destination=record.destination,
                identity=record.id,
                tag_deleted=e.tag_deleted,
                decision=GcDecision.INCOMPLETE,
                cleanup_complete=False,
            )
