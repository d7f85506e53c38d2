"""
Planroom Runtime — wires configuration, database, logging and services.

Usage:
    runtime = PlanroomRuntime(load_config("planroom.yaml")).boot()
    site = runtime.nodes.create("proj-1", "Building A", kind="building")
    runtime.shutdown()
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from planroom.db.session import DEFAULT_CONNECTION, close_all_sessions, init_db
from planroom.documents.ledger import VersionLedger
from planroom.documents.registry import DocumentRegistry
from planroom.documents.storage import BlobStore, LocalBlobStore
from planroom.documents.uploads import UploadService
from planroom.engine.config import PlanroomConfig, get_config
from planroom.engine.errors import PlanroomRecordError
from planroom.engine.logging import init_logging, log, log_system_event, shutdown_logging
from planroom.hierarchy.paths import PathResolver
from planroom.hierarchy.store import TreeNodeStore
from planroom.query.projections import ProjectionService

logger = logging.getLogger("planroom.engine.runtime")


class PlanroomRuntime:
    """Owns the service instances for one database connection."""

    def __init__(
        self,
        config: Optional[PlanroomConfig] = None,
        connection: str = DEFAULT_CONNECTION,
        blobs: Optional[BlobStore] = None,
    ):
        self.config = config or get_config()
        self.connection = connection
        self._blobs = blobs
        self._booted = False

        self.nodes = TreeNodeStore(connection)
        self.paths = PathResolver(connection)
        self.ledger = VersionLedger(connection)
        self.documents = DocumentRegistry(self.ledger, connection)
        self.projections = ProjectionService(self.paths, connection)
        self.uploads: Optional[UploadService] = None

    def boot(self) -> "PlanroomRuntime":
        """Initialise the database, the structured log and the blob store."""
        if self._booted:
            return self

        cfg = self.config
        logging.getLogger("planroom").setLevel(cfg.logging.level)

        db = cfg.database
        try:
            init_db(
                db.url,
                name=self.connection,
                create_tables=db.create_tables,
                pool_size=db.pool_size,
                max_overflow=db.max_overflow,
                pool_timeout=db.pool_timeout,
                pool_recycle=db.pool_recycle,
                pool_pre_ping=db.pool_pre_ping,
            )
        except SQLAlchemyError as e:
            raise PlanroomRecordError(
                f"Could not initialise database: {e.__class__.__name__}",
                operation="runtime.boot",
                cause=str(e),
            ) from e

        if cfg.logging.enabled:
            queue_cfg = cfg.logging.async_queue
            init_logging(
                log_dir=cfg.logging.directory,
                flush_interval_ms=queue_cfg.flush_interval_ms,
                flush_batch_size=queue_cfg.flush_batch_size,
                max_queue_size=queue_cfg.max_queue_size,
            )

        if self._blobs is None:
            self._blobs = LocalBlobStore(cfg.documents.blob_root)
        self.uploads = UploadService(
            self.documents,
            self._blobs,
            max_upload_size_mb=cfg.documents.max_upload_size_mb,
            allowed_content_types=cfg.documents.allowed_content_types,
        )

        self._booted = True
        logger.info("Planroom runtime booted (%s)", cfg.environment)
        log(log_system_event("runtime_booted", details={"environment": cfg.environment}))
        return self

    @property
    def blobs(self) -> Optional[BlobStore]:
        return self._blobs

    def shutdown(self) -> None:
        """Flush the structured log and dispose the engines."""
        if not self._booted:
            return
        log(log_system_event("runtime_stopped"))
        shutdown_logging()
        close_all_sessions()
        self._booted = False
