"""
Planroom Error Hierarchy — Structured exceptions for tree and revision operations.

Every error carries a stable ``kind`` code (the name the UI switches on), a
human message, and the identifiers needed to correct the input. All context is
serialisable to JSON for the structured log.

Hierarchy:
    PlanroomError
    ├── PlanroomValidationError      — User-actionable input problem
    │   ├── InvalidParentError       — Parent/set missing or in another owner
    │   ├── CrossOwnerViolationError — Re-parent target owned by someone else
    │   ├── CycleDetectedError       — Node would become its own ancestor
    │   ├── EmptyNameError           — Blank name / number / title
    │   ├── HasChildrenError         — Delete of a node that still has children
    │   └── UploadRejectedError      — Upload fails size / content-type checks
    ├── NotFoundError                — Referenced row does not exist
    ├── NoRevisionsError             — Document has no current revision
    ├── PlanroomIntegrityError       — Stored data violates an invariant
    │   ├── CorruptHierarchyError    — Parent chain loops or dangles
    │   ├── DanglingRevisionError    — current_revision_id does not resolve
    │   └── MalformedRecordError     — Stored row fails record validation
    ├── PlanroomRecordError          — Backend failure inside a transaction
    └── PlanroomConfigError          — Invalid planroom.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class PlanroomError(Exception):
    """
    Base error for all Planroom failures.

    Context kwargs are kept verbatim; the well-known identifiers are also
    promoted to attributes so handlers do not have to dig into ``context``.
    """

    kind: str = "PlanroomError"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.owner_id: Optional[str] = context.get("owner_id")
        self.node_id: Optional[str] = context.get("node_id")
        self.document_id: Optional[str] = context.get("document_id")
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging and row-level reporting."""
        return {
            "kind": self.kind,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "owner_id": self.owner_id,
            "node_id": self.node_id,
            "document_id": self.document_id,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("owner_id", "node_id", "document_id")
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.kind}: {self.message}"]
        for name in ("owner_id", "node_id", "document_id"):
            value = getattr(self, name)
            if value:
                parts.append(f"{name}={value}")
        return " | ".join(parts)


class PlanroomValidationError(PlanroomError):
    """Input validation failed. Shown to the end user so they can fix it."""

    kind = "ValidationFailed"

    def __init__(self, message: str, **context: Any):
        self.field: Optional[str] = context.get("field")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        return d


class InvalidParentError(PlanroomValidationError):
    """parent_id / set_id does not resolve to a node of the same owner."""

    kind = "InvalidParent"

    def __init__(self, message: str, **context: Any):
        self.parent_id: Optional[str] = context.get("parent_id")
        super().__init__(message, **context)


class CrossOwnerViolationError(PlanroomValidationError):
    """Re-parent target belongs to a different owner."""

    kind = "CrossOwnerViolation"

    def __init__(self, message: str, **context: Any):
        self.parent_id: Optional[str] = context.get("parent_id")
        self.parent_owner_id: Optional[str] = context.get("parent_owner_id")
        super().__init__(message, **context)


class CycleDetectedError(PlanroomValidationError):
    """Accepting the parent would make the node its own ancestor."""

    kind = "CycleDetected"

    def __init__(self, message: str, **context: Any):
        self.parent_id: Optional[str] = context.get("parent_id")
        self.ancestor_chain: list = context.get("ancestor_chain", [])
        super().__init__(message, **context)


class EmptyNameError(PlanroomValidationError):
    kind = "EmptyName"


class HasChildrenError(PlanroomValidationError):
    """Delete rejected; children must be moved or deleted first."""

    kind = "HasChildren"

    def __init__(self, message: str, **context: Any):
        self.child_count: int = context.get("child_count", 0)
        super().__init__(message, **context)


class UploadRejectedError(PlanroomValidationError):
    kind = "UploadRejected"


class NotFoundError(PlanroomError):
    """Referenced node, document or revision does not exist."""

    kind = "NotFound"

    def __init__(self, message: str, **context: Any):
        self.entity: Optional[str] = context.get("entity")
        self.entity_id: Optional[str] = context.get("entity_id")
        super().__init__(message, **context)


class NoRevisionsError(PlanroomError):
    kind = "NoRevisions"


class PlanroomIntegrityError(PlanroomError):
    """
    Stored data violates an invariant the write path guarantees.
    Indicates a defect elsewhere, not a user mistake.
    """

    kind = "IntegrityViolation"


class CorruptHierarchyError(PlanroomIntegrityError):
    kind = "CorruptHierarchy"


class DanglingRevisionError(PlanroomIntegrityError):
    kind = "DanglingRevision"

    def __init__(self, message: str, **context: Any):
        self.revision_id: Optional[str] = context.get("revision_id")
        super().__init__(message, **context)


class MalformedRecordError(PlanroomIntegrityError):
    """A stored row holds values its record type rejects (unknown discipline, bad artifact_meta)."""

    kind = "MalformedRecord"

    def __init__(self, message: str, **context: Any):
        self.entity: Optional[str] = context.get("entity")
        super().__init__(message, **context)


class PlanroomRecordError(PlanroomError):
    """Backend failure while reading or writing rows. The transaction was rolled back."""

    kind = "RecordOperationFailed"

    def __init__(self, message: str, **context: Any):
        self.operation: Optional[str] = context.get("operation")
        super().__init__(message, **context)


class PlanroomConfigError(PlanroomError):
    """Configuration error — invalid planroom.yaml."""

    kind = "ConfigError"
