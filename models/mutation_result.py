"""
Mutation result data models.

Every write through the MutationGateway returns a MutationResult. The
write's effect on local state still arrives only through the next
collection snapshot; the result just says whether the store accepted it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional


class MutationOperation(Enum):
    """Kind of write sent to the store."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class MutationResult:
    """
    Outcome of one store write.

    Attributes:
        ok: True if the store acknowledged the write
        operation: create, update or delete
        collection: Target collection name
        document_id: New id for creates, target id otherwise
        error: Error message when ok is False
        error_type: Exception class name when ok is False (for API status mapping)
    """

    ok: bool
    operation: MutationOperation
    collection: str
    document_id: Optional[str] = None
    error: str = ""
    error_type: str = ""
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def success(
        cls,
        operation: MutationOperation,
        collection: str,
        document_id: Optional[str] = None
    ) -> "MutationResult":
        return cls(ok=True, operation=operation, collection=collection, document_id=document_id)

    @classmethod
    def failure(
        cls,
        operation: MutationOperation,
        collection: str,
        error: Exception,
        document_id: Optional[str] = None
    ) -> "MutationResult":
        """Create a failed result from the exception that caused it."""
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        return cls(
            ok=False,
            operation=operation,
            collection=collection,
            document_id=document_id,
            error=message,
            error_type=type(error).__name__,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        result = {
            "ok": self.ok,
            "operation": self.operation.value,
            "collection": self.collection,
            "id": self.document_id,
        }
        if not self.ok:
            result["error"] = self.error
            result["error_type"] = self.error_type
        return result
