from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class AuditEntry:
    """One row for the hosted ``log_user_action`` audit procedure."""

    action: str
    resource_type: str
    resource_id: str | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    company_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AbstractAuditSink(ABC):
    """Interface for audit log destinations."""

    @abstractmethod
    async def write(self, entry: AuditEntry) -> None:
        """Persist one audit entry.

        Args:
            entry: Entry to store.

        Raises:
            AuditSinkError: If the destination rejected or failed the write.
        """
        ...
