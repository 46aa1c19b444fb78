"""Persisted records of the branch association ledger."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class StoredModel(BaseModel):
    """Base for records written to the key/value stores with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BranchAssociation(StoredModel):
    """Project-scoped binding between a ticket and a branch."""

    ticket_id: str
    branch_name: str
    last_updated: datetime
    is_auto_detected: bool = False
    repository: str | None = None
    repository_path: str | None = None


class GlobalBranchAssociation(StoredModel):
    """Cross-project binding; the repository fields are mandatory."""

    ticket_id: str
    branch_name: str
    repository: str
    repository_path: str
    last_updated: datetime
    is_auto_detected: bool = False

    def as_association(self) -> BranchAssociation:
        return BranchAssociation(
            ticket_id=self.ticket_id,
            branch_name=self.branch_name,
            last_updated=self.last_updated,
            is_auto_detected=self.is_auto_detected,
            repository=self.repository,
            repository_path=self.repository_path,
        )


class BranchHistoryEntry(StoredModel):
    branch_name: str
    associated_at: datetime
    last_used: datetime
    is_active: bool = False
    use_count: int = Field(default=1, ge=1)
    repository: str | None = None
    repository_path: str | None = None


class BranchHistory(StoredModel):
    """Every branch ever linked to one ticket, most recently used first."""

    ticket_id: str
    branches: list[BranchHistoryEntry] = Field(default_factory=list)

    def sort(self) -> None:
        self.branches.sort(key=lambda entry: entry.last_used, reverse=True)

    @property
    def active(self) -> BranchHistoryEntry | None:
        return next((entry for entry in self.branches if entry.is_active), None)


def load_records(raw: Any, model: type[ModelT], *, source: str) -> list[ModelT]:
    """Validate a stored array, skipping (and logging) entries that no longer parse."""

    if not isinstance(raw, list):
        if raw is not None:
            logger.warning("Ignoring non-list value in store", extra={"source": source})
        return []

    records: list[ModelT] = []
    for item in raw:
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping invalid stored record", extra={"source": source, "error": str(exc)})
    return records


def dump_records(records: Iterable[StoredModel]) -> list[dict[str, Any]]:
    return [record.to_store() for record in records]


__all__ = [
    "BranchAssociation",
    "BranchHistory",
    "BranchHistoryEntry",
    "GlobalBranchAssociation",
    "StoredModel",
    "dump_records",
    "load_records",
]
