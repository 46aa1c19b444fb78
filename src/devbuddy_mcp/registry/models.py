"""Repository registry models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _normalize_prefixes(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        raise ValueError("ticketPrefixes must be a list of strings")
    seen: dict[str, None] = {}
    for item in value:
        prefix = str(item).strip().upper()
        if prefix:
            seen.setdefault(prefix, None)
    return list(seen)


class RepositoryInfo(_CamelModel):
    """A repository the registry can route ticket prefixes to.

    ``path`` is the ownership key: records with the same resolved path are the
    same repository whatever their ``id``.
    """

    id: str = Field(..., description="Registry identifier, e.g. 'backend-api'.")
    name: str = Field(..., description="Display name.")
    path: str = Field(..., description="Absolute path of the working tree.")
    remote: str | None = Field(default=None, description="Origin remote URL, when known.")
    ticket_prefixes: list[str] = Field(
        default_factory=list,
        description="Upper-cased ticket prefixes routed to this repository.",
    )
    last_accessed: datetime | None = None
    is_auto_discovered: bool = False

    @field_validator("id", "name", "path")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Repository id, name and path must not be empty")
        return normalized

    @field_validator("ticket_prefixes", mode="before")
    @classmethod
    def _prefixes(cls, value: Any):  # type: ignore[override]
        return _normalize_prefixes(value)

    def owns_prefix(self, prefix: str) -> bool:
        return prefix.upper() in self.ticket_prefixes

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ManifestEntry(_CamelModel):
    path: str
    name: str | None = None
    ticket_prefixes: list[str] = Field(default_factory=list)
    remote: str | None = None

    @field_validator("ticket_prefixes", mode="before")
    @classmethod
    def _prefixes(cls, value: Any):  # type: ignore[override]
        return _normalize_prefixes(value)


class ManifestFile(_CamelModel):
    """Shape of ``<parent>/.devbuddy/repos.json``."""

    repositories: dict[str, ManifestEntry] = Field(default_factory=dict)


class RepositoryRegistryConfig(_CamelModel):
    """Merged view of settings, cross-project store and manifest."""

    repositories: dict[str, RepositoryInfo] = Field(default_factory=dict)
    auto_discover: bool = True
    parent_dir: str | None = None
    multi_repo_enabled: bool = False
    manifest_path: str | None = None


@dataclass(slots=True)
class RepositoryComparison:
    is_different: bool
    current_repo: RepositoryInfo | None = None
    ticket_repo: RepositoryInfo | None = None


@dataclass(slots=True)
class DiscoveryResult:
    discovered: list[RepositoryInfo] = field(default_factory=list)
    already_registered: list[str] = field(default_factory=list)


__all__ = [
    "DiscoveryResult",
    "ManifestEntry",
    "ManifestFile",
    "RepositoryComparison",
    "RepositoryInfo",
    "RepositoryRegistryConfig",
]
