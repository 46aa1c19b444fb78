"""Answer "where is this ticket's branch, and do I need to switch repositories?"."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Literal

from .associations import BranchAssociationManager
from .paths import same_path
from .registry import RepositoryRegistry
from .tickets import TicketId

logger = logging.getLogger(__name__)

LocateAction = Literal["checkout", "switch_repository", "associate", "unknown"]


@dataclass(slots=True)
class TicketLocation:
    ticket_id: str
    action: LocateAction
    branch_name: str | None = None
    repository_name: str | None = None
    repository_path: str | None = None
    is_current_workspace: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class TicketLocator:
    """Combines the association ledger with the repository registry.

    The ledger wins: a known association decides both the branch and its
    repository. Only tickets without an association fall back to prefix
    routing through the registry.
    """

    def __init__(self, manager: BranchAssociationManager, registry: RepositoryRegistry) -> None:
        self._manager = manager
        self._registry = registry

    async def locate(self, ticket_id: str | TicketId) -> TicketLocation:
        ticket = TicketId.try_parse(ticket_id)
        if ticket is None:
            return TicketLocation(ticket_id=str(ticket_id), action="unknown")
        key = str(ticket)
        workspace = self._manager.workspace_path

        association = self._manager.get_association(ticket)
        if association is not None:
            if association.repository_path and not same_path(association.repository_path, workspace):
                repo = await self._registry.get_repository_by_path(association.repository_path)
                location = TicketLocation(
                    ticket_id=key,
                    action="switch_repository",
                    branch_name=association.branch_name,
                    repository_name=repo.name if repo else association.repository,
                    repository_path=association.repository_path,
                )
            else:
                current = await self._registry.get_current_repository()
                location = TicketLocation(
                    ticket_id=key,
                    action="checkout",
                    branch_name=association.branch_name,
                    repository_name=current.name if current else self._manager.repository_id,
                    repository_path=workspace,
                    is_current_workspace=True,
                )
            logger.debug("Located ticket via association", extra={"ticket_id": key, "action": location.action})
            return location

        comparison = await self._registry.is_ticket_in_different_repo(ticket)
        ticket_repo = comparison.ticket_repo
        if ticket_repo is None:
            return TicketLocation(ticket_id=key, action="unknown")

        location = TicketLocation(
            ticket_id=key,
            action="switch_repository" if comparison.is_different else "associate",
            repository_name=ticket_repo.name,
            repository_path=ticket_repo.path,
            is_current_workspace=same_path(ticket_repo.path, workspace),
        )
        logger.debug("Located ticket via registry", extra={"ticket_id": key, "action": location.action})
        return location


__all__ = ["LocateAction", "TicketLocation", "TicketLocator"]
