"""Decision points of the checkout protocol."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Protocol

logger = logging.getLogger(__name__)

NoticeLevel = Literal["info", "warning", "error"]


class UncommittedAction(str, Enum):
    """Answers to the uncommitted-changes question."""

    STASH = "stash"
    FORCE = "force"
    CANCEL = "cancel"

    @property
    def label(self) -> str:
        return {
            UncommittedAction.STASH: "Stash & Checkout",
            UncommittedAction.FORCE: "Checkout Anyway",
            UncommittedAction.CANCEL: "Cancel",
        }[self]


class Prompter(Protocol):
    """How the manager asks the user and reports back to them."""

    async def confirm_stale_removal(self, message: str) -> bool:
        ...

    async def choose_uncommitted_action(self, message: str, *, detail: str) -> UncommittedAction | None:
        ...

    def notify(self, level: NoticeLevel, message: str) -> None:
        ...


@dataclass
class PresetPrompter:
    """Answers every question with a decision fixed up front.

    Used by non-interactive callers (MCP tools, the diagnostics CLI) that
    collect the user's intent as arguments before running the protocol.
    """

    remove_stale: bool = False
    uncommitted_action: UncommittedAction = UncommittedAction.CANCEL
    questions: list[str] = field(default_factory=list)
    notices: list[tuple[str, str]] = field(default_factory=list)

    async def confirm_stale_removal(self, message: str) -> bool:
        self.questions.append(message)
        return self.remove_stale

    async def choose_uncommitted_action(self, message: str, *, detail: str) -> UncommittedAction | None:
        self.questions.append(f"{message}\n\n{detail}")
        return self.uncommitted_action

    def notify(self, level: NoticeLevel, message: str) -> None:
        self.notices.append((level, message))
        log = {"info": logger.info, "warning": logger.warning, "error": logger.error}[level]
        log(message)


__all__ = ["NoticeLevel", "PresetPrompter", "Prompter", "UncommittedAction"]
