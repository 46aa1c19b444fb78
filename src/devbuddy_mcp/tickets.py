"""Ticket identifiers and the patterns used to find them in branch names."""

from __future__ import annotations

import re
from dataclasses import dataclass

# Whole-string ticket key, e.g. ``ENG-42``; matched case-insensitively.
TICKET_KEY_PATTERN = re.compile(r"^([A-Z]+)-(\d+)$", re.IGNORECASE)
# Ticket key embedded in a branch name; auto-detection only accepts upper case.
BRANCH_TICKET_PATTERN = re.compile(r"([A-Z]+)-(\d+)")
# Prefix inference during repository discovery needs at least two letters.
BRANCH_PREFIX_PATTERN = re.compile(r"([A-Z]{2,})-\d+", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class TicketId:
    """A validated ``PREFIX-NUMBER`` ticket key.

    The prefix is stored upper-cased; the number keeps its digits verbatim so
    ``ENG-007`` does not collapse into ``ENG-7``.
    """

    prefix: str
    number: str

    def __post_init__(self) -> None:
        if not self.prefix or not (self.prefix.isascii() and self.prefix.isalpha()):
            raise ValueError(f"Invalid ticket prefix '{self.prefix}'")
        if not self.number or not (self.number.isascii() and self.number.isdigit()):
            raise ValueError(f"Invalid ticket number '{self.number}'")
        object.__setattr__(self, "prefix", self.prefix.upper())

    def __str__(self) -> str:
        return f"{self.prefix}-{self.number}"

    @classmethod
    def parse(cls, value: "str | TicketId") -> "TicketId":
        if isinstance(value, TicketId):
            return value
        match = TICKET_KEY_PATTERN.match(value.strip())
        if match is None:
            raise ValueError(f"'{value}' is not a PREFIX-NUMBER ticket key")
        return cls(prefix=match.group(1), number=match.group(2))

    @classmethod
    def try_parse(cls, value: "str | TicketId | None") -> "TicketId | None":
        if value is None:
            return None
        try:
            return cls.parse(value)
        except ValueError:
            return None

    @classmethod
    def from_branch(cls, branch_name: str) -> "TicketId | None":
        """Extract the first upper-case ticket key from a branch name."""

        match = BRANCH_TICKET_PATTERN.search(branch_name)
        if match is None:
            return None
        return cls(prefix=match.group(1), number=match.group(2))


def prefixes_from_branches(branch_names: list[str]) -> list[str]:
    """Distinct upper-cased ticket prefixes found across branch names, in first-seen order."""

    found: dict[str, None] = {}
    for branch in branch_names:
        if branch.startswith("remotes/"):
            continue
        match = BRANCH_PREFIX_PATTERN.search(branch)
        if match:
            found.setdefault(match.group(1).upper(), None)
    return list(found)


__all__ = [
    "BRANCH_PREFIX_PATTERN",
    "BRANCH_TICKET_PATTERN",
    "TICKET_KEY_PATTERN",
    "TicketId",
    "prefixes_from_branches",
]
