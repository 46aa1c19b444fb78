"""Git command-line port."""

from .runner import (
    FakeGit,
    GitCli,
    GitCommandError,
    GitError,
    GitNotFoundError,
    GitPort,
    GitResult,
    GitTimeoutError,
    RenamedFile,
    WorkingTreeStatus,
    parse_porcelain,
)

__all__ = [
    "FakeGit",
    "GitCli",
    "GitCommandError",
    "GitError",
    "GitNotFoundError",
    "GitPort",
    "GitResult",
    "GitTimeoutError",
    "RenamedFile",
    "WorkingTreeStatus",
    "parse_porcelain",
]
