"""Async adapter for the git command line."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Protocol

from .utils import sanitize_environment

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class GitError(RuntimeError):
    """Base class for git port errors."""


class GitNotFoundError(GitError):
    """Raised when the git executable cannot be located."""


class GitCommandError(GitError):
    """Raised when a git command exits with a non-zero status."""

    def __init__(self, args: Iterable[str], returncode: int, stderr: str) -> None:
        self.args_list = tuple(args)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit code {returncode}"
        super().__init__(f"git {' '.join(self.args_list)} failed: {detail}")


class GitTimeoutError(GitCommandError):
    """Raised when a git command does not finish within the configured timeout."""

    def __init__(self, args: Iterable[str], timeout: float) -> None:
        super().__init__(args, -1, f"timed out after {timeout:g}s")
        self.timeout = timeout


@dataclass(slots=True)
class RenamedFile:
    source: str
    target: str


@dataclass(slots=True)
class WorkingTreeStatus:
    """Summary of ``git status`` for the uncommitted-changes check."""

    staged: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    renamed: list[RenamedFile] = field(default_factory=list)
    conflicted: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        # Untracked files alone never block a checkout.
        return bool(
            self.staged or self.modified or self.created or self.deleted or self.renamed or self.conflicted
        )

    @property
    def changed_files(self) -> list[str]:
        files = [*self.modified, *self.created, *self.deleted, *(item.source for item in self.renamed)]
        return list(dict.fromkeys(files))

    def summary(self) -> str:
        parts = []
        for label, items in (
            ("staged", self.staged),
            ("modified", self.modified),
            ("created", self.created),
            ("deleted", self.deleted),
            ("renamed", self.renamed),
            ("conflicted", self.conflicted),
        ):
            if items:
                parts.append(f"{len(items)} {label}")
        return ", ".join(parts)


def parse_porcelain(output: str) -> WorkingTreeStatus:
    """Parse ``git status --porcelain=v1 -z`` output."""

    status = WorkingTreeStatus()
    fields = output.split("\0")
    index = 0
    while index < len(fields):
        entry = fields[index]
        index += 1
        if len(entry) < 4:
            continue
        x, y, path = entry[0], entry[1], entry[3:]

        if x == "?":
            status.untracked.append(path)
            continue
        if x == "!":
            continue
        if "U" in (x, y) or (x, y) in {("A", "A"), ("D", "D")}:
            status.conflicted.append(path)
            continue

        if x in "RC":
            source = fields[index] if index < len(fields) else ""
            index += 1
            if x == "R":
                status.renamed.append(RenamedFile(source=source, target=path))
            else:
                status.created.append(path)
        elif x == "A":
            status.created.append(path)

        if x not in " ?!":
            status.staged.append(path)
        if "M" in (x, y):
            status.modified.append(path)
        if "D" in (x, y):
            status.deleted.append(path)
    return status


class GitPort(Protocol):
    """Minimal git capability consumed by the registry and the association manager."""

    @property
    def repo_path(self) -> Path:
        ...

    async def is_repository(self) -> bool:
        ...

    async def current_branch(self) -> str:
        ...

    async def list_local_branches(self) -> list[str]:
        ...

    async def branch_exists(self, name: str) -> bool:
        ...

    async def working_tree_status(self) -> WorkingTreeStatus:
        ...

    async def checkout(self, name: str) -> None:
        ...

    async def stash_push(self, message: str) -> None:
        ...

    async def remote_url(self, name: str = "origin") -> str | None:
        ...


@dataclass(slots=True)
class GitResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitCli:
    """Execute git commands asynchronously inside one repository."""

    def __init__(
        self,
        repo_path: Path,
        *,
        executable: Path | str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._repo_path = Path(repo_path)
        self._executable_path = self._resolve_executable(executable)
        self._timeout = timeout

    @staticmethod
    def _resolve_executable(explicit: Path | str | None) -> Path | None:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        # A missing git surfaces on first use so callers can degrade per call.
        return Path(binary) if binary else None

    @property
    def repo_path(self) -> Path:
        return self._repo_path

    @property
    def executable(self) -> Path | None:
        return self._executable_path

    async def _invoke(self, *args: str) -> GitResult:
        if self._executable_path is None:
            raise GitNotFoundError("git executable not found on PATH")

        cmd = [str(self._executable_path), *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self._repo_path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=sanitize_environment(),
            )
        except OSError as exc:
            raise GitCommandError(args, -1, str(exc)) from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), self._timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            logger.error(
                "Git command timed out",
                extra={"repo_path": str(self._repo_path), "git_args": list(args), "timeout": self._timeout},
            )
            raise GitTimeoutError(args, self._timeout) from exc

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return GitResult(args=tuple(args), returncode=process.returncode, stdout=stdout, stderr=stderr)

    async def _run(self, *args: str) -> GitResult:
        result = await self._invoke(*args)
        if not result.ok:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result

    async def is_repository(self) -> bool:
        try:
            result = await self._invoke("rev-parse", "--is-inside-work-tree")
        except GitCommandError:
            return False
        return result.ok and result.stdout.strip() == "true"

    async def current_branch(self) -> str:
        result = await self._run("rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip()

    async def list_local_branches(self) -> list[str]:
        result = await self._run("for-each-ref", "--format=%(refname:short)", "refs/heads")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def branch_exists(self, name: str) -> bool:
        result = await self._invoke("show-ref", "--verify", "--quiet", f"refs/heads/{name}")
        if result.returncode in (0, 1):
            return result.ok
        raise GitCommandError(result.args, result.returncode, result.stderr)

    async def working_tree_status(self) -> WorkingTreeStatus:
        result = await self._run("status", "--porcelain=v1", "-z")
        return parse_porcelain(result.stdout)

    async def checkout(self, name: str) -> None:
        await self._run("checkout", name)

    async def stash_push(self, message: str) -> None:
        await self._run("stash", "push", "--include-untracked", "-m", message)

    async def remote_url(self, name: str = "origin") -> str | None:
        result = await self._invoke("remote", "get-url", name)
        if not result.ok:
            return None
        return result.stdout.strip() or None


class FakeGit:
    """Test double that scripts a repository's branches, status and failures."""

    def __init__(
        self,
        repo_path: Path | str = "/tmp/fake-repo",
        *,
        branches: Iterable[str] = ("main",),
        current: str | None = None,
        status: WorkingTreeStatus | None = None,
        remotes: dict[str, str] | None = None,
        failures: dict[str, GitError] | None = None,
        is_repo: bool = True,
    ) -> None:
        self._repo_path = Path(repo_path)
        self.branches = list(branches)
        self.current = current or (self.branches[0] if self.branches else "HEAD")
        self.status = status or WorkingTreeStatus()
        self.remotes = dict(remotes or {})
        self.failures = dict(failures or {})
        self.is_repo = is_repo
        self.stashes: list[str] = []
        self.calls: list[tuple[str, ...]] = []

    @property
    def repo_path(self) -> Path:
        return self._repo_path

    def _record(self, *call: str) -> None:
        self.calls.append(call)
        failure = self.failures.get(call[0])
        if failure is not None:
            raise failure

    async def is_repository(self) -> bool:
        self._record("is_repository")
        return self.is_repo

    async def current_branch(self) -> str:
        self._record("current_branch")
        return self.current

    async def list_local_branches(self) -> list[str]:
        self._record("list_local_branches")
        return list(self.branches)

    async def branch_exists(self, name: str) -> bool:
        self._record("branch_exists", name)
        return name in self.branches

    async def working_tree_status(self) -> WorkingTreeStatus:
        self._record("working_tree_status")
        return self.status

    async def checkout(self, name: str) -> None:
        self._record("checkout", name)
        if name not in self.branches:
            raise GitCommandError(("checkout", name), 1, f"error: pathspec '{name}' did not match")
        self.current = name

    async def stash_push(self, message: str) -> None:
        self._record("stash_push", message)
        self.stashes.append(message)
        self.status = WorkingTreeStatus()

    async def remote_url(self, name: str = "origin") -> str | None:
        self._record("remote_url", name)
        return self.remotes.get(name)
