# src/publish/git.py - v1
"""Thin async wrapper over the git CLI for publishing a hosting branch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pagesflow.core.errors import CommandFailedError, PublishError

if TYPE_CHECKING:
    from pagesflow.core.process import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

# `git ls-remote --exit-code` returns 2 when no matching ref exists.
_LS_REMOTE_NO_MATCH = 2


class GitClient:
    """Git operations scoped to one working tree.

    Args:
        runner: Command runner.
        repo_dir: Working tree the commands operate on.
    """

    def __init__(self, runner: CommandRunner, repo_dir: Path) -> None:
        self._runner = runner
        self._repo_dir = repo_dir

    @property
    def repo_dir(self) -> Path:
        return self._repo_dir

    async def _git(self, *args: str, check: bool = True) -> CommandResult:
        try:
            return await self._runner.run(
                ["git", "-C", str(self._repo_dir), *args], check=check
            )
        except CommandFailedError as exc:
            raise PublishError(f"git {args[0]} failed: {exc.diagnostic}") from exc

    async def remote_url(self, remote: str = "origin") -> str:
        result = await self._git("remote", "get-url", remote)
        return result.stdout.strip()

    async def head_sha(self) -> str:
        result = await self._git("rev-parse", "HEAD", check=False)
        return result.stdout.strip() if result.ok else ""

    async def branch_exists(self, url: str, branch: str) -> bool:
        """Whether the remote has refs/heads/<branch>."""
        result = await self._git(
            "ls-remote", "--exit-code", "--heads", url, branch, check=False
        )
        if result.ok:
            return True
        if result.returncode == _LS_REMOTE_NO_MATCH:
            return False
        raise PublishError(
            f"git ls-remote {url} failed: {(result.stderr or result.stdout).strip()}"
        )

    async def clone_branch(self, url: str, branch: str) -> None:
        """Shallow, single-branch clone of url@branch into repo_dir."""
        self._repo_dir.parent.mkdir(parents=True, exist_ok=True)
        try:
            await self._runner.run(
                [
                    "git", "clone", "--quiet", "--depth", "1",
                    "--single-branch", "--branch", branch,
                    url, str(self._repo_dir),
                ]
            )
        except CommandFailedError as exc:
            raise PublishError(f"git clone {branch} failed: {exc.diagnostic}") from exc

    async def init_orphan(self, url: str, branch: str, remote: str = "origin") -> None:
        """Start an empty repository whose first commit will create branch."""
        self._repo_dir.mkdir(parents=True, exist_ok=True)
        await self._git("init", "--quiet")
        await self._git("checkout", "--quiet", "--orphan", branch)
        await self._git("remote", "add", remote, url)

    async def configure_identity(self, name: str, email: str) -> None:
        await self._git("config", "user.name", name)
        await self._git("config", "user.email", email)

    async def stage(self, pathspec: str = ".") -> None:
        await self._git("add", "--all", "--", pathspec)

    async def has_staged_changes(self) -> bool:
        result = await self._git("diff", "--cached", "--quiet", check=False)
        return not result.ok

    async def commit(self, message: str) -> str:
        await self._git("commit", "--quiet", "-m", message)
        return await self.head_sha()

    async def push(self, branch: str, remote: str = "origin") -> None:
        await self._git("push", "--quiet", remote, f"HEAD:refs/heads/{branch}")
