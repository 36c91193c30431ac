# tests/integration/conftest.py - v1
"""Shared fixtures for integration tests against a real git binary.

Each test gets a bare "remote" repository and an application checkout cloned
from it, both under tmp_path. Tests are skipped when git is not installed.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from pagesflow.core.process import CommandRunner
from tests.conftest import FakeRunner

GIT_ENV = {
    "GIT_AUTHOR_NAME": "test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
}

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def pytest_configure(config):
    config.addinivalue_line("markers", "git: marks tests requiring a git binary")


def git(cwd: Path, *args: str) -> str:
    """Run git synchronously for fixture setup and assertions."""
    import os

    env = dict(os.environ)
    env.update(GIT_ENV)
    out = subprocess.run(
        ["git", *args], cwd=cwd, env=env, check=True, capture_output=True, text=True
    )
    return out.stdout.strip()


class HybridRunner(FakeRunner):
    """Fake build tools, real git."""

    def __init__(self) -> None:
        super().__init__()
        self._real = CommandRunner(env=GIT_ENV)

    async def run(self, args, cwd=None, env=None, check=True):
        if args and args[0] == "git":
            self.calls.append(list(args))
            return await self._real.run(args, cwd=cwd, env=env, check=check)
        return await super().run(args, cwd=cwd, env=env, check=check)


@pytest.fixture
def remote_repo(tmp_path: Path) -> Path:
    """Bare repository with a main branch holding the app source."""
    remote = tmp_path / "remote.git"
    seed = tmp_path / "seed"
    remote.mkdir()
    git(remote, "init", "--quiet", "--bare", "--initial-branch=main")
    seed.mkdir()
    git(seed, "init", "--quiet", "--initial-branch=main")
    (seed / "routes.txt").write_text("/\n/blog\n")
    (seed / "Cargo.toml").write_text('[package]\nname = "site"\n')
    git(seed, "add", ".")
    git(seed, "commit", "--quiet", "-m", "initial")
    git(seed, "remote", "add", "origin", str(remote))
    git(seed, "push", "--quiet", "origin", "main")
    return remote


@pytest.fixture
def checkout(tmp_path: Path, remote_repo: Path) -> Path:
    """Fresh clone of main, standing in for the CI checkout."""
    dest = tmp_path / "checkout"
    git(tmp_path, "clone", "--quiet", "--branch", "main", str(remote_repo), str(dest))
    return dest


def seed_pages_branch(tmp_path: Path, remote: Path, files: dict[str, str]) -> None:
    """Create gh-pages on the remote with the given files."""
    work = tmp_path / "pages-seed"
    work.mkdir()
    git(work, "init", "--quiet", "--initial-branch=gh-pages")
    for rel, content in files.items():
        p = work / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content)
    git(work, "add", ".")
    git(work, "commit", "--quiet", "-m", "seed pages")
    git(work, "push", "--quiet", str(remote), "gh-pages")


def read_branch_file(remote: Path, branch: str, rel: str) -> str:
    return git(remote, "show", f"{branch}:{rel}")


def list_branch_files(remote: Path, branch: str) -> set[str]:
    return set(git(remote, "ls-tree", "-r", "--name-only", branch).splitlines())
