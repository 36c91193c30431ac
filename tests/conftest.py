# tests/conftest.py - v1
"""Shared test fixtures for all unit and integration tests.

Provides a fake command runner that simulates the build tools on disk, a
sample application checkout, and settings pointed at temp directories.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from pagesflow.config.settings import Settings
from pagesflow.core.errors import CommandFailedError
from pagesflow.core.process import CommandResult

SEARCH_MARKER = 'data-search="enabled"'


# === FAKE TOOLS ===


class FakeRunner:
    """Stand-in for CommandRunner.

    `dx build` writes docs/index.html; the page embeds the search script only
    when docs/search_index.json already exists. `cargo run` (prebuild) renders
    one page per non-root route listed in routes.txt and writes the search
    index; it leaves docs/index.html to the web build.
    Everything else just succeeds.

    Attributes:
        calls: Every argv executed, in order.
        binaries: Names `which()` resolves.
        fail_on: Substring of the joined argv -> stderr of a failing exit.
        gates: Substring -> (reached, release) events; the command signals
            `reached` then waits for `release` before doing its work.
    """

    def __init__(self, binaries: tuple[str, ...] = ("rustup", "cargo", "cargo-binstall", "dx")):
        self.calls: list[list[str]] = []
        self.binaries = set(binaries)
        self.fail_on: dict[str, str] = {}
        self.gates: dict[str, tuple[asyncio.Event, asyncio.Event]] = {}

    def which(self, binary: str) -> str | None:
        return f"/usr/local/bin/{binary}" if binary in self.binaries else None

    def gate(self, needle: str) -> tuple[asyncio.Event, asyncio.Event]:
        pair = (asyncio.Event(), asyncio.Event())
        self.gates[needle] = pair
        return pair

    def ran(self, needle: str) -> bool:
        return any(needle in " ".join(c) for c in self.calls)

    async def run(self, args, cwd=None, env=None, check=True):
        self.calls.append(list(args))
        joined = " ".join(args)

        for needle, (reached, release) in list(self.gates.items()):
            if needle in joined:
                reached.set()
                await release.wait()

        for needle, stderr in self.fail_on.items():
            if needle in joined:
                result = CommandResult(args=list(args), returncode=1, stderr=stderr)
                if check:
                    raise CommandFailedError(f"{args[0]} exited with 1", result=result)
                return result

        if args[:2] == ["dx", "build"]:
            _fake_web_build(Path(cwd))
        elif args[:2] == ["cargo", "run"]:
            _fake_prebuild(Path(cwd))
        elif args[:3] == ["cargo", "binstall", "dioxus-cli"]:
            self.binaries.add("dx")
        return CommandResult(args=list(args), returncode=0)


def _fake_web_build(checkout: Path) -> None:
    docs = checkout / "docs"
    docs.mkdir(parents=True, exist_ok=True)
    search = ""
    if (docs / "search_index.json").exists():
        search = f'<script src="./search.js" {SEARCH_MARKER}></script>'
    (docs / "index.html").write_text(
        f'<!doctype html><html><head><script src="./app.js"></script>{search}'
        '</head><body><div id="main"></div></body></html>\n',
        encoding="utf-8",
    )
    (docs / "app.js").write_text("/* wasm glue */\n", encoding="utf-8")


def _fake_prebuild(checkout: Path) -> None:
    docs = checkout / "docs"
    docs.mkdir(parents=True, exist_ok=True)
    routes_file = checkout / "routes.txt"
    routes = []
    if routes_file.exists():
        routes = [r.strip() for r in routes_file.read_text().splitlines() if r.strip()]
    for route in routes:
        if route.strip("/") == "":
            continue
        page = docs / route.strip("/") / "index.html"
        page.parent.mkdir(parents=True, exist_ok=True)
        page.write_text(f"<html><body>{route}</body></html>\n", encoding="utf-8")
    (docs / "search_index.json").write_text(
        json.dumps({"routes": routes}, sort_keys=True), encoding="utf-8"
    )


# === FIXTURES ===


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def app_checkout(tmp_path: Path) -> Path:
    """Application checkout with two routes."""
    checkout = tmp_path / "app"
    checkout.mkdir()
    (checkout / "routes.txt").write_text("/\n/docs/intro\n", encoding="utf-8")
    return checkout


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from any .env, staging under tmp_path."""
    return Settings(
        _env_file=None,
        staging_root=tmp_path / "staging",
        tool_force_reinstall=False,
        search_marker=SEARCH_MARKER,
    )
