# src/build/commands.py - v1
"""Build invocations for each build-tool phase and their command lines.

Web bundles go through the web CLI (`dx build`); the host-native prebuild
runs the application itself (`cargo run`) so it can render routes and write
the search index.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pagesflow.core.models import BuildInvocation

if TYPE_CHECKING:
    from pagesflow.config.settings import Settings


def phase_invocations(settings: Settings) -> dict[str, BuildInvocation]:
    """Map build-tool phase name to its invocation."""
    return {
        "base_build": BuildInvocation(
            target="web",
            release=settings.build_release,
            features=tuple(settings.web_features_list),
        ),
        "prebuild_index": BuildInvocation(
            target="native",
            release=settings.build_release,
            features=tuple(settings.prebuild_features_list),
        ),
        "final_build": BuildInvocation(
            target="web",
            release=settings.build_release,
            features=tuple(settings.search_features_list),
        ),
    }


def render_command(invocation: BuildInvocation, settings: Settings) -> list[str]:
    """Render an invocation into argv.

    A web invocation with features ("web",) renders as
    ``dx build --release --features web``.
    """
    if invocation.target == "web":
        args = [settings.web_build_tool, "build"]
    else:
        args = [settings.native_build_tool, "run"]

    if invocation.release:
        args.append("--release")
    if invocation.features:
        args.extend(["--features", invocation.feature_flag])
    return args
