# src/toolchain/provisioner.py - v1
"""Toolchain provisioner: make the compiler targets and build CLI available.

Installs the configured rustup channel with both the host-native and the
browser (wasm) target, then installs each CLI tool with cargo-binstall.
Re-running is harmless: rustup and binstall both no-op on an installed item.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pagesflow.core.errors import CommandFailedError, ProvisioningError

if TYPE_CHECKING:
    from pagesflow.config.settings import Settings
    from pagesflow.core.process import CommandRunner

logger = logging.getLogger(__name__)


class ToolchainProvisioner:
    """Ensure required binaries resolve on PATH before any build runs.

    Args:
        settings: Provides channel, targets and crate:binary tool pairs.
        runner: Command runner; also used to resolve binaries.
    """

    def __init__(self, settings: Settings, runner: CommandRunner) -> None:
        self._settings = settings
        self._runner = runner

    @property
    def required_binaries(self) -> list[str]:
        binaries = [self._settings.native_build_tool]
        binaries.extend(binary for _, binary in self._settings.cli_tools_list)
        return list(dict.fromkeys(binaries))

    async def provision(self) -> list[str]:
        """Install toolchain targets and CLI tools.

        Returns:
            Resolved absolute paths of every required binary.

        Raises:
            ProvisioningError: Any install step failed or a binary is still
                missing afterwards. No degraded mode.
        """
        if self._runner.which("rustup") is None:
            raise ProvisioningError("rustup not found on PATH")

        await self._install_toolchain()
        for crate, binary in self._settings.cli_tools_list:
            await self._install_tool(crate, binary)

        resolved: list[str] = []
        missing: list[str] = []
        for binary in self.required_binaries:
            path = self._runner.which(binary)
            if path is None:
                missing.append(binary)
            else:
                resolved.append(path)
        if missing:
            raise ProvisioningError(
                f"binaries not resolvable after install: {', '.join(missing)}"
            )

        logger.info("Toolchain ready: %s", ", ".join(self.required_binaries))
        return resolved

    async def _install_toolchain(self) -> None:
        channel = self._settings.toolchain_channel
        targets = self._settings.toolchain_targets_list
        logger.info("Installing %s toolchain for %s", channel, ", ".join(targets))
        await self._exec(
            [
                "rustup", "toolchain", "install", channel,
                "--profile", "minimal",
                "--target", ",".join(targets),
            ]
        )

    async def _install_tool(self, crate: str, binary: str) -> None:
        force = self._settings.tool_force_reinstall
        if not force and self._runner.which(binary) is not None:
            logger.debug("%s already installed, skipping", binary)
            return

        if self._runner.which("cargo-binstall") is not None:
            args = ["cargo", "binstall", crate, "-y"]
        else:
            logger.warning("cargo-binstall missing, building %s from source", crate)
            args = ["cargo", "install", crate, "--locked"]
        if force:
            args.append("--force")
        logger.info("Installing %s", crate)
        await self._exec(args)

    async def _exec(self, args: list[str]) -> None:
        try:
            await self._runner.run(args)
        except CommandFailedError as exc:
            raise ProvisioningError(
                f"{' '.join(args)} failed: {exc.diagnostic}"
            ) from exc
