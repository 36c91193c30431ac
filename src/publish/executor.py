# src/publish/executor.py - v1
"""Deploy executor: non-destructive publish of a built site to a hosting branch.

The source tree is merged onto the branch as a file-level set union: source
files overwrite their counterparts, everything else already on the branch
stays. There is no clean mode.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from pagesflow.core.errors import PublishError
from pagesflow.core.models import PublishResult
from pagesflow.publish.git import GitClient

if TYPE_CHECKING:
    from pagesflow.config.settings import Settings
    from pagesflow.core.process import CommandRunner

logger = logging.getLogger(__name__)

_SKIP_DIRS = frozenset({".git"})


def merge_tree(source: Path, dest: Path) -> tuple[int, int]:
    """Copy every file under source into dest without deleting anything.

    Args:
        source: Directory to publish.
        dest: Target folder; created if missing.

    Returns:
        (files written, pre-existing dest files left untouched).
    """
    dest.mkdir(parents=True, exist_ok=True)
    written: set[Path] = set()

    for src in sorted(source.rglob("*")):
        rel = src.relative_to(source)
        if _SKIP_DIRS.intersection(rel.parts) or not src.is_file():
            continue
        target = dest / rel
        if target.is_dir():
            raise PublishError(f"cannot overwrite directory {target} with a file")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, target)
        written.add(rel)

    preserved = sum(
        1
        for path in dest.rglob("*")
        if path.is_file()
        and not _SKIP_DIRS.intersection(path.relative_to(dest).parts)
        and path.relative_to(dest) not in written
    )
    return len(written), preserved


def resolve_target(repo_root: Path, target_folder: str) -> Path:
    """Resolve target_folder under repo_root, refusing anything that escapes it."""
    rel = PurePosixPath(target_folder)
    if rel.is_absolute() or ".." in rel.parts:
        raise PublishError(f"target folder escapes branch root: {target_folder!r}")
    return repo_root.joinpath(*rel.parts)


class DeployExecutor:
    """Publish a directory onto the configured hosting branch.

    Args:
        settings: Branch, target folder, remote and commit identity.
        runner: Command runner for git.
        scratch_root: Per-run scratch directory for the branch clone.
    """

    def __init__(
        self,
        settings: Settings,
        runner: CommandRunner,
        scratch_root: Path,
    ) -> None:
        self._settings = settings
        self._runner = runner
        self._scratch_root = scratch_root

    async def publish(
        self,
        source: Path,
        source_repo: Path,
        sha: str = "",
    ) -> PublishResult:
        """Merge source onto the hosting branch and push.

        Args:
            source: Built site directory (read-only from here on).
            source_repo: Checkout whose remote hosts the branch.
            sha: Source commit, for the commit message.

        Returns:
            PublishResult describing the write.

        Raises:
            PublishError: Any git/network/auth failure. Nothing is pushed.
        """
        settings = self._settings
        branch = settings.publish_branch
        if not source.is_dir():
            raise PublishError(f"nothing to publish: {source} is not a directory")

        url = settings.publish_repo_url
        source_git = GitClient(self._runner, source_repo)
        if not url:
            url = await source_git.remote_url(settings.git_remote)
        if not sha:
            sha = await source_git.head_sha()

        clone_dir = self._scratch_root / "branch"
        if clone_dir.exists():
            shutil.rmtree(clone_dir)
        git = GitClient(self._runner, clone_dir)

        try:
            created = not await git.branch_exists(url, branch)
            if created:
                logger.info("Branch %s absent on remote, creating it", branch)
                await git.init_orphan(url, branch)
            else:
                await git.clone_branch(url, branch)
            await git.configure_identity(settings.git_user_name, settings.git_user_email)

            target = resolve_target(clone_dir, settings.target_folder)
            written, preserved = merge_tree(source, target)
            logger.info(
                "Merged %d files into %s:%s (%d existing kept)",
                written, branch, settings.target_folder, preserved,
            )

            result = PublishResult(
                branch=branch,
                target_folder=settings.target_folder,
                files_written=written,
                files_preserved=preserved,
                created_branch=created,
            )

            await git.stage(settings.target_folder)
            if not await git.has_staged_changes():
                logger.info("No changes to publish on %s", branch)
                return result

            message = settings.commit_message.format(branch=branch, sha=sha or "unknown")
            result.commit = await git.commit(message)
            await git.push(branch)
            result.pushed = True
            logger.info("Published %s to %s", result.commit[:12], branch)
            return result
        except OSError as exc:
            raise PublishError(f"publish failed: {exc}") from exc
        finally:
            shutil.rmtree(clone_dir, ignore_errors=True)
