# src/build/artifacts.py - v1
"""Named intermediate artifacts captured between build phases.

The two entry-page snapshots ("pre-search index" and "search-enabled index")
are copied out of the output directory as soon as they are produced, so the
hand-off checks compare against a recorded artifact instead of relying on
overwrite order inside the shared directory.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


def file_digest(path: Path) -> str:
    """SHA-256 hex digest of a file's bytes."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            h.update(block)
    return h.hexdigest()


@dataclass(frozen=True)
class Artifact:
    """A captured file and its content digest."""

    name: str
    path: Path
    digest: str

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


class ArtifactStore:
    """Directory of named snapshots for one run.

    Args:
        root: Directory owned by this run; created on first capture.
    """

    def __init__(self, root: Path) -> None:
        self._root = root
        self._artifacts: dict[str, Artifact] = {}

    @property
    def root(self) -> Path:
        return self._root

    @property
    def names(self) -> list[str]:
        return list(self._artifacts)

    def capture(self, name: str, source: Path) -> Artifact:
        """Copy source into the store under name, replacing any earlier capture.

        Raises:
            FileNotFoundError: If source does not exist.
        """
        if not source.is_file():
            raise FileNotFoundError(f"cannot capture {name!r}: {source} missing")
        self._root.mkdir(parents=True, exist_ok=True)
        dest = self._root / _slug(name)
        shutil.copyfile(source, dest)
        artifact = Artifact(name=name, path=dest, digest=file_digest(dest))
        self._artifacts[name] = artifact
        logger.debug(
            "Captured %s (%s)", name, artifact.digest[:12],
            extra={"artifact": name, "digest": artifact.digest},
        )
        return artifact

    def get(self, name: str) -> Artifact | None:
        return self._artifacts.get(name)

    def digest_of(self, name: str) -> str | None:
        artifact = self._artifacts.get(name)
        return artifact.digest if artifact else None


def _slug(name: str) -> str:
    return name.replace(" ", "_").replace("/", "_") + ".snapshot"
