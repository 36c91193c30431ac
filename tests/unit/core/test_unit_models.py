# tests/unit/core/test_unit_models.py - v1
"""Tests for core/models.py and core/errors.py.

Also covers version.py import validation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pagesflow.core.errors import (
    BuildError,
    CommandFailedError,
    HandoffError,
    RunCancelledError,
)
from pagesflow.core.models import BuildInvocation, PhaseResult, PublishResult
from pagesflow.core.process import CommandResult
from pagesflow.version import __version__


# === VERSION ===


def test_version():
    assert __version__.count(".") == 2


# === MODELS ===


class TestBuildInvocation:
    def test_feature_flag(self):
        inv = BuildInvocation(target="web", features=("web", "search"))
        assert inv.feature_flag == "web,search"

    def test_frozen(self):
        inv = BuildInvocation(target="native")
        with pytest.raises(ValidationError):
            inv.release = False  # type: ignore[misc]

    def test_unknown_target(self):
        with pytest.raises(ValidationError):
            BuildInvocation(target="ios")  # type: ignore[arg-type]


class TestPhaseResult:
    def test_defaults(self):
        r = PhaseResult(name="base_build", status="succeeded")
        assert r.duration_ms == 0
        assert r.digest is None

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            PhaseResult(name="x", status="running")  # type: ignore[arg-type]


def test_publish_result_defaults():
    r = PublishResult(branch="gh-pages", target_folder=".")
    assert r.commit is None
    assert r.pushed is False


# === ERRORS ===


class TestErrors:
    def test_build_error_phase(self):
        err = BuildError("final_build", "exited with 101")
        assert err.phase == "final_build"
        assert str(err) == "final_build: exited with 101"

    def test_handoff_is_build_error(self):
        err = HandoffError("404.html differs")
        assert isinstance(err, BuildError)
        assert err.phase == "handoff"

    def test_diagnostic_prefers_stderr(self):
        result = CommandResult(args=["dx"], returncode=1, stdout="out", stderr=" err \n")
        assert CommandFailedError("dx exited", result).diagnostic == "err"

    def test_diagnostic_without_result(self):
        assert CommandFailedError("command not found: dx").diagnostic == "command not found: dx"

    def test_cancelled_message(self):
        err = RunCancelledError("a", superseded_by="b")
        assert "superseded by b" in str(err)
