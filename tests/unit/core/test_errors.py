# tests/unit/core/test_errors.py - v1
"""Tests for core/errors.py - categories and remedial commands."""

from __future__ import annotations

from grandlibrary.core.errors import (
    BriefOverBudget,
    ContextOverflow,
    GrandLibraryError,
    MissingArtifact,
    NoSessionFound,
    PhaseNotReady,
    UnitFailed,
    WaveAwaitingApproval,
    WorkerError,
    WorkerOutputError,
)


class TestCategories:
    def test_setup(self):
        assert NoSessionFound(".grand-library/STATE.json").category == "setup"
        assert PhaseNotReady("draft", "interview", "in_progress").category == "setup"
        assert WaveAwaitingApproval(1).category == "setup"

    def test_budget(self):
        assert ContextOverflow("docs/a", 900, 1200, 1000).category == "budget"
        assert BriefOverBudget(600, 500).category == "budget"

    def test_worker(self):
        assert WorkerOutputError("bad json").category == "worker"
        assert isinstance(UnitFailed("a", 3, "503", "grandlib draft --doc a"), WorkerError)

    def test_default_internal(self):
        assert GrandLibraryError("boom").category == "internal"


class TestRemedies:
    def test_phase_not_ready_names_missing_phase(self):
        err = PhaseNotReady("draft", "interview", "in_progress")
        assert "interview" in err.message
        assert err.remedy == "grandlib interview --resume"

    def test_no_session_points_to_survey(self):
        assert NoSessionFound("x").remedy.startswith("grandlib survey")

    def test_missing_artifact(self):
        err = MissingArtifact(".docs/DOC_MANIFEST.md", "grandlib survey")
        assert ".docs/DOC_MANIFEST.md" in str(err)
        assert err.remedy == "grandlib survey"

    def test_overflow_names_fragment(self):
        err = ContextOverflow("docs/api", 900, 1200, 1000)
        assert "docs/api" in err.message
        assert "docs/api" in err.remedy

    def test_unit_failed(self):
        err = UnitFailed("api", 3, "503 server error", "grandlib draft --doc api")
        assert err.unit == "api"
        assert "after 3 attempts" in err.message
