# tests/unit/pipeline/test_session_state.py - v1
"""Tests for pipeline/state.py - session record and counters."""

from __future__ import annotations

from grandlibrary.pipeline.state import SessionState, TopicState, UnitState


class TestCurrentPhase:
    def test_fresh(self):
        assert SessionState().current_phase() == ("survey", "pending")

    def test_in_progress_wins(self):
        state = SessionState()
        state.phase("survey").status = "complete"
        state.phase("interview").status = "in_progress"
        assert state.current_phase() == ("interview", "in_progress")

    def test_last_complete(self):
        state = SessionState()
        state.phase("survey").status = "complete"
        state.phase("interview").status = "complete"
        assert state.current_phase() == ("interview", "complete")


class TestPhaseInvariant:
    def test_clean(self):
        state = SessionState()
        state.phase("survey").status = "in_progress"
        assert state.check_phase_invariant() == []

    def test_violation(self):
        state = SessionState()
        state.phase("draft").status = "in_progress"
        assert state.check_phase_invariant() == ["draft is in_progress while interview is pending"]


class TestCounters:
    def test_draft_counters(self):
        state = SessionState(units={
            "a": UnitState(wave=1, status="validated"),
            "b": UnitState(wave=2, status="generated"),
            "c": UnitState(wave=2, status="pending_retry"),
            "d": UnitState(wave=3),
        })
        state.refresh_draft_counters()
        draft = state.phase("draft")
        assert (draft.docs_total, draft.docs_generated, draft.docs_validated) == (4, 2, 1)
        assert (draft.waves_total, draft.current_wave) == (3, 2)

    def test_all_validated_points_at_last_wave(self):
        state = SessionState(units={"a": UnitState(wave=1, status="validated"),
                                    "b": UnitState(wave=2, status="validated")})
        state.refresh_draft_counters()
        assert state.phase("draft").current_wave == 2

    def test_interview_counters(self):
        state = SessionState(topics=[
            TopicState(slug="a", status="complete"),
            TopicState(slug="b", status="skipped"),
            TopicState(slug="c"),
        ])
        state.refresh_interview_counters()
        assert state.phase("interview").topics_completed == 2
        assert state.phase("interview").topics_total == 3


class TestUnitState:
    def test_done_and_display(self):
        unit = UnitState(wave=1, status="pending_retry")
        assert not unit.done
        assert unit.display_status == "pending-retry"
        assert UnitState(wave=1, status="generated").done

    def test_artifacts_unique(self):
        state = SessionState()
        state.record_artifact(".docs/a.md")
        state.record_artifact(".docs/a.md")
        assert state.artifacts == [".docs/a.md"]
