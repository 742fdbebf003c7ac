"""Tests for the exercise session handler."""

import pytest

from core.config import settings
from form_service.models import CalibrationData, CalibrationStore, ExerciseSessionHandler, SessionState

from conftest import StubInspector


@pytest.fixture
def store():
    return CalibrationStore()


@pytest.fixture
def handler(store, clock):
    return ExerciseSessionHandler(calibration_store=store, inspector_factory=StubInspector, clock=clock)


def start(handler, exercise="push_up", **kwargs):
    session = handler.create_session("athlete-1", exercise, **kwargs)
    assert handler.start_session(session.session_id)["status"] == "started"
    return session


def two_push_ups(handler, session_id, poses):
    responses = []
    sequence = [poses.push_up_top, poses.push_up_bottom, poses.push_up_top, poses.push_up_bottom, poses.push_up_top]
    for ts, pose in enumerate(sequence):
        landmarks = pose()
        responses.append(handler.process_landmarks(session_id, landmarks, timestamp_ms=ts * 1000))
    return responses


# ============================================================================
# Test: Creation
# ============================================================================

class TestCreateSession:

    def test_unknown_exercise(self, handler):
        with pytest.raises(ValueError):
            handler.create_session("athlete-1", "cartwheel")

    def test_invalid_targets(self, handler):
        with pytest.raises(ValueError):
            handler.create_session("athlete-1", "squat", target_reps=0)
        with pytest.raises(ValueError):
            handler.create_session("athlete-1", "plank", target_time=-5)

    def test_practice_has_no_validator(self, handler):
        session = handler.create_session("athlete-1", "squat")
        assert session.validator is None
        assert session.state is SessionState.CREATED

    def test_strict_creates_validator(self, handler):
        session = handler.create_session("athlete-1", "squat", strict_mode=True)
        assert session.validator is not None
        assert session.validator.exercise_id == "squat"

    def test_empty_injected_store_is_kept(self, handler, store):
        assert len(store) == 0
        assert handler.calibration_store is store

    def test_calibration_is_looked_up(self, handler, store):
        store.set(CalibrationData("athlete-1", "squat", baseline_angles={"knee_bottom": 100}))
        session = handler.create_session("athlete-1", "squat")
        assert session.analyzer.thresholds["depth_target"] == 100

    def test_start_twice_rejected(self, handler):
        session = start(handler)
        assert "error" in handler.start_session(session.session_id)


# ============================================================================
# Test: Frame delivery
# ============================================================================

class TestFrames:

    def test_practice_session_summary(self, handler, poses):
        session = start(handler)
        two_push_ups(handler, session.session_id, poses)
        result = handler.complete_session(session.session_id)
        assert result["validation"] is None
        assert result["summary"]["rep_count"] == 2
        assert result["summary"]["calories"] == pytest.approx(0.64)
        assert result["summary"]["perfect_reps"] == 2

    def test_target_reps_completes_session(self, handler, poses):
        session = start(handler, target_reps=2)
        responses = two_push_ups(handler, session.session_id, poses)
        assert responses[-1]["session_completed"] is True
        assert responses[-1]["result"]["summary"]["rep_count"] == 2
        assert session.state is SessionState.COMPLETED
        assert "session_completed" not in responses[2]

    def test_strict_session_reports_trust(self, handler, poses, raw_frame):
        session = start(handler, strict_mode=True)
        response = handler.process_landmarks(session.session_id, poses.push_up_top(), timestamp_ms=0)
        assert response["trust"]["trust_score"] == 100

        for i in range(20):
            accepted = handler.process_raw_frame(session.session_id, raw_frame.image, timestamp_ms=i * 33)
        assert accepted["status"] == "accepted"

        result = handler.complete_session(session.session_id)
        assert result["validation"]["is_valid"] is True
        assert result["validation"]["evidence"]["sampled_frames"] == 2

    def test_scripted_rep_timing_is_flagged(self, handler, poses):
        session = start(handler, strict_mode=True)
        sequence = [poses.push_up_top, poses.push_up_bottom] * 5 + [poses.push_up_top]
        for i, pose in enumerate(sequence):
            handler.process_landmarks(session.session_id, pose(), timestamp_ms=i * 300)

        validation = handler.complete_session(session.session_id)["validation"]
        assert {v["type"] for v in validation["violations"]} == {"IMPOSSIBLE_REP_RATE", "MECHANICAL_TIMING"}
        assert validation["trust_score"] == 80
        assert validation["evidence"]["trust_level"] == "verified"

    def test_human_rep_timing_is_clean(self, handler, poses):
        session = start(handler, strict_mode=True)
        two_push_ups(handler, session.session_id, poses)
        assert handler.complete_session(session.session_id)["validation"]["violations"] == []

    def test_raw_frames_skipped_in_practice(self, handler, raw_frame):
        session = start(handler)
        assert handler.process_raw_frame(session.session_id, raw_frame.image)["status"] == "skipped"

    def test_reported_violation_invalidates(self, handler):
        session = start(handler, strict_mode=True)
        response = handler.report_violation(session.session_id, "VIRTUAL_CAMERA", "critical")
        assert response["status"] == "recorded"
        assert handler.complete_session(session.session_id)["validation"]["is_valid"] is False

    def test_isometric_target_time(self, handler, poses):
        session = start(handler, "plank", target_time=2)
        responses = [
            handler.process_landmarks(session.session_id, poses.plank(), timestamp_ms=ts)
            for ts in (0, 1000, 2000)
        ]
        assert responses[1]["hold_seconds"] == 1.0
        assert responses[-1]["session_completed"] is True
        assert responses[-1]["result"]["summary"]["calories"] == pytest.approx(0.1)


# ============================================================================
# Test: Session control
# ============================================================================

class TestSessionControl:

    def test_pause_blocks_frames(self, handler, poses, clock):
        session = start(handler)
        assert handler.pause_session(session.session_id)["status"] == "paused"
        response = handler.process_landmarks(session.session_id, poses.push_up_top())
        assert response["status"] == "paused"

        clock.advance(10)
        assert handler.resume_session(session.session_id)["status"] == "resumed"
        clock.advance(3)
        assert handler.get_session_status(session.session_id)["duration_seconds"] == 3.0

    def test_resume_requires_pause(self, handler):
        session = start(handler)
        assert "error" in handler.resume_session(session.session_id)

    def test_complete_is_idempotent(self, handler, clock):
        session = start(handler, strict_mode=True)
        first = handler.complete_session(session.session_id)
        clock.advance(30)
        assert handler.complete_session(session.session_id) == first

    def test_unknown_session(self, handler):
        for call in (handler.start_session, handler.pause_session, handler.resume_session,
                     handler.complete_session, handler.get_session_status):
            assert call("nope")["error"] == "Session not found"
        assert handler.process_landmarks("nope", [])["error"] == "Session not found"

    def test_cleanup(self, handler):
        session = start(handler)
        assert handler.cleanup_session(session.session_id)
        assert handler.get_session(session.session_id) is None

    def test_completed_sessions_still_readable(self, handler):
        session = start(handler)
        handler.complete_session(session.session_id)
        assert handler.get_session_status(session.session_id)["state"] == "completed"
        assert handler.open_session_count() == 0

    def test_oldest_completed_sessions_evicted(self, handler, monkeypatch):
        monkeypatch.setattr(settings, "COMPLETED_SESSION_RETENTION", 2)
        sessions = [start(handler) for _ in range(4)]
        still_open = start(handler)
        for session in sessions:
            handler.complete_session(session.session_id)

        assert set(handler.active_sessions) == {
            sessions[2].session_id, sessions[3].session_id, still_open.session_id
        }
        assert handler.open_session_count() == 1
