"""
FITDUEL Form Service Router

Endpoints for exercise catalogue, calibration and live training sessions.
Landmark frames arrive as JSON; raw video frames arrive as JPEG/PNG bytes
and only feed the anti-cheat validator of strict (duel) sessions.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from integrity_service.models import decode_image
from shared.utils import handle_exceptions, log_execution_time
from .models import (
    CalibrationData,
    ExerciseSessionHandler,
    ExerciseType,
    SessionState,
    get_calibration_store,
    get_session_handler,
    list_exercise_rules,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services():
    """Session handler and calibration store singletons."""
    return get_session_handler(), get_calibration_store()


# ============= Pydantic Models =============

class LandmarkPoint(BaseModel):
    x: float
    y: float
    z: Optional[float] = 0.0
    visibility: Optional[float] = None


class CalibrationRequest(BaseModel):
    subject_id: str
    exercise_id: str
    baseline_angles: Dict[str, float] = Field(default_factory=dict)
    baseline_distances: Dict[str, float] = Field(default_factory=dict)
    body_proportions: Dict[str, float] = Field(default_factory=dict)
    calibrated_at: Optional[datetime] = None


class StartSessionRequest(BaseModel):
    user_id: str
    exercise_type: str
    strict_mode: bool = False
    target_reps: Optional[int] = None
    target_time: Optional[float] = None


class LandmarksRequest(BaseModel):
    landmarks: List[Union[LandmarkPoint, List[float]]]
    timestamp_ms: Optional[float] = None


class ViolationRequest(BaseModel):
    type: str
    severity: str


def _landmark_payload(points: List[Any]) -> List[Any]:
    return [p.model_dump() if isinstance(p, BaseModel) else p for p in points]


def _raise_on_error(result: Dict[str, Any]) -> Dict[str, Any]:
    """Map handler error dicts onto HTTP errors."""
    error = result.get("error")
    if error == "Session not found":
        raise HTTPException(status_code=404, detail=error)
    if error:
        raise HTTPException(status_code=409, detail=error)
    return result


# ============= Catalogue & Calibration =============

@router.get("/exercises")
async def get_exercises(category: Optional[str] = None):
    """List supported exercises with their thresholds and targets."""
    exercises = [rule.to_dict() for rule in list_exercise_rules()]
    if category:
        exercises = [e for e in exercises if e["category"] == category]
    return {
        "exercises": exercises,
        "total": len(exercises),
        "categories": sorted({rule.category for rule in list_exercise_rules()}),
    }


@router.put("/calibration")
@handle_exceptions
async def put_calibration(request: CalibrationRequest):
    """Store (or replace) calibration for a subject/exercise pair."""
    _, store = get_services()
    exercise = ExerciseType.parse(request.exercise_id)

    kwargs = {}
    if request.calibrated_at is not None:
        kwargs["calibrated_at"] = request.calibrated_at
    data = CalibrationData(
        subject_id=request.subject_id,
        exercise_id=exercise.value,
        baseline_angles=request.baseline_angles,
        baseline_distances=request.baseline_distances,
        body_proportions=request.body_proportions,
        **kwargs,
    )
    store.set(data)
    return {"status": "stored", "calibration": data.to_dict()}


@router.get("/calibration/{subject_id}/{exercise_id}")
async def get_calibration(subject_id: str, exercise_id: str):
    _, store = get_services()
    data = store.get(subject_id, exercise_id)
    if data is None:
        raise HTTPException(status_code=404, detail="Calibration not found")
    return data.to_dict()


# ============= Session Endpoints =============

@router.post("/session/start")
@handle_exceptions
async def start_training_session(request: StartSessionRequest):
    """
    Create and start a training session.

    Strict sessions run anti-cheat validation; send raw frames to
    /session/{id}/frame or as binary WebSocket messages.
    """
    session_handler, _ = get_services()

    session = session_handler.create_session(
        user_id=request.user_id,
        exercise_type=request.exercise_type,
        strict_mode=request.strict_mode,
        target_reps=request.target_reps,
        target_time=request.target_time,
    )
    started = session_handler.start_session(session.session_id)

    return {
        **started,
        "user_id": request.user_id,
        "websocket_url": f"/api/training/ws/session/{session.session_id}",
    }


@router.post("/session/{session_id}/landmarks")
@log_execution_time
async def submit_landmarks(session_id: str, request: LandmarksRequest):
    """Analyze one landmark frame."""
    session_handler, _ = get_services()
    result = session_handler.process_landmarks(
        session_id, _landmark_payload(request.landmarks), request.timestamp_ms
    )
    return _raise_on_error(result)


@router.post("/session/{session_id}/frame")
async def submit_frame(
    session_id: str,
    frame: UploadFile = File(...),
    timestamp_ms: Optional[float] = Form(None),
    device: Optional[str] = Form(None),
):
    """Feed a raw JPEG/PNG frame to the session's trust validator."""
    session_handler, _ = get_services()
    if session_handler.get_session(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")

    image = decode_image(await frame.read())
    if image is None:
        raise HTTPException(status_code=400, detail="Could not decode image")

    device_info: Dict[str, Any] = {}
    if device:
        try:
            device_info = json.loads(device)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Device descriptor must be JSON")
        if not isinstance(device_info, dict):
            raise HTTPException(status_code=400, detail="Device descriptor must be a JSON object")

    result = session_handler.process_raw_frame(session_id, image, timestamp_ms, device_info)
    return _raise_on_error(result)


@router.post("/session/{session_id}/violation")
@handle_exceptions
async def submit_violation(session_id: str, request: ViolationRequest):
    """Report an anomaly detected by the client (tab switch, tampering)."""
    session_handler, _ = get_services()
    return _raise_on_error(session_handler.report_violation(session_id, request.type, request.severity))


@router.post("/session/{session_id}/pause")
async def pause_training_session(session_id: str):
    session_handler, _ = get_services()
    return _raise_on_error(session_handler.pause_session(session_id))


@router.post("/session/{session_id}/resume")
async def resume_training_session(session_id: str):
    session_handler, _ = get_services()
    return _raise_on_error(session_handler.resume_session(session_id))


@router.get("/session/{session_id}")
async def get_training_session(session_id: str):
    session_handler, _ = get_services()
    return _raise_on_error(session_handler.get_session_status(session_id))


@router.post("/session/{session_id}/complete")
async def complete_training_session(session_id: str):
    """Complete a session and get the performance summary and validation result."""
    session_handler, _ = get_services()
    return _raise_on_error(session_handler.complete_session(session_id))


@router.delete("/session/{session_id}")
async def delete_training_session(session_id: str):
    """Discard a session and its report. Open sessions are discarded without a summary."""
    session_handler, _ = get_services()
    if not session_handler.cleanup_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"success": True, "session_id": session_id, "message": "Session removed"}


# ============= WebSocket =============

async def _handle_text_message(
    websocket: WebSocket, session_handler: ExerciseSessionHandler, session_id: str, text: str
) -> bool:
    """Process one JSON message. Returns False when the session has ended."""
    message = json.loads(text)
    msg_type = message.get("type", "LANDMARKS")

    if msg_type == "LANDMARKS":
        result = session_handler.process_landmarks(
            session_id, message.get("landmarks") or [], message.get("timestamp_ms")
        )
        if "error" in result:
            await websocket.send_json({"type": "ERROR", "message": result["error"]})
            return True
        await websocket.send_json({"type": "FRAME_RESULT", **result})
        if result.get("session_completed"):
            await websocket.send_json({"type": "SESSION_COMPLETED", **result["result"]})
            return False
        return True

    if msg_type == "VIOLATION":
        result = session_handler.report_violation(session_id, message.get("violation"), message.get("severity"))
        await websocket.send_json({"type": "TRUST_UPDATE", **result})
        return True

    if msg_type == "COMPLETE":
        result = session_handler.complete_session(session_id)
        await websocket.send_json({"type": "SESSION_COMPLETED", **result})
        return False

    await websocket.send_json({"type": "ERROR", "message": f"Unknown message type: {msg_type}"})
    return True


@router.websocket("/ws/session/{session_id}")
async def training_session_stream(websocket: WebSocket, session_id: str):
    """
    Real-time training stream.

    Text messages carry JSON ({"type": "LANDMARKS", "landmarks": [...]},
    VIOLATION or COMPLETE); binary messages carry encoded camera frames.
    """
    await websocket.accept()
    session_handler, _ = get_services()

    session = session_handler.get_session(session_id)
    if not session:
        await websocket.send_json({
            "type": "ERROR",
            "message": f"Session {session_id} not found"
        })
        await websocket.close()
        return

    await websocket.send_json({
        "type": "SESSION_READY",
        "session_id": session_id,
        "exercise_type": session.exercise_type.value,
        "strict_mode": session.strict_mode,
    })

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            try:
                if message.get("text") is not None:
                    if not await _handle_text_message(websocket, session_handler, session_id, message["text"]):
                        break
                elif message.get("bytes") is not None:
                    image = decode_image(message["bytes"])
                    if image is None:
                        await websocket.send_json({"type": "ERROR", "message": "Could not decode image"})
                        continue
                    result = session_handler.process_raw_frame(session_id, image)
                    if result.get("trust"):
                        await websocket.send_json({"type": "TRUST_UPDATE", **result})
            except (ValueError, TypeError, AttributeError) as e:
                await websocket.send_json({
                    "type": "ERROR",
                    "message": str(e)
                })

        await websocket.close()

    except WebSocketDisconnect:
        logger.info(f"Session {session_id} disconnected")
        if session.state is SessionState.ACTIVE:
            session_handler.pause_session(session_id)
