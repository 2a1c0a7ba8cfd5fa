# services/quiz_service/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from auth_middleware import require_auth

from . import problems as gen
from .badges import badge_catalog
from .feedback import get_feedback
from .models import Difficulty, Operation
from .session import Phase, SessionStateError

logger = logging.getLogger(__name__)

quiz_bp = Blueprint("quiz_bp", __name__)

MAX_QUESTIONS = 50
MIN_DURATION, MAX_DURATION = 10, 3600


def _services():
    return current_app.extensions["math_genius"]


def _finished_payload(finished):
    payload = {"result": finished.result.to_dict()}
    payload.update(finished.outcome.to_dict())
    return payload


def _no_session():
    return jsonify({"ok": False, "error": "No active quiz. Call /start first."}), 404


def _start(uid, difficulty, operation, count, duration, tz_name):
    svc = _services()
    problems = gen.generate(difficulty, operation, count)
    session = svc.registry.start(uid, problems, duration, difficulty, operation, tz_name)
    return jsonify({"ok": True, "state": session.state()}), 200

# -------------------- Session lifecycle --------------------

@quiz_bp.post("/start")
@require_auth
def quiz_start():
    """
    Start a new quiz session (replaces any session in progress).

    Request body:
    {
        "difficulty": "beginner" | "intermediate" | "expert",
        "operation": "add" | "sub" | "mul" | "div" | "mixed",
        "count": 10,          # optional
        "duration": 120,      # optional, seconds
        "timezone": "Africa/Cairo"  # optional, for streak days
    }
    """
    uid = request.user["uid"]
    data = request.get_json(silent=True) or {}
    cfg = current_app.config
    try:
        difficulty = Difficulty(data.get("difficulty", Difficulty.BEGINNER.value))
        operation = Operation(data.get("operation", Operation.ADD.value))
        count = int(data.get("count", cfg["QUIZ_QUESTION_COUNT"]))
        duration = int(data.get("duration", cfg["QUIZ_DURATION_SECONDS"]))
    except (TypeError, ValueError) as e:
        return jsonify({"ok": False, "error": f"Invalid quiz settings: {e}"}), 400

    if not 1 <= count <= MAX_QUESTIONS:
        return jsonify({"ok": False, "error": f"count must be between 1 and {MAX_QUESTIONS}"}), 400
    if not MIN_DURATION <= duration <= MAX_DURATION:
        return jsonify({"ok": False, "error": f"duration must be between {MIN_DURATION} and {MAX_DURATION}"}), 400

    return _start(uid, difficulty, operation, count, duration, data.get("timezone"))


@quiz_bp.post("/quick-start")
@require_auth
def quiz_quick_start():
    """Short beginner round mixing all four operations."""
    uid = request.user["uid"]
    data = request.get_json(silent=True) or {}
    q = gen.QUICK_START
    return _start(uid, q["difficulty"], q["operation"], q["count"], q["duration_seconds"], data.get("timezone"))


@quiz_bp.post("/answer")
@require_auth
def quiz_answer():
    """
    Submit an answer for the current question.

    Response:
    {
        "ok": true,
        "outcome": {"accepted": true, "isCorrect": false, "final": false, "canSkip": true},
        "state": {...},
        "finished": null | {"result": {...}, "stats_saved": true, "stats": {...}}
    }
    """
    uid = request.user["uid"]
    data = request.get_json(silent=True) or {}
    session = _services().registry.get(uid)
    if session is None:
        return _no_session()

    outcome = session.submit_answer(data.get("answer"))
    finished = None
    if session.phase is Phase.FINISHED:
        done = _services().registry.finished(uid)
        finished = _finished_payload(done) if done else None
    return jsonify({
        "ok": True,
        "outcome": outcome.to_dict(),
        "state": session.state(),
        "finished": finished,
    }), 200


@quiz_bp.post("/skip")
@require_auth
def quiz_skip():
    uid = request.user["uid"]
    data = request.get_json(silent=True) or {}
    session = _services().registry.get(uid)
    if session is None:
        return _no_session()
    try:
        session.skip(data.get("answer"))
    except SessionStateError as e:
        return jsonify({"ok": False, "error": str(e)}), 409

    finished = None
    if session.phase is Phase.FINISHED:
        done = _services().registry.finished(uid)
        finished = _finished_payload(done) if done else None
    return jsonify({"ok": True, "state": session.state(), "finished": finished}), 200


@quiz_bp.post("/restart")
@require_auth
def quiz_restart():
    """Try again after the time ran out, same problems."""
    uid = request.user["uid"]
    session = _services().registry.get(uid)
    if session is None:
        return _no_session()
    try:
        session.restart_after_timeout()
    except SessionStateError as e:
        return jsonify({"ok": False, "error": str(e)}), 409
    return jsonify({"ok": True, "state": session.state()}), 200


@quiz_bp.post("/exit")
@require_auth
def quiz_exit():
    """Leave the session without saving anything."""
    uid = request.user["uid"]
    exited = _services().registry.exit(uid)
    return jsonify({"ok": True, "exited": exited}), 200


@quiz_bp.get("/state")
@require_auth
def quiz_state():
    uid = request.user["uid"]
    registry = _services().registry
    session = registry.get(uid)
    done = registry.finished(uid)
    return jsonify({
        "ok": True,
        "has_active_session": session is not None,
        "state": session.state() if session else None,
        "last_finished": _finished_payload(done) if done else None,
    }), 200


@quiz_bp.post("/feedback")
@require_auth
def quiz_feedback():
    """AI feedback for the last finished session (falls back to a canned message)."""
    uid = request.user["uid"]
    svc = _services()
    done = svc.registry.finished(uid)
    if done is None:
        return jsonify({"ok": False, "error": "No finished quiz yet."}), 404
    difficulty = done.result.difficulty.value if done.result.difficulty else "beginner"
    text = get_feedback(done.result, difficulty, svc.text_generator)
    return jsonify({"ok": True, "feedback": text}), 200


@quiz_bp.get("/badges")
def quiz_badges():
    """Public list of badges and their thresholds."""
    return jsonify({"ok": True, "badges": badge_catalog()}), 200
