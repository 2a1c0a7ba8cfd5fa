# routes/accounts.py
"""
Account, profile and leaderboard API routes.
"""
import logging
from flask import Blueprint, request, jsonify, current_app
from auth_middleware import require_auth
from services.auth_service import (
    AuthError, EMAIL_IN_USE, INVALID_CREDENTIALS, WEAK_PASSWORD,
)
from services.quiz_service import leaderboard
from services.quiz_service.stats import last_7_days
from services.quiz_service.utils import today_in

logger = logging.getLogger(__name__)

accounts_bp = Blueprint("accounts", __name__)

_AUTH_STATUS = {
    INVALID_CREDENTIALS: 401,
    EMAIL_IN_USE: 409,
    WEAK_PASSWORD: 400,
}


def _services():
    return current_app.extensions["math_genius"]


def _auth_error(err: AuthError):
    return jsonify({"ok": False, "error": err.code, "message": str(err)}), _AUTH_STATUS.get(err.code, 400)


def _ensure_student(session, teacher_id=None):
    """Student profile for a signed-in account, created if missing. None if the store fails."""
    try:
        return _services().stats.create_student(session.uid, session.email, session.display_name, teacher_id)
    except Exception:
        logger.exception("Could not create profile for %s", session.uid)
        return None


@accounts_bp.post("/signup")
def signup():
    """
    POST /api/accounts/signup
    {"email": ..., "password": ..., "displayName": ..., "teacherId": optional}

    Creates the auth account and the student's stats document.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""
    display_name = (data.get("displayName") or "").strip()
    if not (email and password):
        return jsonify({"ok": False, "error": "email and password required"}), 400

    svc = _services()
    try:
        session = svc.issuer.sign_up(email, password, display_name)
    except AuthError as e:
        return _auth_error(e)

    profile = _ensure_student(session, data.get("teacherId") or None)
    if profile is None:
        # the account exists; the profile is created on the next login
        return jsonify({
            "ok": False,
            "error": "profile_unavailable",
            "session": session.to_dict(),
        }), 503
    return jsonify({"ok": True, "session": session.to_dict(), "profile": profile.to_dict()}), 201


@accounts_bp.post("/login")
def login():
    """POST /api/accounts/login {"email": ..., "password": ...}"""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""
    if not (email and password):
        return jsonify({"ok": False, "error": "email and password required"}), 400

    svc = _services()
    try:
        session = svc.issuer.sign_in(email, password)
    except AuthError as e:
        return _auth_error(e)

    profile = svc.stats.load_profile(session.uid) or _ensure_student(session)
    return jsonify({
        "ok": True,
        "session": session.to_dict(),
        "profile": profile.to_dict() if profile else None,
    }), 200


@accounts_bp.get("/me")
@require_auth
def me():
    uid = request.user["uid"]
    profile = _services().stats.current_profile(uid)
    if profile is None:
        return jsonify({"ok": False, "error": "Profile not found"}), 404
    return jsonify({"ok": True, "profile": profile.to_dict()}), 200


@accounts_bp.patch("/me")
@require_auth
def update_me():
    """PATCH /api/accounts/me {"displayName": ...}"""
    uid = request.user["uid"]
    data = request.get_json(silent=True) or {}
    display_name = (data.get("displayName") or "").strip()
    if not display_name:
        return jsonify({"ok": False, "error": "displayName required"}), 400
    profile = _services().stats.update_display_name(uid, display_name)
    if profile is None:
        return jsonify({"ok": False, "error": "Profile not found"}), 404
    return jsonify({"ok": True, "profile": profile.to_dict()}), 200


@accounts_bp.get("/me/history")
@require_auth
def my_history():
    """
    GET /api/accounts/me/history?timezone=Africa/Cairo

    Correct/incorrect counts for the last 7 days.
    """
    uid = request.user["uid"]
    profile = _services().stats.current_profile(uid)
    if profile is None:
        return jsonify({"ok": False, "error": "Profile not found"}), 404
    today = today_in(request.args.get("timezone"), current_app.config["DEFAULT_TIMEZONE"])
    return jsonify({
        "ok": True,
        "days": last_7_days(profile, today),
        "streak": profile.streak,
        "totalCorrect": profile.total_correct,
        "totalIncorrect": profile.total_incorrect,
    }), 200


@accounts_bp.get("/teachers/<teacher_id>")
@require_auth
def teacher_info(teacher_id):
    teacher = _services().stats.fetch_teacher(teacher_id)
    if teacher is None:
        return jsonify({"ok": False, "error": "Teacher not found"}), 404
    return jsonify({
        "ok": True,
        "teacher": {
            "id": teacher.doc_id,
            "displayName": teacher.display_name,
            "email": teacher.email,
            "active": teacher.active,
        },
    }), 200


@accounts_bp.get("/leaderboard")
@require_auth
def get_leaderboard():
    """GET /api/accounts/leaderboard?limit=50&teacher_id=..."""
    try:
        limit = int(request.args.get("limit", leaderboard.DEFAULT_LIMIT))
    except ValueError:
        return jsonify({"ok": False, "error": "limit must be an integer"}), 400
    limit = max(1, min(limit, 200))
    entries = leaderboard.get_leaderboard(
        _services().store, limit=limit, teacher_id=request.args.get("teacher_id") or None,
    )
    return jsonify({
        "ok": True,
        "leaderboard": [e.to_dict() for e in entries],
        "count": len(entries),
    }), 200
