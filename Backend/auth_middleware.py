# auth_middleware.py
import logging
from functools import wraps
from flask import request, jsonify, current_app
from firebase_admin import auth as fb_auth

logger = logging.getLogger(__name__)


def _verify(token: str) -> dict:
    verifier = current_app.config.get("TOKEN_VERIFIER") or fb_auth.verify_id_token
    return verifier(token)


def require_auth(fn):
    """
    Verify Firebase ID token from 'Authorization: Bearer <token>'.
    Sets request.user = {"uid": ..., "email": ..., "name": ...}
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        hdr = request.headers.get("Authorization", "")
        if not hdr.startswith("Bearer "):
            return jsonify({"ok": False, "error": "Missing Firebase ID token"}), 401
        token = hdr.split(" ", 1)[1].strip()
        try:
            decoded = _verify(token)
        except Exception as e:
            logger.info("Rejected ID token: %s", e)
            return jsonify({"ok": False, "error": f"Invalid or expired token: {e}"}), 401
        request.user = {
            "uid": decoded["uid"],
            "email": decoded.get("email"),
            "name": decoded.get("name"),
        }
        return fn(*args, **kwargs)
    return wrapper
