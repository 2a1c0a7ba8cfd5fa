# app.py
"""
Main Flask application entrypoint.

- Loads env/config
- Initializes Firebase Admin (token verification + Firestore)
- Enables CORS for /api/*
- Registers blueprints: Quiz, Accounts
"""

from __future__ import annotations
import os
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS

# ---- Load .env early ----
load_dotenv()

# ---- Config & blueprints ----
from config import Config
from routes.accounts import accounts_bp
from services.auth_service import CredentialIssuer
from services.quiz_service.feedback import GeminiTextGenerator, TextGenerator
from services.quiz_service.registry import SessionRegistry
from services.quiz_service.routes import quiz_bp
from services.quiz_service.stats import StatsService
from services.quiz_service.store import ProfileStore, build_store

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: ProfileStore
    stats: StatsService
    registry: SessionRegistry
    issuer: CredentialIssuer
    text_generator: Optional[TextGenerator]


def _build_services(app: Flask, store: Optional[ProfileStore]) -> Services:
    cfg = app.config
    if store is None:
        if cfg["PROFILE_STORE"] == "firestore":
            from services.firebase import init_firebase_app
            init_firebase_app()
        store = build_store(cfg["PROFILE_STORE"])

    stats = StatsService(store)
    registry = SessionRegistry(
        stats,
        countdown_enabled=cfg["QUIZ_COUNTDOWN_ENABLED"],
        feedback_delay=cfg["QUIZ_FEEDBACK_DELAY_SECONDS"],
        default_timezone=cfg["DEFAULT_TIMEZONE"],
    )
    issuer = CredentialIssuer(cfg["FIREBASE_WEB_API_KEY"], timeout=cfg["HTTP_TIMEOUT_SECONDS"])
    generator = cfg.get("TEXT_GENERATOR")
    if generator is None and cfg["GEMINI_API_KEY"]:
        generator = GeminiTextGenerator(cfg["GEMINI_API_KEY"], cfg["GEMINI_MODEL"], timeout=cfg["HTTP_TIMEOUT_SECONDS"])
    return Services(store=store, stats=stats, registry=registry, issuer=issuer, text_generator=generator)

# ---------------------------------------------------------------------
# App Factory
# ---------------------------------------------------------------------
def create_app(overrides: Optional[Dict[str, Any]] = None, store: Optional[ProfileStore] = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # CORS for the web client; lock down origins in production
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    app.extensions["math_genius"] = _build_services(app, store)

    # --- Register blueprints ---
    app.register_blueprint(quiz_bp, url_prefix="/api/quiz")
    app.register_blueprint(accounts_bp, url_prefix="/api/accounts")

    # --- Health (public) ---
    @app.get("/api/health")
    def health():
        return jsonify({"ok": True, "service": "math-genius", "store": app.config["PROFILE_STORE"]})

    # --- JSON error handlers ---
    @app.errorhandler(400)
    def handle_400(err):
        return jsonify({"ok": False, "error": str(err)}), 400

    @app.errorhandler(404)
    def handle_404(err):
        return jsonify({"ok": False, "error": "Not found"}), 404

    @app.errorhandler(405)
    def handle_405(err):
        return jsonify({"ok": False, "error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def handle_500(err):
        logger.exception("Unhandled error: %s", err)
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return app


# ---------------------------------------------------------------------
# Dev Server Launcher
# ---------------------------------------------------------------------
if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    port = int(os.getenv("PORT", "5001"))
    create_app().run(host="0.0.0.0", port=port, debug=True)
