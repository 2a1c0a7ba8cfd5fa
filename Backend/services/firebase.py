# services/firebase.py
import os, json
import logging
import firebase_admin
from firebase_admin import credentials, firestore

from config import Config

logger = logging.getLogger(__name__)

_db = None


def _resolve_cred():
    json_blob = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
    if json_blob:
        return credentials.Certificate(json.loads(json_blob))
    try:
        path = Config.firebase_credential_path()
    except FileNotFoundError:
        # Cloud Run / GCE: the attached service account is picked up instead
        logger.info("No Firebase credential file found, using application default credentials")
        return credentials.ApplicationDefault()
    return credentials.Certificate(path)


def init_firebase_app():
    """Initialize the default Firebase Admin app once per process."""
    if firebase_admin._apps:
        return firebase_admin.get_app()
    app = firebase_admin.initialize_app(_resolve_cred())
    logger.info("Firebase default app initialized")
    return app


def get_db():
    global _db
    if _db is not None:
        return _db
    init_firebase_app()
    _db = firestore.client()
    return _db
