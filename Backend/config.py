# config.py
import os
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # "firestore" in deployment, "memory" for local play without credentials
    PROFILE_STORE = os.getenv("PROFILE_STORE", "firestore")

    # Web API key of the Firebase project (Identity Toolkit sign-in/sign-up)
    FIREBASE_WEB_API_KEY = os.getenv("FIREBASE_WEB_API_KEY", "")

    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    QUIZ_DURATION_SECONDS = int(os.getenv("QUIZ_DURATION_SECONDS", "120"))
    QUIZ_QUESTION_COUNT = int(os.getenv("QUIZ_QUESTION_COUNT", "10"))
    QUIZ_FEEDBACK_DELAY_SECONDS = float(os.getenv("QUIZ_FEEDBACK_DELAY_SECONDS", "0"))
    QUIZ_COUNTDOWN_ENABLED = _env_bool("QUIZ_COUNTDOWN_ENABLED", True)

    DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")
    # Service-account JSON files are looked up here when no path is configured
    CREDENTIALS_DIR = Path(__file__).resolve().parent / "firebase" / "credentials"

    @classmethod
    def firebase_credential_path(cls) -> str:
        """
        Path of the Firebase service-account file.

        GOOGLE_APPLICATION_CREDENTIALS wins (quotes, ~ and $VARS allowed; a bare
        file name is also looked up in CREDENTIALS_DIR), otherwise the first
        *.json in CREDENTIALS_DIR. Raises FileNotFoundError when nothing exists.
        """
        configured = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if configured:
            raw = os.path.expanduser(os.path.expandvars(configured.strip().strip("\"'")))
            tried = [Path(raw), cls.CREDENTIALS_DIR / Path(raw).name]
            for candidate in tried:
                if candidate.exists():
                    return str(candidate)
            raise FileNotFoundError(
                "Firebase credential file not found, tried: " + ", ".join(str(t) for t in tried)
            )

        if cls.CREDENTIALS_DIR.exists():
            for match in sorted(cls.CREDENTIALS_DIR.glob("*.json")):
                return str(match)

        raise FileNotFoundError(
            "No Firebase credentials found. Set FIREBASE_SERVICE_ACCOUNT_JSON or "
            "GOOGLE_APPLICATION_CREDENTIALS, or put a JSON in firebase/credentials/."
        )
