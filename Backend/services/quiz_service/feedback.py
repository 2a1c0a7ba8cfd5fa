# services/quiz_service/feedback.py
"""
Short AI-written feedback for a finished quiz.

The text comes from Gemini (Generative Language REST API). Any failure falls
back to a canned encouragement; feedback never surfaces as an error.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, Optional
import logging

import requests

from .models import AnsweredProblem, SessionResult
from .problems import operation_symbol

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

FALLBACK_MESSAGE = "Great effort! Keep solving problems and your skills will keep growing."
EMPTY_RESPONSE_MESSAGE = "Awesome work! Keep practicing to become a math genius."


class FeedbackError(Exception):
    pass


class TextGenerator:
    def generate(self, prompt: str) -> str:
        raise NotImplementedError


class GeminiTextGenerator(TextGenerator):
    def __init__(self, api_key: str, model: str = "gemini-2.0-flash", timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.http = session or requests.Session()

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise FeedbackError("GEMINI_API_KEY is not set")
        resp = self.http.post(
            GEMINI_URL.format(model=self.model),
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return _extract_text(resp.json())


def _extract_text(payload: Dict[str, Any]) -> str:
    for candidate in payload.get("candidates") or []:
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts).strip()
        if text:
            return text
    return ""


def _describe_mistake(answer: AnsweredProblem) -> str:
    p = answer.problem
    return (
        f"- {p.num1} {operation_symbol(p.operation)} {p.num2} = ? "
        f"(correct: {p.correct_answer}, answered: {answer.user_answer})"
    )


def build_prompt(score: int, history: Iterable[AnsweredProblem], difficulty: str) -> str:
    history = list(history)
    mistakes = "\n".join(_describe_mistake(h) for h in history if not h.is_correct) or "- none"
    return (
        "You are a very friendly math teacher who encourages children.\n"
        f'A student just finished a "{difficulty}" level math quiz.\n'
        f"Score: {score} out of {len(history)}.\n"
        "\n"
        "Mistakes:\n"
        f"{mistakes}\n"
        "\n"
        "Please write:\n"
        "1. One short line of encouragement that fits their level.\n"
        "2. One very simple tip for the kind of problems they missed.\n"
        "3. If the score is perfect, a fun fact about numbers instead.\n"
        "\n"
        "Keep it playful and no longer than 3 lines."
    )


def get_feedback(result: SessionResult, difficulty: str, generator: Optional[TextGenerator]) -> str:
    if generator is None:
        return FALLBACK_MESSAGE
    prompt = build_prompt(result.score, result.history, difficulty)
    try:
        text = generator.generate(prompt)
    except Exception as e:
        logger.warning("Feedback generation failed: %s", e)
        return FALLBACK_MESSAGE
    return text or EMPTY_RESPONSE_MESSAGE
