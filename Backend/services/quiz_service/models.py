# services/quiz_service/models.py
"""
Domain records shared by the quiz game, the stats reconciler and the API.

Firestore documents keep the camelCase field names used by the web client
(totalCorrect, dailyHistory, ...); the dataclasses below are the Python side.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, Any, List, Optional

from .badges import Badge, derive_badges, unlocked_count


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"


class Operation(str, Enum):
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    MIXED = "mixed"


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"


STUDENTS_COLLECTION = "users"
TEACHERS_COLLECTION = "teachers"


def collection_for(role: Role) -> str:
    return TEACHERS_COLLECTION if role is Role.TEACHER else STUDENTS_COLLECTION


def display_name_for(name: Optional[str]) -> str:
    """Emails are shown by their local part only."""
    if not name:
        return ""
    if "@" in name:
        return name.split("@")[0]
    return name


# ============================================================================
# Quiz records
# ============================================================================

@dataclass(frozen=True)
class Problem:
    id: int
    num1: int
    num2: int
    operation: Operation
    correct_answer: int

    def to_dict(self, include_answer: bool = True) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "num1": self.num1,
            "num2": self.num2,
            "operation": self.operation.value,
        }
        if include_answer:
            out["correctAnswer"] = self.correct_answer
        return out


@dataclass(frozen=True)
class AnsweredProblem:
    problem: Problem
    user_answer: int
    is_correct: bool

    def to_dict(self) -> Dict[str, Any]:
        out = self.problem.to_dict()
        out["userAnswer"] = self.user_answer
        out["isCorrect"] = self.is_correct
        return out


@dataclass(frozen=True)
class SessionResult:
    score: int
    total_questions: int
    history: tuple
    session_id: str = ""
    difficulty: Optional[Difficulty] = None
    operation: Optional[Operation] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "score": self.score,
            "totalQuestions": self.total_questions,
            "difficulty": self.difficulty.value if self.difficulty else None,
            "operation": self.operation.value if self.operation else None,
            "history": [h.to_dict() for h in self.history],
        }


# ============================================================================
# Stats records
# ============================================================================

@dataclass(frozen=True)
class DailyStat:
    date: str
    correct: int = 0
    incorrect: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "correct": self.correct, "incorrect": self.incorrect}

    @classmethod
    def from_dict(cls, day: str, data: Optional[Dict[str, Any]]) -> "DailyStat":
        data = data or {}
        return cls(
            date=day,
            correct=int(data.get("correct", 0) or 0),
            incorrect=int(data.get("incorrect", 0) or 0),
        )


@dataclass(frozen=True)
class UserStats:
    """
    Point-in-time snapshot of a player's stats document.

    `role` is the discriminant: students live in users/{uid}, teachers in
    teachers/{teacherId} with `uid` pointing at their auth account. For
    students `teacher_id` is the class they are linked to; for teachers it
    is their own document id.
    """
    doc_id: str
    uid: str
    role: Role
    email: str = ""
    display_name: str = ""
    teacher_id: Optional[str] = None
    total_correct: int = 0
    total_incorrect: int = 0
    streak: int = 0
    last_played_date: Optional[date] = None
    last_active: Optional[str] = None
    daily_history: Dict[str, DailyStat] = field(default_factory=dict)
    active: bool = True

    @property
    def collection(self) -> str:
        return collection_for(self.role)

    @property
    def badges(self) -> List[Badge]:
        return derive_badges(self.total_correct)

    @property
    def badges_count(self) -> int:
        return unlocked_count(self.total_correct)

    def with_changes(self, **changes) -> "UserStats":
        return replace(self, **changes)

    @classmethod
    def fresh(cls, uid: str, email: str, display_name: str,
              role: Role = Role.STUDENT, teacher_id: Optional[str] = None,
              doc_id: Optional[str] = None) -> "UserStats":
        return cls(
            doc_id=doc_id or uid,
            uid=uid,
            role=role,
            email=email,
            display_name=display_name,
            teacher_id=teacher_id,
        )

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any], role: Role) -> "UserStats":
        last_played = data.get("lastPlayedDate")
        history = data.get("dailyHistory") or {}
        teacher_id = data.get("teacherId")
        if role is Role.TEACHER:
            teacher_id = teacher_id or doc_id
        return cls(
            doc_id=doc_id,
            uid=data.get("uid") or (doc_id if role is Role.STUDENT else ""),
            role=role,
            email=data.get("email") or "",
            display_name=data.get("displayName") or display_name_for(data.get("email")),
            teacher_id=teacher_id,
            total_correct=int(data.get("totalCorrect", 0) or 0),
            total_incorrect=int(data.get("totalIncorrect", 0) or 0),
            streak=int(data.get("streak", 0) or 0),
            last_played_date=date.fromisoformat(last_played) if last_played else None,
            last_active=_as_iso(data.get("lastActive")),
            daily_history={day: DailyStat.from_dict(day, v) for day, v in history.items()},
            active=bool(data.get("active", True)),
        )

    def to_document(self) -> Dict[str, Any]:
        """Full document shape, used when the profile is first created."""
        doc = {
            "uid": self.uid,
            "email": self.email,
            "displayName": self.display_name,
            "role": self.role.value,
            "totalCorrect": self.total_correct,
            "totalIncorrect": self.total_incorrect,
            "streak": self.streak,
            "lastPlayedDate": self.last_played_date.isoformat() if self.last_played_date else None,
            "lastActive": self.last_active,
            "dailyHistory": {day: s.to_dict() for day, s in self.daily_history.items()},
            "badges": [b.to_dict() for b in self.badges],
            "badgesCount": self.badges_count,
        }
        if self.teacher_id:
            doc["teacherId"] = self.teacher_id
        if self.role is Role.TEACHER:
            doc["active"] = self.active
        return doc

    def to_dict(self) -> Dict[str, Any]:
        """API shape."""
        out = self.to_document()
        out["id"] = self.doc_id
        return out


@dataclass(frozen=True)
class LeaderboardEntry:
    id: str
    display_name: str
    role: Role
    total_correct: int
    badges_count: int
    last_active: Optional[str]
    teacher_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "role": self.role.value,
            "totalCorrect": self.total_correct,
            "badgesCount": self.badges_count,
            "lastActive": self.last_active,
            "teacherId": self.teacher_id,
        }


def _as_iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
