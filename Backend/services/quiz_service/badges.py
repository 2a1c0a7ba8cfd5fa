# services/quiz_service/badges.py
"""
Achievement badges unlocked by cumulative correct answers.

Badges:
- Beginner (50 correct)
- Genius (100 correct)
- The King (200 correct)
- The Legend (300 correct)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Any, List

# ============================================================================
# Configuration
# ============================================================================

BADGES = [
    {"id": 1, "name": "Beginner", "required": 50, "icon": "🌱", "color": "green"},
    {"id": 2, "name": "Genius", "required": 100, "icon": "🧠", "color": "blue"},
    {"id": 3, "name": "The King", "required": 200, "icon": "👑", "color": "purple"},
    {"id": 4, "name": "The Legend", "required": 300, "icon": "🏆", "color": "yellow"},
]


@dataclass(frozen=True)
class Badge:
    id: int
    name: str
    required_correct: int
    icon: str
    color: str
    unlocked: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "required": self.required_correct,
            "icon": self.icon,
            "color": self.color,
            "unlocked": self.unlocked,
        }


# ============================================================================
# Public API
# ============================================================================

def derive_badges(total_correct: int) -> List[Badge]:
    """Every badge in threshold order, flagged unlocked when the total reaches it."""
    return [
        Badge(
            id=b["id"],
            name=b["name"],
            required_correct=b["required"],
            icon=b["icon"],
            color=b["color"],
            unlocked=total_correct >= b["required"],
        )
        for b in BADGES
    ]


def unlocked_count(total_correct: int) -> int:
    return sum(1 for b in BADGES if total_correct >= b["required"])


def badge_catalog() -> List[Dict[str, Any]]:
    """Badge list for display, without any unlock state."""
    return [
        {"id": b["id"], "name": b["name"], "required": b["required"], "icon": b["icon"], "color": b["color"]}
        for b in BADGES
    ]
