# services/quiz_service/problems.py
from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import random

from .models import Difficulty, Operation, Problem

# ============================================================================
# Config
# ============================================================================
DEFAULT_COUNT = 10

# (first operand range, second operand range); for division the ranges are
# (divisor, quotient) and the dividend is built from them.
Range = Tuple[int, int]
OPERAND_RANGES: Dict[Difficulty, Dict[str, Tuple[Range, Range]]] = {
    Difficulty.BEGINNER: {
        "add_sub": ((1, 20), (1, 10)),
        "mul": ((1, 9), (1, 9)),
        "div": ((1, 9), (1, 9)),
    },
    Difficulty.INTERMEDIATE: {
        "add_sub": ((20, 100), (10, 50)),
        "mul": ((5, 15), (2, 12)),
        "div": ((2, 12), (2, 15)),
    },
    Difficulty.EXPERT: {
        "add_sub": ((100, 1000), (50, 500)),
        "mul": ((10, 50), (5, 20)),
        "div": ((5, 25), (5, 50)),
    },
}

CONCRETE_OPERATIONS = [Operation.ADD, Operation.SUB, Operation.MUL, Operation.DIV]

SYMBOLS = {
    Operation.ADD: "+",
    Operation.SUB: "-",
    Operation.MUL: "×",
    Operation.DIV: "÷",
    Operation.MIXED: "?",
}

# Quick start: short beginner round over all four operations
QUICK_START = {
    "difficulty": Difficulty.BEGINNER,
    "operation": Operation.MIXED,
    "count": 5,
    "duration_seconds": 60,
}

# ============================================================================
# Question Generation
# ============================================================================

def _operands(difficulty: Difficulty, op: Operation, rng: random.Random) -> Tuple[int, int]:
    table = OPERAND_RANGES[difficulty]

    if op is Operation.DIV:
        (d_lo, d_hi), (q_lo, q_hi) = table["div"]
        divisor = rng.randint(d_lo, d_hi)
        quotient = rng.randint(q_lo, q_hi)
        return divisor * quotient, divisor

    key = "mul" if op is Operation.MUL else "add_sub"
    (a_lo, a_hi), (b_lo, b_hi) = table[key]
    num1 = rng.randint(a_lo, a_hi)
    num2 = rng.randint(b_lo, b_hi)

    # No negative answers for subtraction
    if op is Operation.SUB and num1 < num2:
        num1, num2 = num2, num1
    return num1, num2


def _answer(num1: int, num2: int, op: Operation) -> int:
    if op is Operation.ADD:
        return num1 + num2
    if op is Operation.SUB:
        return num1 - num2
    if op is Operation.MUL:
        return num1 * num2
    return num1 // num2


def generate(
    difficulty: Difficulty,
    operation: Operation,
    count: int = DEFAULT_COUNT,
    rng: Optional[random.Random] = None,
) -> List[Problem]:
    """
    Build `count` problems for one session.

    `mixed` draws a concrete operation per problem, so every returned
    problem carries add/sub/mul/div and an exact integer answer.
    """
    rng = rng or random.Random()
    difficulty = Difficulty(difficulty)
    operation = Operation(operation)

    problems: List[Problem] = []
    for i in range(max(0, count)):
        op = rng.choice(CONCRETE_OPERATIONS) if operation is Operation.MIXED else operation
        num1, num2 = _operands(difficulty, op, rng)
        problems.append(Problem(
            id=i + 1,
            num1=num1,
            num2=num2,
            operation=op,
            correct_answer=_answer(num1, num2, op),
        ))
    return problems


def operation_symbol(op: Operation) -> str:
    return SYMBOLS[Operation(op)]
