"""
bracketbot/scoring.py - Final-score validation for 13-round matches

A map is won by the first side to 13 rounds. At 12-12 the match goes to
overtime, which only ends once one side leads by two.

Pure functions, no I/O.
"""

from enum import Enum

# ============================================================================
# Constants
# ============================================================================

WIN_ROUNDS = 13  # Regulation: first to 13
OVERTIME_THRESHOLD = 12  # Both sides at 12 or more = overtime
OVERTIME_MARGIN = 2  # Overtime needs a two-round lead


class Side(str, Enum):
    HOME = "home"
    AWAY = "away"
    NONE = "none"


class ScoreProblem(str, Enum):
    """Why a score pair was rejected. Drives the user-facing message."""

    DRAW = "draw"
    NOT_FINISHED = "not_finished"  # Nobody reached 13
    NEEDS_OVERTIME = "needs_overtime"  # 13-12: should have gone to overtime
    OVERTIME_GAP = "overtime_gap"  # Overtime ended on a one-round lead
    INVALID = "invalid"


# ============================================================================
# Validation
# ============================================================================

def _is_round_count(value: object) -> bool:
    # bool is an int subclass; True-False is not a score
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def is_valid_score(home: int, away: int) -> bool:
    """True if (home, away) is a finished match under regulation or overtime rules."""
    if not (_is_round_count(home) and _is_round_count(away)):
        return False

    if home == away:
        return False

    higher = max(home, away)
    lower = min(home, away)

    if higher == WIN_ROUNDS and lower <= WIN_ROUNDS - 2:
        return True

    if lower >= OVERTIME_THRESHOLD and higher - lower >= OVERTIME_MARGIN:
        return True

    return False


def winner_side(home: int, away: int) -> Side:
    """HOME or AWAY for a valid score, NONE otherwise."""
    if not is_valid_score(home, away):
        return Side.NONE
    return Side.HOME if home > away else Side.AWAY


def diagnose(home: object, away: object) -> ScoreProblem | None:
    """Return the reason a score is rejected, or None if it is valid."""
    if not (_is_round_count(home) and _is_round_count(away)):
        return ScoreProblem.INVALID

    if is_valid_score(home, away):
        return None

    higher = max(home, away)
    lower = min(home, away)

    if home == away:
        return ScoreProblem.DRAW
    if higher == WIN_ROUNDS and lower == WIN_ROUNDS - 1:
        return ScoreProblem.NEEDS_OVERTIME
    if higher < WIN_ROUNDS:
        return ScoreProblem.NOT_FINISHED
    if lower >= OVERTIME_THRESHOLD and higher - lower < OVERTIME_MARGIN:
        return ScoreProblem.OVERTIME_GAP
    return ScoreProblem.INVALID


def describe_problem(problem: ScoreProblem, home: object, away: object) -> str:
    score = f"{home}-{away}"
    if problem is ScoreProblem.DRAW:
        return f"Draws are not allowed ({score})"
    if problem is ScoreProblem.NEEDS_OVERTIME:
        return (
            f"12-12 goes to overtime, so {score} cannot be a final score. "
            "Valid examples: 14-12, 15-13"
        )
    if problem is ScoreProblem.NOT_FINISHED:
        return f"Match is not finished yet ({score}). The first side to 13 rounds wins"
    if problem is ScoreProblem.OVERTIME_GAP:
        return f"Overtime needs a two-round lead ({score}). Valid examples: 14-12, 15-13"
    return f"Invalid score ({score}). Valid examples: 13-11, 14-12, 15-13"
