"""
Project grading math.

Pure functions shared by the project service, the analytics recompute and
the tests: submission timing, the weighted final score, letter grades and
the summary statistics stored on ProjectAnalytics.
"""
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from cdc_admin.models.project import SubmissionTiming
from cdc_admin.utils.rounding import round_half_up, percentage

ONE_DAY = timedelta(days=1)

# Letter grade thresholds, highest first
GRADE_BOUNDARIES = (
    (90, "A+"),
    (80, "A"),
    (70, "B+"),
    (60, "B"),
    (50, "C+"),
    (40, "C"),
)
FAILING_GRADE = "F"
GRADE_LETTERS = [letter for _, letter in GRADE_BOUNDARIES] + [FAILING_GRADE]

TIMING_SCORE_EARLY = 100
TIMING_SCORE_ON_TIME = 90
TIMING_SCORE_LATE_BASE = 70
TIMING_PENALTY_PER_DAY = 10

AUTO_GRADE_RATIO = 0.8
TOP_PERFORMERS = 5


def days_from_deadline(deadline: datetime, submitted: datetime) -> int:
    """Whole days between submission and deadline, rounded up; positive means early"""
    return math.ceil((deadline - submitted) / ONE_DAY)


def classify_timing(days: int) -> SubmissionTiming:
    if days > 0:
        return SubmissionTiming.EARLY
    if days == 0:
        return SubmissionTiming.ON_TIME
    return SubmissionTiming.LATE


def timing_score(timing: SubmissionTiming, days: int) -> int:
    """Raw timing score out of 100 before weighting"""
    timing = SubmissionTiming(timing)
    if timing == SubmissionTiming.EARLY:
        return TIMING_SCORE_EARLY
    if timing == SubmissionTiming.ON_TIME:
        return TIMING_SCORE_ON_TIME
    return max(0, TIMING_SCORE_LATE_BASE - abs(days) * TIMING_PENALTY_PER_DAY)


def attendance_score(present: int, total: int) -> int:
    """Share of a student's attendance records marked present, 0 when there are none"""
    return percentage(present, total)


def score_breakdown(
    score: float,
    max_score: int,
    attendance: int,
    timing: SubmissionTiming,
    days: int,
    weightage: Dict[str, int],
) -> Dict[str, Any]:
    """Weighted parts of the final score and the rounded, clamped total"""
    project_part = score / max_score * 100 * weightage["project_score"] / 100
    attendance_part = (attendance or 0) * weightage["attendance_score"] / 100
    timing_raw = timing_score(timing, days)
    timing_part = timing_raw * weightage["submission_timing"] / 100

    total = round_half_up(project_part + attendance_part + timing_part)
    return {
        "project_part": project_part,
        "attendance_part": attendance_part,
        "timing_raw": timing_raw,
        "timing_part": timing_part,
        "final_score": min(100, max(0, total)),
    }


def final_score(
    score: float,
    max_score: int,
    attendance: int,
    timing: SubmissionTiming,
    days: int,
    weightage: Dict[str, int],
) -> int:
    return score_breakdown(score, max_score, attendance, timing, days, weightage)["final_score"]


def letter_grade(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    for threshold, letter in GRADE_BOUNDARIES:
        if value >= threshold:
            return letter
    return FAILING_GRADE


def timing_analysis(days: int) -> str:
    if days > 0:
        return f"Submitted {days} day(s) early"
    if days < 0:
        return f"Submitted {abs(days)} day(s) late"
    return "Submitted on deadline"


def median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def summarize(values: Iterable[Optional[float]]) -> Dict[str, float]:
    """average (1 dp), highest, lowest and median of the non-null values"""
    present = [v for v in values if v is not None]
    if not present:
        return {"average": 0, "highest": 0, "lowest": 0, "median": 0}
    return {
        "average": round_half_up(sum(present) / len(present), 1),
        "highest": max(present),
        "lowest": min(present),
        "median": median(present),
    }


def grade_distribution(values: Iterable[Optional[float]]) -> Dict[str, int]:
    distribution = {letter: 0 for letter in GRADE_LETTERS}
    for value in values:
        if value is not None:
            distribution[letter_grade(value)] += 1
    return distribution


def performance_summary(values: Iterable[Optional[float]]) -> Dict[str, int]:
    present = [v for v in values if v is not None]
    return {
        "excellent": sum(1 for v in present if v >= 80),
        "good": sum(1 for v in present if 60 <= v < 80),
        "average": sum(1 for v in present if 40 <= v < 60),
        "poor": sum(1 for v in present if v < 40),
    }


def assign_ranks(submissions: List[Any]) -> List[Any]:
    """
    Rank graded submissions 1..N by final score, highest first.

    ``submissions`` must already be in storage order; the sort is stable so
    ties keep that order. Submissions without a final score get no rank.
    """
    graded = [s for s in submissions if s.final_score is not None]
    for s in submissions:
        if s.final_score is None:
            s.rank = None
    for position, submission in enumerate(sorted(graded, key=lambda s: -s.final_score), start=1):
        submission.rank = position
    return graded


def auto_grade_score(max_score: int) -> float:
    return AUTO_GRADE_RATIO * max_score
