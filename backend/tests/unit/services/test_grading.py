from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from cdc_admin.models.project import SubmissionTiming
from cdc_admin.services import grading
from cdc_admin.services.project_analytics_service import build_analytics

DEFAULT_WEIGHTS = {"project_score": 70, "attendance_score": 20, "submission_timing": 10}
DEADLINE = datetime(2025, 1, 20, 18, 0)


def submission(final_score, score=None, timing=SubmissionTiming.ON_TIME, attendance=80, sid=None):
    return SimpleNamespace(
        id=sid or f"sub-{final_score}",
        student_id=f"stu-{sid or final_score}",
        score=score if score is not None else final_score,
        final_score=final_score,
        submission_timing=timing,
        attendance_score=attendance,
        rank=None,
    )


class TestSubmissionTiming:
    """Deadline arithmetic: positive days mean early"""

    def test_two_days_early(self):
        days = grading.days_from_deadline(DEADLINE, DEADLINE - timedelta(days=2))
        assert days == 2
        assert grading.classify_timing(days) == SubmissionTiming.EARLY

    def test_exactly_at_deadline_is_on_time(self):
        days = grading.days_from_deadline(DEADLINE, DEADLINE)
        assert days == 0
        assert grading.classify_timing(days) == SubmissionTiming.ON_TIME
        assert grading.timing_score(SubmissionTiming.ON_TIME, days) == 90

    def test_under_a_day_late_rounds_to_on_time(self):
        days = grading.days_from_deadline(DEADLINE, DEADLINE + timedelta(hours=5))
        assert days == 0
        assert grading.classify_timing(days) == SubmissionTiming.ON_TIME

    def test_just_over_a_day_late(self):
        days = grading.days_from_deadline(DEADLINE, DEADLINE + timedelta(hours=25))
        assert days == -1
        assert grading.classify_timing(days) == SubmissionTiming.LATE
        assert grading.timing_score(SubmissionTiming.LATE, days) == 60

    def test_a_few_hours_early_counts_as_one_day(self):
        assert grading.days_from_deadline(DEADLINE, DEADLINE - timedelta(hours=3)) == 1

    @pytest.mark.parametrize("days_late", [7, 8, 30])
    def test_late_penalty_floors_at_zero(self, days_late):
        assert grading.timing_score(SubmissionTiming.LATE, -days_late) == 0

    def test_early_scores_full_marks(self):
        assert grading.timing_score(SubmissionTiming.EARLY, 5) == 100

    def test_timing_analysis_text(self):
        assert grading.timing_analysis(3) == "Submitted 3 day(s) early"
        assert grading.timing_analysis(-2) == "Submitted 2 day(s) late"
        assert grading.timing_analysis(0) == "Submitted on deadline"


class TestFinalScore:

    def test_weighted_breakdown(self):
        parts = grading.score_breakdown(90, 100, 80, SubmissionTiming.EARLY, 2, DEFAULT_WEIGHTS)
        assert parts["project_part"] == pytest.approx(63)
        assert parts["attendance_part"] == pytest.approx(16)
        assert parts["timing_raw"] == 100
        assert parts["timing_part"] == pytest.approx(10)
        assert parts["final_score"] == 89
        assert grading.letter_grade(parts["final_score"]) == "A"

    def test_score_is_scaled_by_max_score(self):
        # 40/50 is 80% of the project marks
        assert grading.final_score(40, 50, 0, SubmissionTiming.LATE, -10, DEFAULT_WEIGHTS) == 56

    def test_half_points_round_up(self):
        weights = {"project_score": 50, "attendance_score": 50, "submission_timing": 0}
        # 0.5 * 91 + 0.5 * 0 = 45.5
        assert grading.final_score(91, 100, 0, SubmissionTiming.ON_TIME, 0, weights) == 46

    def test_result_is_clamped(self):
        weights = {"project_score": 100, "attendance_score": 100, "submission_timing": 100}
        assert grading.final_score(100, 100, 100, SubmissionTiming.EARLY, 3, weights) == 100

    def test_attendance_score(self):
        assert grading.attendance_score(8, 10) == 80
        assert grading.attendance_score(0, 0) == 0
        assert grading.attendance_score(2, 3) == 67

    def test_auto_grade_is_eighty_percent(self):
        assert grading.auto_grade_score(100) == pytest.approx(80)
        assert grading.auto_grade_score(50) == pytest.approx(40)


class TestLetterGrades:

    @pytest.mark.parametrize("value,letter", [
        (100, "A+"), (90, "A+"), (89, "A"), (80, "A"), (79, "B+"), (70, "B+"),
        (69, "B"), (60, "B"), (59, "C+"), (50, "C+"), (49, "C"), (40, "C"), (39, "F"), (0, "F"),
    ])
    def test_boundaries(self, value, letter):
        assert grading.letter_grade(value) == letter

    def test_ungraded_has_no_letter(self):
        assert grading.letter_grade(None) is None


class TestRanking:

    def test_highest_final_score_ranks_first(self):
        subs = [submission(70), submission(95), submission(40)]
        grading.assign_ranks(subs)
        assert [s.rank for s in subs] == [2, 1, 3]

    def test_ties_keep_storage_order(self):
        first, second = submission(80, sid="first"), submission(80, sid="second")
        grading.assign_ranks([first, second])
        assert (first.rank, second.rank) == (1, 2)

    def test_ungraded_submissions_are_unranked(self):
        graded, pending = submission(75), submission(None)
        pending.score = None
        pending.rank = 4
        grading.assign_ranks([pending, graded])
        assert graded.rank == 1
        assert pending.rank is None

    def test_rerank_is_idempotent(self):
        subs = [submission(60), submission(90), submission(75)]
        grading.assign_ranks(subs)
        first = [s.rank for s in subs]
        grading.assign_ranks(subs)
        assert [s.rank for s in subs] == first


class TestAnalytics:

    def test_three_graded_submissions(self):
        subs = [submission(95), submission(70), submission(40)]
        grading.assign_ranks(subs)

        analytics = build_analytics(subs, total_students=5)

        stats = analytics["final_score_stats"]
        assert stats == {"average": 68.3, "highest": 95, "lowest": 40, "median": 70}
        distribution = analytics["grade_distribution"]
        assert distribution["A+"] == 1
        assert distribution["B+"] == 1
        assert distribution["C"] == 1
        assert sum(distribution.values()) == 3
        assert analytics["top_performers"][0]["rank"] == 1
        assert analytics["top_performers"][0]["final_score"] == 95
        assert analytics["submitted_count"] == 3
        assert analytics["pending_count"] == 2
        assert analytics["completion_rate"] == 60

    def test_top_performers_capped_at_five(self):
        subs = [submission(score) for score in (91, 82, 73, 64, 55, 46, 37)]
        grading.assign_ranks(subs)
        top = build_analytics(subs, total_students=7)["top_performers"]
        assert [p["rank"] for p in top] == [1, 2, 3, 4, 5]

    def test_empty_project(self):
        analytics = build_analytics([], total_students=10)
        assert analytics["score_stats"] == {"average": 0, "highest": 0, "lowest": 0, "median": 0}
        assert analytics["on_time_submission_rate"] == 0
        assert analytics["pending_count"] == 10

    def test_on_time_rate_counts_early_and_on_time(self):
        subs = [
            submission(80, timing=SubmissionTiming.EARLY),
            submission(70, timing=SubmissionTiming.ON_TIME),
            submission(60, timing=SubmissionTiming.LATE),
            submission(50, timing=SubmissionTiming.LATE),
        ]
        analytics = build_analytics(subs, total_students=4)
        assert analytics["submission_stats"] == {"early": 1, "on_time": 1, "late": 2}
        assert analytics["on_time_submission_rate"] == 50

    def test_even_count_median(self):
        assert grading.median([10, 40, 20, 30]) == 25

    def test_performance_summary_buckets(self):
        summary = grading.performance_summary([95, 80, 79, 60, 59, 40, 39, None])
        assert summary == {"excellent": 2, "good": 2, "average": 2, "poor": 1}
