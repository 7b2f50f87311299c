"""
Tests for the domain adapters — attendance, fees, academics, syllabus, operations.
"""

import os
import sys
from datetime import date, timedelta

import pandas as pd
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core import academics, attendance, fees, operations, syllabus
from core.contracts import GroupKind, TrendDirection
from core.engine import compare_periods

REF = date(2025, 1, 31)


# ── Attendance ──────────────────────────────────────────────────────

@pytest.fixture
def attendance_df():
    return pd.DataFrame([
        {"student_id": "s1", "student_name": "Amina", "class_id": "c5", "class_name": "Grade 5A", "status": "present", "date": "2025-01-27"},
        {"student_id": "s2", "student_name": "Brian", "class_id": "c5", "class_name": "Grade 5A", "status": "absent", "date": "2025-01-27"},
        {"student_id": "s1", "student_name": "Amina", "class_id": "c5", "class_name": "Grade 5A", "status": "Present", "date": "2025-01-28"},
        {"student_id": "s2", "student_name": "Brian", "class_id": "c5", "class_name": "Grade 5A", "status": "late", "date": "2025-01-28"},
        {"student_id": "s3", "student_name": "Chao", "class_id": "c6", "class_name": "Grade 6B", "status": "present", "date": "2025-01-28"},
        # previous window
        {"student_id": "s1", "student_name": "Amina", "class_id": "c5", "class_name": "Grade 5A", "status": "absent", "date": "2025-01-20"},
        {"student_id": "s3", "student_name": "Chao", "class_id": "c6", "class_name": "Grade 6B", "status": "present", "date": "2025-01-20"},
        # no date
        {"student_id": "s3", "student_name": "Chao", "class_id": "c6", "class_name": "Grade 6B", "status": "present", "date": None},
    ])


class TestAttendance:
    """Tests for core/attendance.py."""

    def test_class_rates(self, attendance_df):
        facts = attendance.facts_from_frame(attendance_df, "class")
        assert len(facts) == 7
        ranked = compare_periods(facts, "daily", REF).ranked
        by_label = {r.group_label: r for r in ranked}
        assert by_label["Grade 5A"].percentage == pytest.approx(50.0)
        assert by_label["Grade 5A"].trend_direction == TrendDirection.IMPROVING
        assert by_label["Grade 6B"].percentage == pytest.approx(100.0)
        assert by_label["Grade 6B"].trend_direction == TrendDirection.STABLE
        assert ranked[0].group_label == "Grade 6B"

    def test_student_grouping(self, attendance_df):
        facts = attendance.facts_from_frame(attendance_df, "student")
        assert {f.group_key.kind for f in facts} == {GroupKind.STUDENT}
        assert {f.group_label for f in facts} == {"Amina", "Brian", "Chao"}

    def test_only_present_counts(self):
        fact = attendance.to_fact_row({"class_id": "c5", "status": "late", "date": "2025-01-28"})
        assert fact.numerator == 0
        assert fact.denominator == 1

    def test_label_falls_back_to_id(self):
        fact = attendance.to_fact_row({"class_id": "c5", "status": "p", "date": "2025-01-28"})
        assert fact.group_label == "c5"
        assert fact.numerator == 1

    def test_missing_status_column(self):
        df = pd.DataFrame([{"class_id": "c5", "date": "2025-01-28"}])
        with pytest.raises(ValueError, match="status"):
            attendance.facts_from_frame(df)

    def test_invalid_group_by(self, attendance_df):
        with pytest.raises(ValueError, match="group_by"):
            attendance.facts_from_frame(attendance_df, "school")

    def test_daily_trend(self, attendance_df):
        facts = attendance.facts_from_frame(attendance_df)
        comparison = compare_periods(facts, "daily", REF)
        daily = attendance.daily_trend(facts, comparison)
        assert [p["label"] for p in daily["points"]] == ["2025-01-27", "2025-01-28"]
        assert daily["points"][1]["percentage"] == pytest.approx(200 / 3)
        assert daily["trend"] == "improving"


# ── Fees ────────────────────────────────────────────────────────────

@pytest.fixture
def fees_df():
    return pd.DataFrame([
        {"student_id": "s1", "student_name": "Amina", "class_id": "c5", "class_name": "Grade 5A", "billed": 1000, "paid": 1000, "due_date": "2025-01-10", "date": "2025-01-20"},
        {"student_id": "s2", "student_name": "Brian", "class_id": "c5", "class_name": "Grade 5A", "billed": 1000, "paid": 400, "due_date": "2024-12-15", "date": "2025-01-20"},
        {"student_id": "s3", "student_name": "Chao", "class_id": "c5", "class_name": "Grade 5A", "billed": 500, "paid": 0, "due_date": "2025-02-15", "date": "2025-01-20"},
        {"student_id": "s4", "student_name": "Dina", "class_id": "c6", "class_name": "Grade 6B", "billed": 0, "paid": 0, "due_date": None, "date": "2025-01-20"},
        {"student_id": "s5", "student_name": "Eli", "class_id": "c6", "class_name": "Grade 6B", "billed": 200, "paid": 300, "due_date": "2025-01-05", "date": "2025-01-20"},
    ])


class TestFees:
    """Tests for core/fees.py."""

    def test_collection_rate_is_money_weighted(self, fees_df):
        facts = fees.facts_from_frame(fees_df, "class")
        current = compare_periods(facts, "weekly", REF).current
        by_label = {r.group_label: r for r in current}
        assert by_label["Grade 5A"].numerator == 140000
        assert by_label["Grade 5A"].denominator == 250000
        assert by_label["Grade 5A"].percentage == pytest.approx(56.0)
        # overpayment is capped at the billed amount
        assert by_label["Grade 6B"].percentage == pytest.approx(100.0)

    def test_class_grouping_requires_class_column(self, fees_df):
        with pytest.raises(ValueError, match="class_id"):
            fees.facts_from_frame(fees_df.drop(columns=["class_id"]), "class")

    def test_student_grouping_without_class_column(self, fees_df):
        facts = fees.facts_from_frame(fees_df.drop(columns=["class_id"]), "student")
        assert len(facts) == 5

    @pytest.mark.parametrize("days,bucket", [
        (None, "current"), (0, "current"), (30, "current"), (31, "30-60"),
        (60, "30-60"), (61, "60-90"), (90, "60-90"), (91, "90+"),
    ])
    def test_aging_bucket(self, days, bucket):
        due = None if days is None else REF - timedelta(days=days)
        assert fees.aging_bucket(due, REF) == bucket

    def test_fee_status(self):
        assert fees.fee_status(0, 0, None, REF) == "no_billing"
        assert fees.fee_status(100, 100, None, REF) == "paid"
        assert fees.fee_status(100, 50, REF - timedelta(days=1), REF) == "overdue"
        assert fees.fee_status(100, 50, REF, REF) == "current"

    def test_overview(self, fees_df):
        overview = fees.fee_overview(fees_df, REF)
        assert overview["total_billed"] == pytest.approx(2700.0)
        assert overview["total_collected"] == pytest.approx(1600.0)
        assert overview["total_outstanding"] == pytest.approx(1100.0)
        assert overview["realization_rate"] == pytest.approx(1600 / 2700 * 100)
        assert overview["aging_breakdown"] == {"current": 1, "30-60": 1, "60-90": 0, "90+": 0}
        assert overview["status_counts"] == {"paid": 2, "current": 1, "overdue": 1, "no_billing": 1}
        first = overview["student_summaries"][0]
        assert first["student_name"] == "Brian"
        assert first["total_due"] == pytest.approx(600.0)
        assert first["aging_days"] == 47

    def test_overview_window_excludes_lines(self, fees_df):
        overview = fees.fee_overview(fees_df, REF, start=date(2025, 1, 25), end=REF)
        assert overview["total_billed"] == 0
        assert overview["realization_rate"] == 0.0


# ── Academics ───────────────────────────────────────────────────────

@pytest.fixture
def attempts_df():
    return pd.DataFrame([
        {"subject_id": "math", "subject_name": "Mathematics", "student_id": "s1", "status": "completed", "earned_points": 40, "total_points": 50, "date": "2025-01-27"},
        {"subject_id": "math", "subject_name": "Mathematics", "student_id": "s2", "status": "graded", "earned_points": 45, "total_points": 50, "date": "2025-01-28"},
        {"subject_id": "math", "subject_name": "Mathematics", "student_id": "s3", "status": "assigned", "earned_points": None, "total_points": 50, "date": "2025-01-28"},
        {"subject_id": "sci", "subject_name": "Science", "student_id": "s1", "status": "submitted", "earned_points": 60, "total_points": 50, "date": "2025-01-29"},
        {"subject_id": "sci", "subject_name": "Science", "student_id": "s2", "status": "completed", "earned_points": 10, "total_points": 0, "date": "2025-01-29"},
        {"subject_id": "sci", "subject_name": "Science", "student_id": "s3", "status": "completed", "earned_points": 20, "total_points": 50, "date": "2024-11-01"},
    ])


class TestAcademics:
    """Tests for core/academics.py."""

    def test_participation(self, attempts_df):
        facts = academics.facts_from_frame(attempts_df, "subject", "participation")
        current = compare_periods(facts, "daily", REF).current
        by_label = {r.group_label: r for r in current}
        assert by_label["Mathematics"].percentage == pytest.approx(200 / 3)
        assert by_label["Science"].percentage == pytest.approx(100.0)

    def test_score_counts_completed_attempts_only(self, attempts_df):
        facts = academics.facts_from_frame(attempts_df, "subject", "score")
        current = compare_periods(facts, "daily", REF).current
        by_label = {r.group_label: r for r in current}
        assert by_label["Mathematics"].numerator == pytest.approx(85.0)
        assert by_label["Mathematics"].denominator == pytest.approx(100.0)
        # earned points are clamped to the total; zero-total attempts are skipped
        assert by_label["Science"].percentage == pytest.approx(100.0)
        assert by_label["Science"].row_count == 1

    def test_invalid_measure(self, attempts_df):
        with pytest.raises(ValueError, match="measure"):
            academics.facts_from_frame(attempts_df, "subject", "attendance")

    def test_class_grouping_requires_class_column(self, attempts_df):
        with pytest.raises(ValueError, match="class_id"):
            academics.facts_from_frame(attempts_df, "class")

    def test_attempt_counts(self, attempts_df):
        counts = academics.attempt_counts(attempts_df, date(2025, 1, 25), REF)
        assert counts == {"total_attempts": 5, "completed_attempts": 4, "pending_attempts": 1}

    def test_attempt_counts_unbounded(self, attempts_df):
        assert academics.attempt_counts(attempts_df)["total_attempts"] == 6


# ── Syllabus ────────────────────────────────────────────────────────

@pytest.fixture
def syllabus_df():
    return pd.DataFrame([
        {"class_id": "c5", "class_name": "5A", "subject_id": "math", "subject_name": "Math", "chapter_id": "ch1", "is_completed": True, "date": "2025-01-10"},
        {"class_id": "c5", "class_name": "5A", "subject_id": "math", "subject_name": "Math", "chapter_id": "ch2", "is_completed": True, "date": "2025-01-28"},
        {"class_id": "c5", "class_name": "5A", "subject_id": "math", "subject_name": "Math", "chapter_id": "ch3", "is_completed": False, "date": "2025-01-05"},
        {"class_id": "c5", "class_name": "5A", "subject_id": "math", "subject_name": "Math", "chapter_id": "ch4", "is_completed": False, "date": "2025-01-05"},
        {"class_id": "c5", "class_name": "5A", "subject_id": "sci", "subject_name": "Science", "chapter_id": "ch1", "is_completed": True, "date": "2025-01-15"},
    ])


class TestSyllabus:
    """Tests for core/syllabus.py."""

    def test_cumulative_completion_and_trend(self, syllabus_df):
        facts = syllabus.facts_from_frame(syllabus_df)
        comparison = compare_periods(facts, "daily", REF, cumulative=syllabus.CUMULATIVE)
        by_label = {r.group_label: r for r in comparison.ranked}
        math = by_label["5A - Math"]
        assert math.group_key.ids == ("c5", "math")
        assert math.percentage == pytest.approx(50.0)
        # ch2 completes inside the current window: 1/3 before → 2/4 now
        assert math.previous_percentage == pytest.approx(100 / 3)
        assert math.trend_direction == TrendDirection.IMPROVING
        assert by_label["5A - Science"].percentage == pytest.approx(100.0)

    def test_group_by_subject(self, syllabus_df):
        facts = syllabus.facts_from_frame(syllabus_df, "subject")
        assert {f.group_key.kind for f in facts} == {GroupKind.SUBJECT}
        assert {f.group_label for f in facts} == {"Math", "Science"}

    def test_status_fallback(self):
        fact = syllabus.to_fact_row({"class_id": "c5", "subject_id": "math", "status": "Completed", "date": "2025-01-10"})
        assert fact.numerator == 1

    def test_unstarted_undated_chapters_stay_in_denominator(self):
        df = pd.DataFrame([
            {"class_id": "c5", "subject_id": "math", "chapter_id": "ch1", "is_completed": True, "date": "2025-01-28"},
            {"class_id": "c5", "subject_id": "math", "chapter_id": "ch2", "is_completed": False, "date": None},
            {"class_id": "c5", "subject_id": "math", "chapter_id": "ch3", "is_completed": False, "date": None},
            {"class_id": "c5", "subject_id": "math", "chapter_id": "ch4", "is_completed": False, "date": None},
        ])
        facts = syllabus.facts_from_frame(df)
        assert len(facts) == 4
        comparison = compare_periods(facts, "daily", REF, cumulative=syllabus.CUMULATIVE)
        row = comparison.ranked[0]
        assert row.denominator == 4
        assert row.percentage == pytest.approx(25.0)
        assert row.previous_percentage == pytest.approx(0.0)

    def test_frame_without_date_column(self):
        df = pd.DataFrame([
            {"class_id": "c5", "subject_id": "math", "is_completed": "yes"},
            {"class_id": "c5", "subject_id": "math", "is_completed": "no"},
        ])
        facts = syllabus.facts_from_frame(df)
        assert all(f.timestamp == syllabus.UNDATED for f in facts)
        current = compare_periods(facts, "daily", REF, cumulative=True).current
        assert current[0].percentage == pytest.approx(50.0)

    def test_missing_subject_skips_record(self):
        assert syllabus.to_fact_row({"class_id": "c5", "is_completed": True, "date": "2025-01-10"}) is None

    def test_completion_summary(self, syllabus_df):
        facts = syllabus.facts_from_frame(syllabus_df)
        current = compare_periods(facts, "daily", REF, cumulative=True).current
        summary = syllabus.completion_summary(current)
        assert summary == {"tracked_groups": 2, "completed_groups": 1, "completed_topics": 3, "total_topics": 5}


# ── Operations ──────────────────────────────────────────────────────

@pytest.fixture
def timetable_df():
    return pd.DataFrame([
        {"teacher_id": "t1", "teacher_name": "Ms. Otieno", "conducted": True, "date": "2025-01-27"},
        {"teacher_id": "t1", "teacher_name": "Ms. Otieno", "conducted": True, "date": "2025-01-28"},
        {"teacher_id": "t1", "teacher_name": "Ms. Otieno", "conducted": False, "date": "2025-01-29"},
        {"teacher_id": "t1", "teacher_name": "Ms. Otieno", "conducted": True, "date": "2025-01-30"},
        {"teacher_id": "t2", "teacher_name": "Mr. Kamau", "conducted": True, "date": "2025-01-27"},
        {"teacher_id": "t2", "teacher_name": "Mr. Kamau", "conducted": False, "date": "2025-01-28"},
    ])


class TestOperations:
    """Tests for core/operations.py."""

    def test_coverage(self, timetable_df):
        facts = operations.facts_from_frame(timetable_df)
        ranked = compare_periods(facts, "daily", REF).ranked
        assert [r.group_label for r in ranked] == ["Ms. Otieno", "Mr. Kamau"]
        assert ranked[0].percentage == pytest.approx(75.0)
        assert ranked[1].percentage == pytest.approx(50.0)

    def test_status_column_fallback(self):
        fact = operations.to_fact_row({"teacher_id": "t1", "status": "Held", "date": "2025-01-28"})
        assert fact.numerator == 1

    def test_requires_conducted_or_status(self):
        df = pd.DataFrame([{"teacher_id": "t1", "date": "2025-01-28"}])
        with pytest.raises(ValueError, match="conducted"):
            operations.facts_from_frame(df)

    def test_teacher_load(self, timetable_df):
        facts = operations.facts_from_frame(timetable_df)
        load = operations.teacher_load(compare_periods(facts, "daily", REF).current)
        assert [row["id"] for row in load["loads"]] == ["t1", "t2"]
        assert load["loads"][0]["planned_periods"] == 4
        assert load["mean_planned"] == pytest.approx(3.0)
        assert load["load_spread"] == pytest.approx(1.0)

    def test_teacher_load_empty(self):
        assert operations.teacher_load([]) == {"loads": [], "mean_planned": None, "load_spread": None}
