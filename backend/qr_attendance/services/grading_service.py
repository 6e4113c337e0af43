"""Attendance-based grades and subject reports."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pandas as pd

from qr_attendance.services.attendance_store import AttendanceStore

PASSING_GRADE = 60


@dataclass(frozen=True)
class GradingRule:
    """Weights (summing to 100) used to grade one family of subjects."""
    id: str
    name: str
    attendance_weight: float
    participation_weight: float
    exam_weight: float
    min_attendance_rate: float


DEFAULT_GRADING_RULES: List[GradingRule] = [
    GradingRule('solfege', 'Western Rules & Solfege', 30, 20, 50, 75),
    GradingRule('improvisation', 'Improvisation', 40, 30, 30, 80),
    GradingRule('rhythmic_movement', 'Rhythmic Movement', 50, 30, 20, 85),
    GradingRule('hymn_singing', 'Hymn Singing', 35, 25, 40, 70),
]


class GradingService:
    """Grades students from their check-ins against the sessions held."""

    MAX_PARTICIPATION_SCORE = 10

    def __init__(self, store: AttendanceStore, rules: Optional[List[GradingRule]] = None):
        self._store = store
        self._rules = rules or DEFAULT_GRADING_RULES

    def rule_for(self, subject: str) -> GradingRule:
        """First rule whose name the subject starts with; the first rule otherwise."""
        lowered = subject.lower()
        for rule in self._rules:
            if lowered.startswith(rule.name.lower()):
                return rule
        return self._rules[0]

    def calculate_subject_grade(
        self,
        student_id: str,
        subject: str,
        exam_score: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Grade one student in one subject.

        Without an exam score the grade is scaled over the attendance and
        participation weights only.
        """
        sessions = [s for s in self._store.get_all_sessions() if s.subject == subject]
        if not sessions:
            return {'subject': subject, 'grade': 0, 'status': 'No Sessions', 'breakdown': {}}

        records = [
            r for r in self._store.get_student_attendance_records(student_id)
            if r.subject == subject
        ]
        rule = self.rule_for(subject)

        attendance_rate = min(100.0, len(records) / len(sessions) * 100)
        participation = sum(r.score for r in records) / len(records) if records else 0.0

        attendance_grade = attendance_rate / 100 * rule.attendance_weight
        participation_grade = participation / self.MAX_PARTICIPATION_SCORE * rule.participation_weight

        if exam_score is None:
            exam_grade = 0.0
            scale = 100 / (rule.attendance_weight + rule.participation_weight)
        else:
            exam_grade = max(0.0, min(100.0, exam_score)) / 100 * rule.exam_weight
            scale = 1.0

        total = (attendance_grade + participation_grade + exam_grade) * scale
        passed = attendance_rate >= rule.min_attendance_rate and total >= PASSING_GRADE

        return {
            'subject': subject,
            'rule': rule.id,
            'grade': round(total, 2),
            'status': 'Pass' if passed else 'Fail',
            'breakdown': {
                'attendance': round(attendance_grade, 2),
                'participation': round(participation_grade, 2),
                'exam': round(exam_grade, 2) if exam_score is not None else None,
                'attendance_rate': round(attendance_rate, 2)
            }
        }

    def calculate_student_grades(self, student_id: str, exam_scores: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
        """Grades for every subject the student is enrolled in or has attended."""
        exam_scores = exam_scores or {}
        student = self._store.get_student(student_id)
        subjects = list(student.subjects) if student else []
        for record in self._store.get_student_attendance_records(student_id):
            if record.subject not in subjects:
                subjects.append(record.subject)

        grades = [
            self.calculate_subject_grade(student_id, subject, exam_scores.get(subject))
            for subject in subjects
        ]
        graded = [g for g in grades if g['status'] != 'No Sessions']
        overall = round(sum(g['grade'] for g in graded) / len(graded), 2) if graded else 0

        return {
            'student_id': student_id,
            'subjects': grades,
            'overall_grade': overall,
            'overall_status': 'Pass' if graded and all(g['status'] == 'Pass' for g in graded) else 'Fail'
        }


class ReportService:
    """Per-subject attendance summaries."""

    def __init__(self, store: AttendanceStore):
        self._store = store

    def subject_summary(self) -> List[Dict[str, Any]]:
        sessions = self._store.get_all_sessions()
        if not sessions:
            return []

        df = pd.DataFrame([
            {
                'subject': s.subject,
                'academic_level': s.academic_level,
                'session_id': s.id,
                'attendees': len(s.attendees),
                'late': sum(1 for a in s.attendees if a.status.value == 'late')
            }
            for s in sessions
        ])

        summary = (
            df.groupby(['academic_level', 'subject'])
            .agg(
                sessions=('session_id', 'count'),
                total_attendees=('attendees', 'sum'),
                average_attendance=('attendees', 'mean'),
                late_arrivals=('late', 'sum')
            )
            .reset_index()
            .sort_values(['academic_level', 'subject'])
        )
        summary['average_attendance'] = summary['average_attendance'].round(2)

        return [
            {
                'academic_level': row.academic_level,
                'subject': row.subject,
                'sessions': int(row.sessions),
                'total_attendees': int(row.total_attendees),
                'average_attendance': float(row.average_attendance),
                'late_arrivals': int(row.late_arrivals)
            }
            for row in summary.itertuples(index=False)
        ]
