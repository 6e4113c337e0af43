"""Grades and attendance report endpoints."""
from flask import Blueprint, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from qr_attendance.services.grading_service import GradingService, ReportService
from qr_attendance.utils.decorators import instructor_required, student_required
from qr_attendance.utils.helpers import error_response, get_attendance_store, success_response

reports_bp = Blueprint('reports', __name__)


def _exam_scores():
    """Exam scores passed as ?exam=<subject>:<score>, repeatable."""
    scores = {}
    for item in request.args.getlist('exam'):
        subject, _, score = item.rpartition(':')
        if not subject:
            raise ValueError(f"Invalid exam score: {item}")
        scores[subject] = float(score)
    return scores


@reports_bp.route('/grades/me', methods=['GET'])
@jwt_required()
@student_required
def my_grades():
    grading = GradingService(get_attendance_store())
    return success_response(data=grading.calculate_student_grades(get_jwt_identity()))


@reports_bp.route('/grades/<student_id>', methods=['GET'])
@jwt_required()
@instructor_required
def student_grades(student_id):
    store = get_attendance_store()
    if store.get_student(student_id) is None:
        return error_response("Student not found", 404)

    try:
        exam_scores = _exam_scores()
    except ValueError as e:
        return error_response(str(e), 400)

    grading = GradingService(store)
    return success_response(data=grading.calculate_student_grades(student_id, exam_scores))


@reports_bp.route('/subjects', methods=['GET'])
@jwt_required()
@instructor_required
def subject_report():
    return success_response(data=ReportService(get_attendance_store()).subject_summary())
