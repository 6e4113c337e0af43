"""Remote sync failures, backup status and outbox replay."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from qr_attendance.utils.decorators import instructor_required
from qr_attendance.utils.helpers import get_attendance_store, get_backup_service, success_response

backups_bp = Blueprint('backups', __name__)


@backups_bp.route('/status', methods=['GET'])
@jwt_required()
@instructor_required
def backup_status():
    status = get_backup_service().get_status(get_attendance_store().sync)
    return success_response(data=status)


@backups_bp.route('/errors', methods=['GET'])
@jwt_required()
@instructor_required
def sync_errors():
    """Remote writes that failed since startup, newest last."""
    errors = get_attendance_store().sync.errors
    return success_response(data=[e.to_dict() for e in errors])


@backups_bp.route('/outbox', methods=['GET'])
@jwt_required()
@instructor_required
def outbox():
    return success_response(data=get_backup_service().pending())


@backups_bp.route('/replay', methods=['POST'])
@jwt_required()
@instructor_required
def replay():
    result = get_backup_service().replay_outbox(get_attendance_store().sync)
    return success_response(
        data=result,
        message=f"{result['successful']} of {result['total']} queued writes synced"
    )


@backups_bp.route('/records', methods=['GET'])
@jwt_required()
@instructor_required
def backup_records():
    """Rows on the backup spreadsheet, optionally for one day (YYYY-MM-DD)."""
    rows = get_backup_service().get_backup_records(request.args.get('date'))
    return success_response(data=rows)
