from flask import Blueprint, request, jsonify, send_file, current_app
from flask_login import login_required
from studio_scheduler import db
from studio_scheduler.data_processor import load_database_driven, save_schedule, schedule_classes
from studio_scheduler.enhanced_scheduler import EnhancedStudioScheduler
from studio_scheduler.forms import OptimizerConfig
from studio_scheduler.models import Schedule
from studio_scheduler.util import format_schedule_for_display
import pandas as pd
import io

timetable_bp = Blueprint('timetable', __name__, url_prefix='/timetable')

EXPORT_COLUMNS = [
    ('day', 'Day'), ('startTime', 'Start Time'), ('endTime', 'End Time'), ('location', 'Location'),
    ('classFormat', 'Class'), ('instructor', 'Instructor'), ('participants', 'Expected Participants'),
    ('revenue', 'Expected Revenue'), ('isTopPerformer', 'Top Performer'), ('isLocked', 'Locked'),
]

@timetable_bp.route('/generate-schedule', methods=['POST'])
@login_required
def generate_schedule():
    """Generate a weekly schedule from the database and store it"""
    form = OptimizerConfig(data=request.get_json(silent=True) or {})
    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid optimizer configuration', 'errors': form.errors}), 400

    try:
        current_app.logger.info("Starting schedule generation from database...")

        data = load_database_driven()
        if not data['records']:
            return jsonify({'success': False, 'message': 'No historic class data uploaded yet'}), 400

        config = dict(current_app.config.get('SCHEDULER_CONFIG') or {})
        config.update(form.scheduler_config())
        scheduler = EnhancedStudioScheduler(data['records'], data['instructors'], config)
        result = scheduler.generate(
            target_day=form.target_day.data or None,
            optimization_type=form.optimization_type.data
        )
        scheduler.log_summary(result)

        activate = bool((request.get_json(silent=True) or {}).get('activate'))
        if activate:
            Schedule.query.update({Schedule.active: False})
        schedule = save_schedule(result, active=activate)
        db.session.commit()

        display_schedule = format_schedule_for_display(result.schedule)

        return jsonify({
            'success': True,
            'message': 'Schedule generated successfully',
            'schedule_id': schedule.id,
            'statistics': result.statistics,
            'warnings': result.warnings,
            'schedule_preview': display_schedule[:10]
        })

    except Exception as e:
        db.session.rollback()
        current_app.logger.exception(f"Error generating schedule: {e}")
        return jsonify({
            'success': False,
            'message': f"Error generating schedule: {str(e)}",
        }), 500

@timetable_bp.route('/download-schedule/<int:id>')
@login_required
def download_schedule(id):
    """Download a stored schedule as CSV"""
    schedule = db.get_or_404(Schedule, id)
    df = schedule_to_frame(schedule)

    buffer = io.BytesIO()
    buffer.write(df.to_csv(index=False).encode('utf-8'))
    buffer.seek(0)

    return send_file(
        buffer,
        as_attachment=True,
        download_name=f"schedule_{schedule.id}_{schedule.date_created.strftime('%Y%m%d_%H%M%S')}.csv",
        mimetype='text/csv'
    )

def schedule_to_frame(schedule):
    """One row per class in calendar order"""
    rows = format_schedule_for_display(schedule_classes(schedule))
    return pd.DataFrame(
        [[row[key] for key, _ in EXPORT_COLUMNS] for row in rows],
        columns=[label for _, label in EXPORT_COLUMNS]
    )
