from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
from werkzeug.utils import secure_filename
from sqlalchemy.exc import IntegrityError

from studio_scheduler import db, bcrypt
from studio_scheduler.data_processor import load_database_driven, schedule_classes, class_to_entry, update_entry
from studio_scheduler.entities import ScheduledClass, split_name
from studio_scheduler.enhanced_scheduler import EnhancedStudioScheduler
from studio_scheduler.forms import LoginForm, InstructorFilter, InstructorForm, OptimizerConfig, PopulateTopForm, \
    ManualClassForm, RecommendationQuery, DataUploadForm
from studio_scheduler.models import DayOfWeek, User, Instructor, InstructorLocation, Schedule, ScheduleEntry
from studio_scheduler.recommendations import build_provider, get_recommendations, suggest_optimizations
from studio_scheduler.rules import class_duration
from studio_scheduler.util import process_class_records_file, process_instructors_file, format_schedule_for_display, \
    sync_instructor_locations, sync_unavailable_days
from studio_scheduler.validation import compute_instructor_hours, validate_assignment

from math import ceil

api_bp = Blueprint('apis', __name__, url_prefix='/api')

# =============================================================
# ======================= Authentication ======================
# =============================================================

@api_bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    return jsonify({'csrf_token': generate_csrf()})

@api_bp.route('/login', methods=['POST'])
def login():
    form = LoginForm(data=request.get_json())

    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid login request', 'errors': form.errors}), 400

    user = User.query.filter_by(username=form.username.data).first()
    if not user or not bcrypt.check_password_hash(user.password, form.password.data):
        current_app.logger.info(f"Failed login for {form.username.data}")
        return jsonify({'success': False, 'message': 'Invalid username or password'}), 401

    login_user(user)
    return jsonify({'success': True, 'message': f'Logged in as {user.username}'})

@api_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True, 'message': 'Logged out'})

# =============================================================
# ========================= Data upload =======================
# =============================================================

@api_bp.route('/data-upload', methods=['POST'])
@login_required
def data_upload():
    form = DataUploadForm()

    if not form.validate_on_submit():
        current_app.logger.info(f"Upload validation failed: {form.errors}")
        return jsonify({
            'success': False,
            'message': 'Form validation failed. Please check your files and try again.',
            'errors': form.errors
        }), 400

    try:
        processed_files = []

        file_processors = [
            ('class_records_file', process_class_records_file),
            ('instructors_file', process_instructors_file),
        ]

        for field_name, processor_func in file_processors:
            field = getattr(form, field_name)
            if field.data and hasattr(field.data, 'filename') and field.data.filename:
                filename = secure_filename(field.data.filename)
                current_app.logger.info(f"Processing {field_name}: {filename}")
                field.data.seek(0)
                try:
                    result = processor_func(field.data)
                except ValueError as e:
                    raise ValueError(f"Error processing {filename}: {e}") from e
                processed_files.append({'field': field_name, 'filename': filename, 'result': result})

        if not processed_files:
            return jsonify({
                'success': False,
                'message': 'No files were uploaded. Please select at least one CSV file.',
                'processed_files': [],
                'file_count': 0
            }), 400

        db.session.commit()
        return jsonify({
            'success': True,
            'message': f'Successfully processed {len(processed_files)} file(s)!',
            'processed_files': processed_files,
            'file_count': len(processed_files)
        })

    except ValueError as e:
        db.session.rollback()
        current_app.logger.warning(str(e))
        return jsonify({'success': False, 'message': str(e), 'processed_files': [], 'file_count': 0}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Error processing upload")
        return jsonify({
            'success': False,
            'message': f'Error processing files: {str(e)}',
            'processed_files': [],
            'file_count': 0
        }), 500

# =============================================================
# ========================= Instructors =======================
# =============================================================

def format_instructor(instructor):
    return {
        'id': instructor.id,
        'name': instructor.name,
        'first_name': instructor.first_name,
        'last_name': instructor.last_name,
        'tier': instructor.tier,
        'max_hours': instructor.max_hours,
        'locations': [link.location.name for link in instructor.assigned_locations],
        'unavailable_days': [{
            'day': DayOfWeek(offday.day).label,
            'reason': offday.reason
        } for offday in instructor.unavailable_days],
    }

@api_bp.route('/instructor', methods=['GET'])
def get_instructors():
    form = InstructorFilter(request.args)
    query = db.session.query(Instructor)

    if form.name.data:
        pattern = f"%{form.name.data}%"
        query = query.filter(db.or_(Instructor.first_name.ilike(pattern), Instructor.last_name.ilike(pattern)))
    if form.tier.data:
        query = query.filter(Instructor.tier == form.tier.data)
    if form.location.data:
        query = query.join(Instructor.assigned_locations).filter(InstructorLocation.location_id == form.location.data.id)

    instructors = query.order_by(Instructor.first_name, Instructor.last_name).all()
    return jsonify([format_instructor(instructor) for instructor in instructors])

@api_bp.route('/instructor', methods=['POST'])
@login_required
def create_instructor():
    form = InstructorForm(data=request.get_json())

    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid instructor', 'errors': form.errors}), 400

    first_name, last_name = form.first_name.data.strip(), (form.last_name.data or '').strip()
    if Instructor.query.filter_by(first_name=first_name, last_name=last_name).first():
        return jsonify({
            'success': False,
            'message': f"Instructor '{first_name} {last_name}' already exists"
        }), 400

    instructor = Instructor(first_name=first_name, last_name=last_name)
    db.session.add(instructor)
    _apply_instructor_form(instructor, form)
    db.session.commit()

    return jsonify({'success': True, 'instructor': format_instructor(instructor)}), 201

@api_bp.route('/instructor/<int:id>', methods=['GET'])
def get_instructor_by_id(id):
    instructor = db.get_or_404(Instructor, id)
    return jsonify(format_instructor(instructor))

@api_bp.route('/instructor/<int:id>', methods=['PUT'])
@login_required
def update_instructor_by_id(id):
    form = InstructorForm(data=request.get_json())

    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid instructor', 'errors': form.errors}), 400

    instructor = db.get_or_404(Instructor, id)
    instructor.first_name = form.first_name.data
    instructor.last_name = form.last_name.data or ''
    _apply_instructor_form(instructor, form)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'success': False, 'message': 'Another instructor already has that name'}), 400

    return get_instructor_by_id(id)

@api_bp.route('/instructor/<int:id>', methods=['DELETE'])
@login_required
def delete_instructor_by_id(id):
    instructor = db.get_or_404(Instructor, id)

    db.session.delete(instructor)
    db.session.commit()

    return '', 204

def _apply_instructor_form(instructor, form):
    instructor.tier = form.tier.data
    instructor.max_hours = form.max_hours.data
    sync_instructor_locations(instructor, form.locations.data)
    sync_unavailable_days(instructor, form.unavailable_days.data)

# =============================================================
# ========================= Optimizer =========================
# =============================================================

def _load_scheduler_input():
    """Records and roster from the database, or None when there is nothing to schedule from"""
    data = load_database_driven()
    if not data['records']:
        return None
    return data

def _scheduler_config(overrides=None):
    config = dict(current_app.config.get('SCHEDULER_CONFIG') or {})
    config.update(overrides or {})
    return config

NO_DATA_RESPONSE = {'success': False, 'message': 'No historic class data uploaded yet'}

@api_bp.route('/schedule/generate', methods=['POST'])
def generate():
    """Run the optimizer on the stored history and return the result without saving it"""
    form = OptimizerConfig(data=request.get_json(silent=True) or {})
    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid optimizer configuration', 'errors': form.errors}), 400

    try:
        data = _load_scheduler_input()
        if data is None:
            return jsonify(NO_DATA_RESPONSE), 400

        scheduler = EnhancedStudioScheduler(data['records'], data['instructors'], _scheduler_config(form.scheduler_config()))
        result = scheduler.generate(
            target_day=form.target_day.data or None,
            optimization_type=form.optimization_type.data
        )
        scheduler.log_summary(result)
        current_app.logger.info(f"Generated {len(result.schedule)} classes with {len(result.warnings)} warnings")

        response = result.to_dict()
        response['success'] = True
        response['display'] = format_schedule_for_display(result.schedule)
        return jsonify(response)

    except Exception as e:
        current_app.logger.exception(f"Error generating schedule: {e}")
        return jsonify({'success': False, 'message': 'Something went wrong.'}), 500

@api_bp.route('/schedule/compare', methods=['POST'])
def compare():
    form = OptimizerConfig(data=request.get_json(silent=True) or {})
    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid optimizer configuration', 'errors': form.errors}), 400

    try:
        data = _load_scheduler_input()
        if data is None:
            return jsonify(NO_DATA_RESPONSE), 400

        scheduler = EnhancedStudioScheduler(data['records'], data['instructors'], _scheduler_config(form.scheduler_config()))
        comparison = scheduler.generate_strategy_comparison(form.target_day.data or None)
        return jsonify({'success': True, 'strategies': comparison})

    except Exception as e:
        current_app.logger.exception(f"Error comparing strategies: {e}")
        return jsonify({'success': False, 'message': 'Something went wrong.'}), 500

@api_bp.route('/schedule/populate-top', methods=['POST'])
def populate_top():
    form = PopulateTopForm(data=request.get_json(silent=True) or {})
    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid request', 'errors': form.errors}), 400

    try:
        data = _load_scheduler_input()
        if data is None:
            return jsonify(NO_DATA_RESPONSE), 400

        scheduler = EnhancedStudioScheduler(data['records'], data['instructors'], _scheduler_config())
        result = scheduler.populate_top_classes(form.limit.data, form.min_average.data)

        response = result.to_dict()
        response['success'] = True
        return jsonify(response)

    except Exception as e:
        current_app.logger.exception(f"Error populating top classes: {e}")
        return jsonify({'success': False, 'message': 'Something went wrong.'}), 500

def _recommendation_provider():
    return build_provider(
        current_app.config.get('RECOMMENDER_PROVIDER'),
        current_app.config.get('RECOMMENDER_API_KEY'),
        endpoint=current_app.config.get('RECOMMENDER_ENDPOINT'),
        timeout=current_app.config.get('RECOMMENDER_TIMEOUT', 8),
    )

@api_bp.route('/recommendations', methods=['GET'])
def recommendations():
    form = RecommendationQuery(request.args)
    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid slot', 'errors': form.errors}), 400

    data = load_database_driven()
    ranked = get_recommendations(
        data['records'], form.day.data, form.time.data, form.location.data,
        provider=_recommendation_provider(), limit=form.limit.data or 5
    )

    return jsonify({
        'success': True,
        'day': form.day.data,
        'time': form.time.data,
        'location': form.location.data,
        'recommendations': [rec.to_dict() for rec in ranked]
    })

# =============================================================
# ====================== Stored schedules =====================
# =============================================================

def format_schedule(schedule):
    classes = schedule_classes(schedule)
    return {
        'id': schedule.id,
        'date_created': schedule.date_created.isoformat(),
        'active': bool(schedule.active),
        'strategy': schedule.strategy,
        'classes': [cls.to_dict() for cls in classes],
        'display': format_schedule_for_display(classes),
    }

@api_bp.route('/schedule/', methods=['POST'])
@login_required
def save_posted_schedule():
    """Store a schedule returned by /schedule/generate (or edited on the client)"""
    payload = request.get_json(silent=True) or {}
    classes = payload.get('schedule')

    if not classes:
        return jsonify({'success': False, 'message': 'No data provided'}), 400

    try:
        schedule = Schedule(strategy=payload.get('strategy', 'attendance'))
        db.session.add(schedule)
        for item in classes:
            db.session.add(class_to_entry(ScheduledClass.from_dict(item), schedule))
        db.session.commit()
    except (KeyError, TypeError, ValueError, IntegrityError) as e:
        db.session.rollback()
        current_app.logger.warning(f"Rejected schedule upload: {e}")
        return jsonify({'success': False, 'message': f'Invalid schedule: {e}'}), 400

    return jsonify({'success': True, 'message': 'Schedule saved', 'schedule_id': schedule.id}), 201

@api_bp.route('/schedule/', methods=['GET'])
def get_schedules():
    results_per_page = int(request.args.get('results', 20))
    page = int(request.args.get('page', 1))
    show_active = bool(request.args.get('show_active', False))

    if not 1 <= results_per_page <= 100:
        return jsonify({
            'success': False,
            'message': 'Invalid results per page. Must be between 1 and 100.'
        }), 400

    total_count = Schedule.query.count()
    max_pages = ceil(total_count / results_per_page)

    if total_count == 0:
        return jsonify({
            "results": [],
            "page": page,
            "max_pages": max_pages,
            "total_count": total_count
        }), 200

    if not 1 <= page <= max_pages:
        return jsonify({
            'success': False,
            'message': f'Invalid page. Must be between 1 and {max_pages}'
        }), 400

    schedules = Schedule.query \
        .order_by(Schedule.date_created.desc(), Schedule.id.desc()) \
        .offset((page - 1) * results_per_page) \
        .limit(results_per_page) \
        .all()

    response = [format_schedule(s) for s in schedules]

    if show_active:
        active = Schedule.query.filter(Schedule.active == True).first()  # noqa: E712
        if active and all(s['id'] != active.id for s in response):
            response.insert(0, format_schedule(active))

    return jsonify({
        "results": response,
        "page": page,
        "max_pages": max_pages,
        "total_count": total_count
    }), 200

@api_bp.route('/schedule/<int:id>', methods=['GET'])
def get_schedule_by_id(id):
    schedule = db.get_or_404(Schedule, id)
    return jsonify(format_schedule(schedule)), 200

@api_bp.route('/schedule/<int:id>', methods=['DELETE'])
@login_required
def delete_schedule(id):
    schedule = db.get_or_404(Schedule, id)
    db.session.delete(schedule)

    db.session.commit()

    return jsonify({
        'success': True,
        'message': f'Deleted schedule id {id}.'
    }), 200

@api_bp.route('/schedule/<int:id>/activate', methods=['POST'])
@login_required
def set_active_schedule(id):
    schedule = db.get_or_404(Schedule, id)
    Schedule.query.update({Schedule.active: False})
    db.session.flush()

    schedule.active = True
    db.session.commit()

    return jsonify({
        'success': True,
        'message': 'Updated active schedule.'
    }), 200

@api_bp.route('/schedule/active', methods=['GET'])
def get_active_schedule():
    schedule = Schedule.query.filter(Schedule.active == True).first()  # noqa: E712

    if not schedule:
        return jsonify({
            'success': False,
            'message': 'No active schedule found.'
        }), 404

    return get_schedule_by_id(schedule.id)

@api_bp.route('/schedule/<int:id>/hours', methods=['GET'])
def get_schedule_hours(id):
    schedule = db.get_or_404(Schedule, id)
    classes = schedule_classes(schedule)
    data = load_database_driven()
    suggestions = suggest_optimizations(
        classes, data['instructors'], records=data['records'], provider=_recommendation_provider()
    )

    return jsonify({
        'schedule_id': schedule.id,
        'hours': compute_instructor_hours(classes),
        'suggestions': [s.to_dict() for s in suggestions]
    }), 200

# =============================================================
# ================== Manual single-slot booking ===============
# =============================================================

def _candidate_from_form(form, class_id=None):
    first_name, last_name = split_name(form.instructor.data)
    candidate = ScheduledClass(
        day=form.day.data,
        time=form.time.data,
        location=form.location.data,
        class_format=form.class_format.data.strip(),
        instructor_first_name=first_name,
        instructor_last_name=last_name,
        duration=form.duration.data or class_duration(form.class_format.data),
        participants=form.participants.data,
        revenue=form.revenue.data,
        is_private=bool(form.is_private.data),
        cover_instructor=form.cover_instructor.data or None,
    )
    if class_id:
        candidate.id = class_id
    return candidate

def _validate_candidate(schedule, candidate):
    instructors = load_database_driven()['instructors']
    return validate_assignment(schedule_classes(schedule), candidate, instructors)

@api_bp.route('/schedule/<int:id>/classes', methods=['POST'])
@login_required
def add_class(id):
    schedule = db.get_or_404(Schedule, id)
    form = ManualClassForm(data=request.get_json())

    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid class', 'errors': form.errors}), 400

    candidate = _candidate_from_form(form)
    result = _validate_candidate(schedule, candidate)
    if not result.is_valid:
        current_app.logger.info(f"{current_user.username} booking rejected: {result.error}")
        return jsonify({'success': False, 'message': result.error, 'validation': result.to_dict()}), 400

    db.session.add(class_to_entry(candidate, schedule))
    db.session.commit()

    return jsonify({
        'success': True,
        'class': candidate.to_dict(),
        'warning': result.warning,
        'hours': compute_instructor_hours(schedule_classes(schedule))
    }), 201

@api_bp.route('/schedule/<int:id>/classes/<class_id>', methods=['PUT'])
@login_required
def update_class(id, class_id):
    schedule = db.get_or_404(Schedule, id)
    entry = ScheduleEntry.query.filter_by(schedule_id=schedule.id, uid=class_id).first_or_404()
    form = ManualClassForm(data=request.get_json())

    if not form.validate():
        return jsonify({'success': False, 'message': 'Invalid class', 'errors': form.errors}), 400

    candidate = _candidate_from_form(form, class_id=class_id)
    candidate.is_locked = entry.is_locked
    candidate.is_top_performer = entry.is_top_performer
    result = _validate_candidate(schedule, candidate)
    if not result.is_valid:
        return jsonify({'success': False, 'message': result.error, 'validation': result.to_dict()}), 400

    update_entry(entry, candidate)
    db.session.commit()

    return jsonify({
        'success': True,
        'class': candidate.to_dict(),
        'warning': result.warning,
        'hours': compute_instructor_hours(schedule_classes(schedule))
    }), 200

@api_bp.route('/schedule/<int:id>/classes/<class_id>', methods=['DELETE'])
@login_required
def delete_class(id, class_id):
    schedule = db.get_or_404(Schedule, id)
    entry = ScheduleEntry.query.filter_by(schedule_id=schedule.id, uid=class_id).first_or_404()

    db.session.delete(entry)
    db.session.commit()

    return jsonify({
        'success': True,
        'message': f'Removed class {class_id}.',
        'hours': compute_instructor_hours(schedule_classes(schedule))
    }), 200
