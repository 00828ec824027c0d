import logging

from studio_scheduler import db
from studio_scheduler.entities import HistoricClassRecord, Instructor as InstructorEntity, ScheduledClass
from studio_scheduler.models import ClassRecord, DayOfWeek, Instructor, Location, Schedule, ScheduleEntry

logger = logging.getLogger(__name__)

ENTRY_FIELDS = [
    'day', 'time', 'location', 'class_format', 'instructor_first_name', 'instructor_last_name', 'duration',
    'participants', 'revenue', 'is_top_performer', 'is_private', 'is_locked', 'cover_instructor'
]


class DataDrivenProcessor:
    """
    Reads historic classes and the instructor roster from the database and
    converts them into the plain entities the scheduler works on
    """

    def load_and_process_data(self):
        logger.info("Loading scheduler input from database...")

        records = self._load_records()
        instructors = self._load_instructors()
        locations = {location.name: location.parallel_capacity for location in Location.query.all()}

        logger.info("Loaded %d historic classes, %d instructors, %d locations",
                    len(records), len(instructors), len(locations))

        return {
            'records': records,
            'instructors': instructors,
            'locations': locations,
        }

    def _load_records(self):
        return [class_record_to_entity(row) for row in ClassRecord.query.order_by(ClassRecord.id).all()]

    def _load_instructors(self):
        return [instructor_to_entity(row) for row in Instructor.query.order_by(Instructor.id).all()]


def load_database_driven():
    """
    Load scheduler input from the database

    Returns:
        dict with 'records' (HistoricClassRecord list), 'instructors'
        (Instructor entity list) and 'locations' (name -> parallel capacity)
    """
    processor = DataDrivenProcessor()
    return processor.load_and_process_data()

# =============================================================
# ===================== Row <-> entity ========================
# =============================================================

def class_record_to_entity(row):
    return HistoricClassRecord(
        class_format=row.class_format,
        location=row.location,
        day=row.day,
        time=row.time,
        instructor=row.instructor,
        participants=row.participants,
        revenue=row.revenue or 0.0,
        checked_in=row.checked_in or 0,
        comps=row.comps or 0,
        late_cancellations=row.late_cancellations or 0,
        class_date=row.class_date,
    )


def instructor_to_entity(row):
    return InstructorEntity(
        first_name=row.first_name,
        last_name=row.last_name or '',
        tier=row.tier,
        unavailable_days=tuple(DayOfWeek(offday.day).label for offday in row.unavailable_days),
        max_hours=row.max_hours,
    )


def entry_to_class(entry):
    values = {name: getattr(entry, name) for name in ENTRY_FIELDS}
    return ScheduledClass(id=entry.uid, **values)


def class_to_entry(cls, schedule):
    values = {name: getattr(cls, name) for name in ENTRY_FIELDS}
    return ScheduleEntry(uid=cls.id, schedule=schedule, **values)


def update_entry(entry, cls):
    for name in ENTRY_FIELDS:
        setattr(entry, name, getattr(cls, name))


def schedule_classes(schedule):
    """Scheduled classes of a stored schedule, in entry order"""
    return [entry_to_class(entry) for entry in schedule.entries]


def save_schedule(result, active=False):
    """Persist a ScheduleResult as a new Schedule; caller commits"""
    schedule = Schedule(active=active, strategy=result.strategy)
    db.session.add(schedule)
    for cls in result.schedule:
        db.session.add(class_to_entry(cls, schedule))
    return schedule
