from studio_scheduler import db
from flask_login import UserMixin
from datetime import datetime
import enum

from .rules import DAYS, location_parallel_capacity


class DayOfWeek(enum.IntEnum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def label(self):
        return DAYS[self.value]

    @classmethod
    def from_label(cls, label):
        return cls[str(label).strip().upper()]

# =============================================================
# =========================== Users ===========================
# =============================================================

class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    username = db.Column(db.String(32), nullable=False, unique=True)
    password = db.Column(db.String(128), nullable=False)
    permissions = db.Column(db.Integer, nullable=False)  # 0 = read only, 1 = may generate and edit schedules
    time_joined = db.Column(db.DateTime, nullable=False, default=datetime.now)

# =============================================================
# ==================== Relational Entities ====================
# =============================================================

class Location(db.Model):
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    parallel_capacity = db.Column(db.Integer, nullable=False)  # Classes that can run in the same slot

    assigned_instructors = db.relationship('InstructorLocation', back_populates='location')

    @classmethod
    def for_name(cls, name):
        """Existing row or a new one with the studio's default capacity"""
        location = cls.query.filter_by(name=name).first()
        if location is None:
            location = cls(name=name, parallel_capacity=location_parallel_capacity(name))
            db.session.add(location)
        return location


class Instructor(db.Model):
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    first_name = db.Column(db.String(32), nullable=False)
    last_name = db.Column(db.String(32), nullable=False, default='')
    tier = db.Column(db.String(16), nullable=False, default='standard')  # senior, new or standard
    max_hours = db.Column(db.Float, nullable=True)  # Personal cap below the tier limit, if any

    assigned_locations = db.relationship('InstructorLocation', back_populates='instructor', cascade='all, delete-orphan')
    unavailable_days = db.relationship('InstructorUnavailableDay', back_populates='instructor', cascade='all, delete-orphan')

    __table_args__ = (
        db.UniqueConstraint('first_name', 'last_name', name='unique_instructor_name'),
    )

    @property
    def name(self):
        return f"{self.first_name} {self.last_name}".strip()


class ClassRecord(db.Model):
    """One historic class session as uploaded"""
    __tablename__ = 'class_record'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    class_format = db.Column(db.String(64), nullable=False)
    location = db.Column(db.String(64), nullable=False)
    day = db.Column(db.String(10), nullable=False)
    time = db.Column(db.String(5), nullable=False)  # HH:MM
    instructor = db.Column(db.String(64), nullable=False)
    participants = db.Column(db.Integer, nullable=False)
    revenue = db.Column(db.Float, nullable=False, default=0.0)
    checked_in = db.Column(db.Integer, nullable=False, default=0)
    comps = db.Column(db.Integer, nullable=False, default=0)
    late_cancellations = db.Column(db.Integer, nullable=False, default=0)
    class_date = db.Column(db.String(32), nullable=True)

# =============================================================
# ===== Association tables for many-to-many relationships =====
# =============================================================

# Handles which studios an instructor teaches at
class InstructorLocation(db.Model):
    __tablename__ = 'instructor_location'

    instructor_id = db.Column(db.Integer, db.ForeignKey('instructor.id'), primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey('location.id'), primary_key=True)

    instructor = db.relationship('Instructor', back_populates='assigned_locations')
    location = db.relationship('Location', back_populates='assigned_instructors')

# Handles which days an instructor cannot teach
class InstructorUnavailableDay(db.Model):
    __tablename__ = 'instructor_unavailable_day'

    instructor_id = db.Column(db.Integer, db.ForeignKey('instructor.id'), primary_key=True)
    day = db.Column(db.Integer, primary_key=True)  # 0 = Monday, 6 = Sunday
    reason = db.Column(db.String(64), nullable=True)

    instructor = db.relationship('Instructor', back_populates='unavailable_days')

# =============================================================
# ===================== Generated Schedule ====================
# =============================================================

class Schedule(db.Model):
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    active = db.Column(db.Boolean, nullable=False, default=False)
    strategy = db.Column(db.String(16), nullable=False, default='attendance')
    date_created = db.Column(db.DateTime, nullable=False, default=datetime.now)

    entries = db.relationship('ScheduleEntry', back_populates='schedule', cascade='all, delete-orphan',
                              order_by='ScheduleEntry.id')


class ScheduleEntry(db.Model):
    __tablename__ = 'schedule_entry'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    uid = db.Column(db.String(32), nullable=False)  # ScheduledClass.id

    day = db.Column(db.String(10), nullable=False)
    time = db.Column(db.String(5), nullable=False)
    location = db.Column(db.String(64), nullable=False)
    class_format = db.Column(db.String(64), nullable=False)
    instructor_first_name = db.Column(db.String(32), nullable=False)
    instructor_last_name = db.Column(db.String(32), nullable=False, default='')
    duration = db.Column(db.Float, nullable=False)
    participants = db.Column(db.Float, nullable=True)
    revenue = db.Column(db.Float, nullable=True)
    is_top_performer = db.Column(db.Boolean, nullable=False, default=False)
    is_private = db.Column(db.Boolean, nullable=False, default=False)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    cover_instructor = db.Column(db.String(64), nullable=True)

    schedule_id = db.Column(db.Integer, db.ForeignKey('schedule.id'), nullable=False)
    schedule = db.relationship('Schedule', back_populates='entries')

    __table_args__ = (
        db.UniqueConstraint(
            'schedule_id', 'day', 'time', 'location', 'class_format',
            name='unique_entry'
        ),
        db.UniqueConstraint('schedule_id', 'uid', name='unique_entry_uid'),
    )
