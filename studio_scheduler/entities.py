from dataclasses import dataclass, field, asdict
from typing import Optional, Tuple, NamedTuple
import re
import uuid


def normalize_time(value):
    """Normalize '7:30', '07:30:00' or '07:30 AM' style strings to HH:MM"""
    text = str(value).strip()
    match = re.match(r'^(\d{1,2}):(\d{2})', text)
    if not match:
        raise ValueError(f"Unrecognised time value: {value!r}")

    hour, minute = int(match.group(1)), int(match.group(2))
    suffix = text[match.end():].strip().upper()
    if suffix.startswith('PM') and hour < 12:
        hour += 12
    elif suffix.startswith('AM') and hour == 12:
        hour = 0

    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Time out of range: {value!r}")
    return f"{hour:02d}:{minute:02d}"


def time_to_minutes(time):
    hour, minute = time.split(':')[:2]
    return int(hour) * 60 + int(minute)


def minutes_to_time(minutes):
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def instructor_key(name):
    """Stable identity for an instructor: case and whitespace insensitive"""
    return ' '.join(str(name).split()).lower()


def split_name(full_name):
    parts = str(full_name).split()
    if not parts:
        return '', ''
    return parts[0], ' '.join(parts[1:])


# =============================================================
# ======================= Historic data =======================
# =============================================================

@dataclass(frozen=True)
class HistoricClassRecord:
    """One historic class session. Source of truth for every statistic."""
    class_format: str
    location: str
    day: str
    time: str
    instructor: str
    participants: int
    revenue: float = 0.0
    checked_in: int = 0
    comps: int = 0
    late_cancellations: int = 0
    class_date: Optional[str] = None

    def __post_init__(self):
        # Frozen; grouping relies on minute-precision HH:MM times
        object.__setattr__(self, 'time', normalize_time(self.time))

    @property
    def instructor_key(self):
        return instructor_key(self.instructor)

    @property
    def is_hosted(self):
        return 'hosted' in self.class_format.lower()


class GroupKey(NamedTuple):
    class_format: str
    location: str
    day: str
    time: str
    instructor: Optional[str] = None


@dataclass(frozen=True)
class PerformanceStat:
    """Aggregated performance of one (format, location, day, time[, instructor]) group"""
    class_format: str
    location: str
    day: str
    time: str
    instructor: Optional[str]
    total_participants: float
    total_revenue: float
    count: int
    is_locked: bool = False

    def __post_init__(self):
        if self.count < 1:
            raise ValueError("PerformanceStat requires at least one record")

    @property
    def key(self):
        return GroupKey(self.class_format, self.location, self.day, self.time, self.instructor)

    @property
    def cell_key(self):
        return (self.class_format, self.location, self.day, self.time)

    @property
    def avg_participants(self):
        return self.total_participants / self.count

    @property
    def avg_revenue(self):
        return self.total_revenue / self.count

    @property
    def frequency(self):
        return self.count

    @property
    def display_avg_participants(self):
        return round(self.avg_participants, 1)

    @property
    def display_avg_revenue(self):
        return round(self.avg_revenue, 1)

    def to_dict(self):
        return {
            'class_format': self.class_format,
            'location': self.location,
            'day': self.day,
            'time': self.time,
            'instructor': self.instructor,
            'avg_participants': self.display_avg_participants,
            'avg_revenue': self.display_avg_revenue,
            'frequency': self.count,
            'is_locked': self.is_locked,
        }


# =============================================================
# ======================== Instructors ========================
# =============================================================

TIER_SENIOR = 'senior'
TIER_NEW = 'new'
TIER_STANDARD = 'standard'
TIERS = (TIER_SENIOR, TIER_NEW, TIER_STANDARD)


@dataclass(frozen=True)
class Instructor:
    first_name: str
    last_name: str = ''
    tier: str = TIER_STANDARD
    specialties: Tuple[str, ...] = ()
    unavailable_days: Tuple[str, ...] = ()
    max_hours: Optional[float] = None

    @property
    def name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def key(self):
        return instructor_key(self.name)

    @property
    def is_senior(self):
        return self.tier == TIER_SENIOR


# =============================================================
# ===================== Scheduled classes =====================
# =============================================================

@dataclass
class ScheduledClass:
    """One class placed in a (day, time, location) cell"""
    day: str
    time: str
    location: str
    class_format: str
    instructor_first_name: str
    instructor_last_name: str
    duration: float
    participants: Optional[float] = None
    revenue: Optional[float] = None
    is_top_performer: bool = False
    is_private: bool = False
    is_locked: bool = False
    cover_instructor: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def instructor_name(self):
        return f"{self.instructor_first_name} {self.instructor_last_name}".strip()

    @property
    def instructor_key(self):
        return instructor_key(self.instructor_name)

    @property
    def cell(self):
        return (self.day, self.time, self.location)

    def assign_instructor(self, full_name):
        self.instructor_first_name, self.instructor_last_name = split_name(full_name)

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        known = {name for name in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}
        if 'instructor' in data and 'instructor_first_name' not in values:
            values['instructor_first_name'], values['instructor_last_name'] = split_name(data['instructor'])
        values['time'] = normalize_time(values['time'])
        values['duration'] = float(values['duration'])
        return cls(**values)


@dataclass
class ScheduleResult:
    schedule: list
    warnings: list
    statistics: dict
    strategy: str = 'attendance'

    def to_dict(self):
        return {
            'schedule': [cls.to_dict() for cls in self.schedule],
            'warnings': list(self.warnings),
            'statistics': self.statistics,
            'strategy': self.strategy,
        }
