"""
Business rules for studio scheduling.

Every function in this module is a pure predicate or lookup over the
configuration tables below; nothing here keeps state between calls, so the
tables and helpers can be shared freely between optimization runs.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from .entities import Instructor, TIER_NEW, TIER_SENIOR, TIER_STANDARD, split_name, time_to_minutes

# ==================== EDITABLE CONFIGURATION ====================

DAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

KWALITY_HOUSE = 'Kwality House, Kemps Corner'
POWERCYCLE_HUB = 'Supreme HQ, Bandra'
KENKERE_HOUSE = 'Kenkere House'
LOCATIONS = [KWALITY_HOUSE, POWERCYCLE_HUB, KENKERE_HOUSE]

# Hour limits
WEEKLY_HOUR_LIMIT = 15          # Max teaching hours per instructor per week
NEW_INSTRUCTOR_WEEKLY_LIMIT = 10  # Max weekly hours for "new" tier instructors
DAILY_HOUR_LIMIT = 4            # Max teaching hours per instructor per day
MIN_DAYS_OFF = 2                # Days per week with no classes at all
HOURS_WARNING_MARGIN = 3        # Warn when a manual booking lands this close to the weekly cap

# Performance thresholds
MIN_SLOT_AVERAGE = 4.0          # Historic average a format needs to be scheduled into a cell
TOP_PERFORMER_THRESHOLD = 6.0   # Average participants that marks a class as a top performer
POPULATE_TOP_THRESHOLD = 5.0    # Minimum average used by the "populate top classes" action
DIVERSITY_MIN_OCCURRENCES = 3   # Weekly floor for each diversity format

# Extra rules applied in strategy comparison runs
MAX_CONSECUTIVE_CLASSES = 2     # Refuse a class once this many of the instructor's classes start within the window
CONSECUTIVE_WINDOW_MINUTES = 90
MAX_TRAINERS_PER_SHIFT = 3      # Distinct instructors per (location, day, shift)
SUNDAY_MAX_TRAINERS_PER_SHIFT = 1

# Parallel classes per (day, time, location)
DEFAULT_PARALLEL_CAPACITY = 2
POWERCYCLE_HUB_CAPACITY = 3

# Tier membership is matched by first-name substring against these lists
SENIOR_INSTRUCTORS = ['Anisha', 'Vivaran', 'Mrigakshi', 'Pranjali', 'Atulan', 'Cauveri', 'Rohan']
NEW_INSTRUCTORS = ['Kabir', 'Simonelle']
EXCLUDED_INSTRUCTORS = ['Nishanth', 'Saniya']

NEW_INSTRUCTOR_FORMATS = [
    'Studio Barre 57',
    'Studio Barre 57 (Express)',
    'Studio powerCycle',
    'Studio powerCycle (Express)',
    'Studio Cardio Barre',
]
ADVANCED_FORMAT_MARKERS = ['hiit', 'amped up']

DIVERSITY_FORMATS = ['Studio Cardio Barre', 'Studio Mat 57', 'Studio Back Body Blaze', 'Studio Amped Up!']

MORNING_SLOTS = ['07:30', '08:00', '08:30', '09:00', '09:30', '10:00', '10:30', '11:00', '11:30']
EVENING_SLOTS = ['17:00', '17:30', '18:00', '18:30', '19:00', '19:30']
RESTRICTED_SLOTS = ['12:00', '12:30', '13:00', '13:30', '14:00', '14:30', '15:00', '15:30', '16:00', '16:30']
PEAK_HOURS = {
    'morning': ['07:00', '07:30', '08:00', '08:30', '09:00', '09:30', '10:00', '10:30', '11:00', '11:30'],
    'evening': ['17:30', '18:00', '18:30', '19:00', '19:30', '20:00'],
}
RESTRICTED_START = '12:00'
RESTRICTED_END = '17:00'

# Times at which phase 1 aims for more than one parallel class
PARALLEL_TARGETS = {
    KWALITY_HOUSE: {'09:00': 2, '11:00': 2, '18:00': 2},
    POWERCYCLE_HUB: {'08:00': 2, '09:00': 2, '10:00': 2, '18:00': 2, '19:00': 2},
}

# ==================== END EDITABLE CONFIGURATION ====================


@dataclass(frozen=True)
class ConstraintViolation:
    """Typed rejection of a candidate assignment"""
    code: str
    message: str

    def __str__(self):
        return self.message


@dataclass(frozen=True)
class DayGuideline:
    focus: str
    priority: List[str] = field(default_factory=list)
    avoid: List[str] = field(default_factory=list)
    max_classes: int = 12


@dataclass(frozen=True)
class LockedClass:
    class_format: str
    day: str
    time: str
    location: str
    instructor: str
    avg_participants: float


DAY_GUIDELINES = {
    'Monday': DayGuideline(
        focus='Strong start with high-demand formats & senior trainers',
        avoid=['Studio Recovery'],
        priority=['Studio Barre 57', 'Studio FIT', 'Studio powerCycle', 'Studio Mat 57'],
        max_classes=12,
    ),
    'Tuesday': DayGuideline(
        focus='Balance beginner & intermediate classes',
        avoid=['Studio HIIT', 'Studio Amped Up!'],
        priority=['Studio Barre 57', 'Studio Mat 57', 'Studio Foundations', 'Studio Cardio Barre'],
        max_classes=12,
    ),
    'Wednesday': DayGuideline(
        focus="Midweek peak - repeat Monday's popular formats",
        avoid=[],
        priority=['Studio Barre 57', 'Studio FIT', 'Studio powerCycle', 'Studio Mat 57'],
        max_classes=12,
    ),
    'Thursday': DayGuideline(
        focus='Lighter mix with recovery formats',
        avoid=[],
        priority=['Studio Recovery', 'Studio Mat 57', 'Studio Cardio Barre', 'Studio Back Body Blaze'],
        max_classes=10,
    ),
    'Friday': DayGuideline(
        focus='Energy-focused with HIIT/Advanced classes',
        avoid=[],
        priority=['Studio HIIT', 'Studio Amped Up!', 'Studio FIT', 'Studio Cardio Barre'],
        max_classes=12,
    ),
    'Saturday': DayGuideline(
        focus='Family-friendly & community formats',
        avoid=['Studio HIIT'],
        priority=['Studio Barre 57', 'Studio Foundations', 'Studio Recovery', 'Studio Mat 57'],
        max_classes=10,
    ),
    'Sunday': DayGuideline(
        focus='Max 4-5 classes, highest scoring formats only',
        avoid=['Studio HIIT', 'Studio Amped Up!'],
        priority=['Studio Barre 57', 'Studio Recovery', 'Studio Mat 57'],
        max_classes=5,
    ),
}

# Hand-curated combinations that are always placed first and never moved
LOCKED_CLASSES = [
    LockedClass('Studio Mat 57', 'Saturday', '10:15', KWALITY_HOUSE, 'Karanvir Bhatia', 25),
    LockedClass('Studio FIT', 'Tuesday', '19:15', KWALITY_HOUSE, 'Anisha Shah', 9.19),
    LockedClass('Studio Mat 57', 'Wednesday', '19:15', KWALITY_HOUSE, 'Karanvir Bhatia', 9.35),
    LockedClass('Studio FIT', 'Friday', '09:00', KWALITY_HOUSE, 'Anisha Shah', 11.08),
    LockedClass('Studio Back Body Blaze', 'Wednesday', '09:00', KWALITY_HOUSE, 'Anisha Shah', 10.58),
    LockedClass('Studio Barre 57', 'Sunday', '11:30', KWALITY_HOUSE, 'Rohan Dahima', 9.8),
    LockedClass('Studio Mat 57', 'Monday', '08:30', KWALITY_HOUSE, 'Anisha Shah', 10.54),
    LockedClass('Studio Barre 57', 'Monday', '18:45', KWALITY_HOUSE, 'Pranjali Jain', 8.65),
    LockedClass('Studio powerCycle', 'Sunday', '10:00', POWERCYCLE_HUB, 'Cauveri Vikrant', 8.5),
    LockedClass('Studio Mat 57', 'Tuesday', '11:00', KWALITY_HOUSE, 'Atulan Purohit', 8.62),
]


# =============================================================
# ====================== Format & location ====================
# =============================================================

def class_duration(class_format):
    """Duration in hours derived from the format name"""
    lower_name = class_format.lower()
    if 'express' in lower_name:
        return 0.75
    if 'recovery' in lower_name or 'sweat in 30' in lower_name:
        return 0.5
    return 1.0


def is_hosted_class(class_format):
    return 'hosted' in class_format.lower()


def is_advanced_format(class_format):
    lower_format = class_format.lower()
    return any(marker in lower_format for marker in ADVANCED_FORMAT_MARKERS)


def is_powercycle_format(class_format):
    lower_format = class_format.lower()
    return 'powercycle' in lower_format or 'power cycle' in lower_format


def format_allowed_at_location(class_format, location):
    """The PowerCycle hub refuses HIIT / Amped Up; every other studio refuses PowerCycle"""
    if location == POWERCYCLE_HUB:
        return not is_advanced_format(class_format)
    return not is_powercycle_format(class_format)


def location_parallel_capacity(location):
    if location == POWERCYCLE_HUB:
        return POWERCYCLE_HUB_CAPACITY
    return DEFAULT_PARALLEL_CAPACITY


def parallel_target(location, time):
    """How many parallel classes phase 1 aims for in a cell"""
    target = PARALLEL_TARGETS.get(location, {}).get(time, 1)
    return min(target, location_parallel_capacity(location))


def day_guidelines(day):
    return DAY_GUIDELINES.get(day, DayGuideline(focus='', priority=[], avoid=[], max_classes=12))


# =============================================================
# ========================= Time slots ========================
# =============================================================

def available_slots(day=None):
    """Bookable slots for regular classes; identical for every day"""
    return MORNING_SLOTS + EVENING_SLOTS


def restricted_slots():
    return list(RESTRICTED_SLOTS)


def is_restricted_time(time, is_private=False):
    """12:00-17:00 is closed to regular classes; private sessions are exempt"""
    if is_private:
        return False
    minutes = time_to_minutes(time)
    return time_to_minutes(RESTRICTED_START) <= minutes < time_to_minutes(RESTRICTED_END)


def shift_for_time(time):
    """'morning' before 14:00, 'evening' from 17:00, None in between"""
    minutes = time_to_minutes(time)
    if minutes < 14 * 60:
        return 'morning'
    if minutes >= 17 * 60:
        return 'evening'
    return None


def shift_slots(shift):
    return [t for t in available_slots() if shift_for_time(t) == shift]


def is_peak_hour(time):
    return time in PEAK_HOURS['morning'] or time in PEAK_HOURS['evening']


# =============================================================
# ========================= Instructors =======================
# =============================================================

def _matches_any(name, fragments):
    lower_name = name.lower()
    return any(fragment.lower() in lower_name for fragment in fragments)


def classify_tier(name, senior_names=None, new_names=None):
    """Tier from configured name lists (substring match)"""
    senior_names = SENIOR_INSTRUCTORS if senior_names is None else senior_names
    new_names = NEW_INSTRUCTORS if new_names is None else new_names
    if _matches_any(name, new_names):
        return TIER_NEW
    if _matches_any(name, senior_names):
        return TIER_SENIOR
    return TIER_STANDARD


def is_excluded_instructor(name, excluded_names=None):
    excluded_names = EXCLUDED_INSTRUCTORS if excluded_names is None else excluded_names
    return _matches_any(name, excluded_names)


def make_instructor(full_name, tier=None, **kwargs):
    first_name, last_name = split_name(full_name)
    return Instructor(
        first_name=first_name,
        last_name=last_name,
        tier=tier or classify_tier(full_name),
        **kwargs
    )


def instructor_tier_eligible(instructor, class_format):
    """New instructors teach only their allow-list; advanced formats need a senior"""
    if isinstance(instructor, str):
        instructor = make_instructor(instructor)

    if instructor.tier == TIER_NEW:
        allowed = {f.lower() for f in NEW_INSTRUCTOR_FORMATS}
        if class_format.strip().lower() not in allowed:
            return False

    if is_advanced_format(class_format) and instructor.tier != TIER_SENIOR:
        return False

    return True


def weekly_hour_limit(instructor, standard_limit=WEEKLY_HOUR_LIMIT, new_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT):
    limit = new_limit if instructor.tier == TIER_NEW else standard_limit
    if instructor.max_hours is not None:
        limit = min(limit, instructor.max_hours)
    return limit


# =============================================================
# ===================== Combined rule check ===================
# =============================================================

def check_assignment(class_format, location, time, is_private=False, instructor: Optional[Instructor] = None):
    """Stateless checks for a candidate; returns a ConstraintViolation or None"""
    if not format_allowed_at_location(class_format, location):
        return ConstraintViolation(
            'location_format',
            f"{class_format} is not offered at {location}"
        )

    if is_restricted_time(time, is_private):
        return ConstraintViolation(
            'restricted_time',
            f"{time} falls in the restricted {RESTRICTED_START}-{RESTRICTED_END} band; only private classes may be booked"
        )

    if instructor is not None and not instructor_tier_eligible(instructor, class_format):
        return ConstraintViolation(
            'tier',
            f"{instructor.name} ({instructor.tier} tier) is not eligible to teach {class_format}"
        )

    return None
