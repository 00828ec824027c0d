"""
Checks for manually scheduled classes and audits of finished schedules.

validate_assignment re-reads the schedule it is given on every call, so it
always reflects what is currently committed rather than any optimizer state.
"""
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Optional

from .rules import (
    DAILY_HOUR_LIMIT, DAYS, HOURS_WARNING_MARGIN, MIN_DAYS_OFF, NEW_INSTRUCTOR_WEEKLY_LIMIT, WEEKLY_HOUR_LIMIT,
    check_assignment, format_allowed_at_location, is_restricted_time, location_parallel_capacity, weekly_hour_limit
)
from .tracker import EPSILON, InstructorLoadTracker


@dataclass
class ValidationResult:
    is_valid: bool
    warning: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self):
        return {'is_valid': self.is_valid, 'warning': self.warning, 'error': self.error}


def compute_instructor_hours(schedule):
    """Weekly hours per instructor display name"""
    hours = {}
    names = {}
    for cls in schedule:
        key = cls.instructor_key
        names.setdefault(key, cls.instructor_name)
        hours[key] = hours.get(key, 0.0) + float(cls.duration)
    return {names[key]: round(total, 2) for key, total in hours.items()}


def _build_tracker(schedule, instructors, exclude_id=None, **limits):
    tracker = InstructorLoadTracker(instructors, **limits)
    for cls in schedule:
        if cls.id == exclude_id:
            continue
        tracker.commit(cls.instructor_name, cls.day, cls.time, cls.location, float(cls.duration))
    return tracker


def validate_assignment(current_schedule, candidate, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT,
                        new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT, daily_limit=DAILY_HOUR_LIMIT,
                        min_days_off=MIN_DAYS_OFF):
    """Validate one manually placed class against the current schedule"""
    others = [cls for cls in current_schedule if cls.id != candidate.id]
    tracker = _build_tracker(
        others, instructors,
        weekly_limit=weekly_limit, new_weekly_limit=new_weekly_limit,
        daily_limit=daily_limit, min_days_off=min_days_off
    )
    instructor = tracker.resolve(candidate.instructor_name)
    duration = float(candidate.duration)

    # Weekly cap is reported first so the message names the limit that matters most
    cap = weekly_hour_limit(instructor, weekly_limit, new_weekly_limit)
    current_hours = tracker.weekly_hours(instructor)
    new_total = current_hours + duration
    if new_total > cap + EPSILON:
        return ValidationResult(
            is_valid=False,
            error=(f"This would exceed {instructor.name}'s {cap:g}-hour weekly limit "
                   f"(currently {current_hours:g}h, would be {new_total:g}h)")
        )

    violation = check_assignment(
        candidate.class_format, candidate.location, candidate.time, candidate.is_private, instructor
    )
    if violation:
        return ValidationResult(is_valid=False, error=violation.message)

    in_cell = [cls for cls in others if cls.cell == candidate.cell]
    if any(cls.class_format == candidate.class_format for cls in in_cell):
        return ValidationResult(
            is_valid=False,
            error=f"{candidate.class_format} is already scheduled at {candidate.location} on {candidate.day} {candidate.time}"
        )
    capacity = location_parallel_capacity(candidate.location)
    if len(in_cell) >= capacity:
        return ValidationResult(
            is_valid=False,
            error=f"{candidate.location} already has {capacity} classes on {candidate.day} at {candidate.time}"
        )

    violation = tracker.check(
        instructor, candidate.day, candidate.time, duration, candidate.class_format, candidate.location
    )
    if violation:
        return ValidationResult(is_valid=False, error=violation.message)

    if new_total > cap - HOURS_WARNING_MARGIN:
        return ValidationResult(
            is_valid=True,
            warning=f"{instructor.name} will have {new_total:g}h this week, close to the {cap:g}-hour limit"
        )

    return ValidationResult(is_valid=True)


def audit_schedule(schedule, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT,
                   new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT, daily_limit=DAILY_HOUR_LIMIT,
                   min_days_off=MIN_DAYS_OFF):
    """Describe every invariant breach in a finished schedule; never raises"""
    warnings = []
    tracker = InstructorLoadTracker(instructors, weekly_limit=weekly_limit, new_weekly_limit=new_weekly_limit)

    weekly = defaultdict(float)
    daily = defaultdict(float)
    day_locations = defaultdict(set)
    names = {}
    cells = defaultdict(list)

    for cls in schedule:
        key = cls.instructor_key
        names.setdefault(key, cls.instructor_name)
        weekly[key] += float(cls.duration)
        daily[(key, cls.day)] += float(cls.duration)
        day_locations[(key, cls.day)].add(cls.location)
        cells[cls.cell].append(cls)

        if not format_allowed_at_location(cls.class_format, cls.location):
            warnings.append(f"{cls.class_format} is not offered at {cls.location} ({cls.day} {cls.time})")
        if is_restricted_time(cls.time, cls.is_private):
            warnings.append(f"{cls.class_format} at {cls.location} on {cls.day} {cls.time} is in the restricted band")

    for key, hours in weekly.items():
        cap = tracker.weekly_cap(names[key])
        if hours > cap + EPSILON:
            warnings.append(f"{names[key]} is scheduled for {hours:g}h, above the {cap:g}-hour weekly limit")

    for (key, day), hours in daily.items():
        if hours > daily_limit + EPSILON:
            warnings.append(f"{names[key]} is scheduled for {hours:g}h on {day}, above the {daily_limit:g}-hour daily limit")

    working_days = defaultdict(set)
    for (key, day), locations in day_locations.items():
        working_days[key].add(day)
        if len(locations) > 1:
            warnings.append(f"{names[key]} teaches at {len(locations)} locations on {day}")

    for key, days in working_days.items():
        if len(days) > len(DAYS) - min_days_off:
            warnings.append(f"{names[key]} works {len(days)} days; at least {min_days_off} days off are required")

    for (day, time, location), classes in cells.items():
        capacity = location_parallel_capacity(location)
        if len(classes) > capacity:
            warnings.append(f"{location} has {len(classes)} parallel classes on {day} {time} (capacity {capacity})")
        for class_format, count in Counter(cls.class_format for cls in classes).items():
            if count > 1:
                warnings.append(f"{class_format} is scheduled {count} times at {location} on {day} {time}")

    return warnings


def overloaded_instructors(schedule, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT,
                           new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT):
    """(name, hours, cap) for everyone above their weekly cap"""
    tracker = InstructorLoadTracker(instructors, weekly_limit=weekly_limit, new_weekly_limit=new_weekly_limit)
    result = []
    for name, hours in compute_instructor_hours(schedule).items():
        cap = tracker.weekly_cap(name)
        if hours > cap + EPSILON:
            result.append((name, hours, cap))
    return result
