from collections import Counter, defaultdict
from dataclasses import dataclass, field
import copy
import logging

from .entities import Instructor, instructor_key, time_to_minutes
from .rules import (
    DAILY_HOUR_LIMIT, DAYS, MIN_DAYS_OFF, NEW_INSTRUCTOR_WEEKLY_LIMIT, WEEKLY_HOUR_LIMIT,
    ConstraintViolation, instructor_tier_eligible, make_instructor, shift_for_time, weekly_hour_limit
)

logger = logging.getLogger(__name__)

# Float slack when comparing accumulated hours against caps
EPSILON = 1e-9


@dataclass
class InstructorState:
    """Per-instructor accounting for one optimization run"""
    weekly_hours: float = 0.0
    daily_hours: dict = field(default_factory=lambda: defaultdict(float))
    daily_classes: dict = field(default_factory=lambda: defaultdict(int))
    shift_counts: dict = field(default_factory=lambda: defaultdict(Counter))
    day_locations: dict = field(default_factory=dict)
    location_counts: Counter = field(default_factory=Counter)
    intervals: dict = field(default_factory=lambda: defaultdict(list))

    @property
    def working_days(self):
        return {day for day, count in self.daily_classes.items() if count > 0}

    @property
    def locations(self):
        return {location for location, count in self.location_counts.items() if count > 0}


class InstructorLoadTracker:
    """
    Mutable hour and day accounting for instructors during one run.

    Each optimization run (and each strategy in a comparison) owns its own
    tracker. Callers check with can_assign/check before commit; commit itself
    never validates. Not thread-safe.
    """

    def __init__(self, instructors=None, weekly_limit=WEEKLY_HOUR_LIMIT, new_weekly_limit=NEW_INSTRUCTOR_WEEKLY_LIMIT,
                 daily_limit=DAILY_HOUR_LIMIT, min_days_off=MIN_DAYS_OFF):
        self.instructors = {i.key: i for i in (instructors or [])}
        self.weekly_limit = weekly_limit
        self.new_weekly_limit = new_weekly_limit
        self.daily_limit = daily_limit
        self.max_working_days = len(DAYS) - min_days_off
        self._states = defaultdict(InstructorState)

    # ==================== IDENTITY ====================

    def resolve(self, instructor):
        """Instructor object for a name or Instructor, registering unknown names"""
        if isinstance(instructor, Instructor):
            return self.instructors.setdefault(instructor.key, instructor)
        key = instructor_key(instructor)
        if key not in self.instructors:
            self.instructors[key] = make_instructor(instructor)
        return self.instructors[key]

    def state_for(self, instructor):
        return self._states[self.resolve(instructor).key]

    # ==================== QUERIES ====================

    def weekly_hours(self, instructor):
        return self.state_for(instructor).weekly_hours

    def daily_hours(self, instructor, day):
        return self.state_for(instructor).daily_hours.get(day, 0.0)

    def working_days(self, instructor):
        return self.state_for(instructor).working_days

    def weekly_cap(self, instructor):
        return weekly_hour_limit(self.resolve(instructor), self.weekly_limit, self.new_weekly_limit)

    def remaining_hours(self, instructor):
        return max(0.0, self.weekly_cap(instructor) - self.weekly_hours(instructor))

    def summary(self):
        """Hours, days and locations per instructor with any load"""
        result = {}
        for key, state in self._states.items():
            if state.weekly_hours <= 0:
                continue
            result[self.instructors[key].name] = {
                'hours': round(state.weekly_hours, 2),
                'days': sorted(state.working_days, key=lambda d: DAYS.index(d) if d in DAYS else len(DAYS)),
                'locations': sorted(state.locations),
                'shifts': sum(sum(c.values()) for c in state.shift_counts.values()),
            }
        return result

    # ==================== VALIDATION ====================

    def check(self, instructor, day, time, duration, class_format, location=None):
        """First rule a candidate breaks, or None when it can be committed"""
        instructor = self.resolve(instructor)
        state = self._states[instructor.key]

        if not instructor_tier_eligible(instructor, class_format):
            return ConstraintViolation('tier', f"{instructor.name} is not eligible to teach {class_format}")

        if day in instructor.unavailable_days:
            return ConstraintViolation('unavailable', f"{instructor.name} is unavailable on {day}")

        # A new working day is refused before any hour budget is consulted
        working_days = state.working_days
        if day not in working_days and len(working_days) >= self.max_working_days:
            return ConstraintViolation(
                'days_off',
                f"{instructor.name} already works {len(working_days)} days; {len(DAYS) - self.max_working_days} days off are required"
            )

        cap = weekly_hour_limit(instructor, self.weekly_limit, self.new_weekly_limit)
        if state.weekly_hours + duration > cap + EPSILON:
            return ConstraintViolation(
                'weekly_limit',
                f"{instructor.name} would exceed the {cap:g}-hour weekly limit ({state.weekly_hours + duration:g}h)"
            )

        if state.daily_hours.get(day, 0.0) + duration > self.daily_limit + EPSILON:
            return ConstraintViolation(
                'daily_limit',
                f"{instructor.name} would exceed the {self.daily_limit:g}-hour daily limit on {day}"
            )

        existing_location = state.day_locations.get(day)
        if location and existing_location and existing_location != location:
            return ConstraintViolation(
                'location_per_day',
                f"{instructor.name} already teaches at {existing_location} on {day}"
            )

        start = time_to_minutes(time)
        end = start + int(round(duration * 60))
        for busy_start, busy_end in state.intervals.get(day, []):
            if start < busy_end and busy_start < end:
                return ConstraintViolation('overlap', f"{instructor.name} is already teaching at that time on {day}")

        return None

    def can_assign(self, instructor, day, time, duration, class_format, location=None):
        violation = self.check(instructor, day, time, duration, class_format, location)
        if violation:
            logger.debug("Rejected %s on %s %s: %s", class_format, day, time, violation.message)
        return violation is None

    # ==================== MUTATION ====================

    def commit(self, instructor, day, time, location, duration):
        """Record an assignment; callers must have checked it first"""
        state = self.state_for(instructor)
        start = time_to_minutes(time)

        state.weekly_hours += duration
        state.daily_hours[day] += duration
        state.daily_classes[day] += 1
        state.day_locations[day] = location
        state.location_counts[location] += 1
        state.intervals[day].append((start, start + int(round(duration * 60))))

        shift = shift_for_time(time)
        if shift:
            state.shift_counts[day][shift] += 1

    def release(self, instructor, day, time, location, duration):
        """Exact inverse of commit"""
        state = self.state_for(instructor)
        start = time_to_minutes(time)

        state.weekly_hours -= duration
        state.daily_hours[day] -= duration
        state.daily_classes[day] -= 1
        state.location_counts[location] -= 1
        interval = (start, start + int(round(duration * 60)))
        if interval in state.intervals[day]:
            state.intervals[day].remove(interval)

        shift = shift_for_time(time)
        if shift:
            state.shift_counts[day][shift] -= 1

        if state.daily_classes[day] <= 0:
            del state.daily_classes[day]
            state.daily_hours.pop(day, None)
            state.day_locations.pop(day, None)
            state.intervals.pop(day, None)
            state.shift_counts.pop(day, None)

    def copy(self):
        """Independent tracker with the same accounting, used for planning"""
        clone = InstructorLoadTracker.__new__(InstructorLoadTracker)
        clone.instructors = dict(self.instructors)
        clone.weekly_limit = self.weekly_limit
        clone.new_weekly_limit = self.new_weekly_limit
        clone.daily_limit = self.daily_limit
        clone.max_working_days = self.max_working_days
        clone._states = copy.deepcopy(self._states)
        return clone
