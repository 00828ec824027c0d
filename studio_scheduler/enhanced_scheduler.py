import logging
import math
from collections import Counter, defaultdict, namedtuple

import numpy as np

from .entities import ScheduleResult, ScheduledClass, instructor_key, time_to_minutes
from .performance import PerformanceIndex, format_stats, select_top_performing
from .rules import (
    DAYS, LOCATIONS, LOCKED_CLASSES, ConstraintViolation, available_slots, check_assignment, class_duration,
    day_guidelines, format_allowed_at_location, is_excluded_instructor, is_hosted_class, is_peak_hour,
    location_parallel_capacity, make_instructor, parallel_target, shift_for_time, shift_slots
)
from . import rules
from .tracker import InstructorLoadTracker
from .validation import audit_schedule, compute_instructor_hours

logger = logging.getLogger(__name__)

Reassignment = namedtuple('Reassignment', ['class_id', 'from_instructor', 'to_instructor'])
TimeMove = namedtuple('TimeMove', ['class_id', 'old_time', 'new_time'])

STRATEGY_PROFILES = [
    ('revenue', 'Revenue Maximizer', 'Optimized for maximum revenue with premium classes in peak hours'),
    ('attendance', 'Attendance Maximizer', 'Optimized for maximum footfall and studio utilization'),
    ('balanced', 'Balanced Schedule', 'Balances revenue, attendance and instructor workload'),
]

DAY_ORDER = {day: i for i, day in enumerate(DAYS)}


class EnhancedStudioScheduler:
    """
    Enhanced Studio Scheduler - Builds a weekly class timetable from historic performance

    Algorithm Overview:
    0. Seed the curated locked classes
    1. Fill every bookable slot with the best-performing format for that cell
    2. Raise under-used instructors towards their weekly target with their specialties
    3. Enforce a weekly floor for the diversity formats
    4. Consolidate instructors per shift (plan, then commit)
    5. Balance morning and evening classes (plan, then commit)
    Every candidate passes the rule set and the load tracker before it is committed.
    """

    # ==================== EDITABLE CONFIGURATION ====================

    # Workload Limits
    WEEKLY_HOUR_LIMIT = rules.WEEKLY_HOUR_LIMIT                      # Max weekly hours per instructor
    NEW_INSTRUCTOR_WEEKLY_LIMIT = rules.NEW_INSTRUCTOR_WEEKLY_LIMIT  # Max weekly hours for new tier
    DAILY_HOUR_LIMIT = rules.DAILY_HOUR_LIMIT                        # Max hours per instructor per day
    MIN_DAYS_OFF = rules.MIN_DAYS_OFF                                # Days per week with no classes

    # Performance Thresholds
    MIN_SLOT_AVERAGE = rules.MIN_SLOT_AVERAGE                  # Historic average a format needs in a cell
    TOP_PERFORMER_THRESHOLD = rules.TOP_PERFORMER_THRESHOLD    # Average that flags a top performer
    POPULATE_TOP_THRESHOLD = rules.POPULATE_TOP_THRESHOLD      # Minimum average for populate_top_classes
    POPULATE_TOP_LIMIT = 50                                    # Max combinations populate_top_classes places

    # Phase Behavior
    UTILIZATION_SPECIALTIES = 3      # Specialties tried per instructor in phase 2
    DIVERSITY_MIN_OCCURRENCES = rules.DIVERSITY_MIN_OCCURRENCES
    MAX_SHIFT_INSTRUCTORS = 2        # Instructors per (location, day, shift) before consolidating
    SHIFT_IMBALANCE_LIMIT = 2        # Morning/evening difference tolerated per (location, day)

    # Strategy Comparison Rules
    MAX_CONSECUTIVE_CLASSES = rules.MAX_CONSECUTIVE_CLASSES
    CONSECUTIVE_WINDOW_MINUTES = rules.CONSECUTIVE_WINDOW_MINUTES
    MAX_TRAINERS_PER_SHIFT = rules.MAX_TRAINERS_PER_SHIFT
    SUNDAY_MAX_TRAINERS_PER_SHIFT = rules.SUNDAY_MAX_TRAINERS_PER_SHIFT

    # Balanced Strategy Weights
    BALANCED_REVENUE_WEIGHT = 0.4
    BALANCED_ATTENDANCE_WEIGHT = 0.6
    REVENUE_SCALE = 10000
    ATTENDANCE_SCALE = 20

    # Fixed internal parameters (not user-adjustable)
    _ASSUMED_CLASS_CAPACITY = 15     # Head count used for fill rate
    _DEFAULT_DIVERSITY_AVERAGE = 6   # Expected attendance for a diversity class with no history

    # ==================== END EDITABLE CONFIGURATION ====================

    STRATEGIES = tuple(profile[0] for profile in STRATEGY_PROFILES)

    def __init__(self, records, instructors=None, config: dict = None):
        if config:
            for key, value in config.items():
                if hasattr(self, key.upper()):
                    setattr(self, key.upper(), value)

        self.records = list(records)
        self.index = PerformanceIndex(self.records)
        self.format_summary = format_stats(self.records)
        self.roster = self._build_roster(instructors or [])

        logger.info(
            "Scheduler ready: %d historic records, %d instructors (weekly limit %gh, new tier %gh, daily %gh)",
            len(self.records), len(self.roster),
            self.WEEKLY_HOUR_LIMIT, self.NEW_INSTRUCTOR_WEEKLY_LIMIT, self.DAILY_HOUR_LIMIT
        )

    def _build_roster(self, instructors):
        """Explicit roster first, then everyone in the records and the locked seeds"""
        roster = {}
        for instructor in instructors:
            roster.setdefault(instructor.key, instructor)

        names = [r.instructor for r in self.records] + [c.instructor for c in LOCKED_CLASSES]
        for name in names:
            key = instructor_key(name)
            if key and key not in roster:
                roster[key] = make_instructor(name)

        kept = [i for i in roster.values() if not is_excluded_instructor(i.name)]
        return sorted(kept, key=lambda i: i.key)

    # =============================================================
    # ========================= Entry points ======================
    # =============================================================

    def generate(self, target_day=None, optimization_type='attendance', strategy_rules=False):
        """
        Run every phase and return a ScheduleResult

        strategy_rules adds the comparison-run limits: consecutive classes,
        one shift per instructor per day and instructors per shift.
        """
        if optimization_type not in self.STRATEGIES:
            logger.warning("Unknown optimization type %r, using attendance", optimization_type)
            optimization_type = 'attendance'

        days = [target_day] if target_day else list(DAYS)
        logger.info("Generating %s schedule for %s", optimization_type, ', '.join(days))

        state = self._initialize_state(strategy_rules)
        self._phase0_seed_locked(state, days)
        self._phase1_fill_slots(state, days, optimization_type)
        self._phase2_maximize_utilization(state, days)
        self._phase3_enforce_diversity(state, days)
        self._phase4_consolidate_shifts(state, days)
        self._phase5_balance_shifts(state, days)

        return self._build_and_validate_result(state, days, optimization_type)

    def generate_strategy_comparison(self, target_day=None):
        """Run each strategy on its own state and compare the outcomes"""
        comparison = []
        for strategy, name, description in STRATEGY_PROFILES:
            result = self.generate(target_day, strategy, strategy_rules=True)
            comparison.append({
                'id': f"{strategy}-schedule",
                'name': name,
                'description': description,
                'strategy': strategy,
                'schedule': [cls.to_dict() for cls in result.schedule],
                'metrics': result.statistics['metrics'],
                'instructor_assignments': self.instructor_assignments(result.schedule),
                'warnings': result.warnings,
            })
        return comparison

    def populate_top_classes(self, limit=None, min_average=None):
        """Place the best historic combinations while respecting instructor limits"""
        limit = self.POPULATE_TOP_LIMIT if limit is None else limit
        min_average = self.POPULATE_TOP_THRESHOLD if min_average is None else min_average

        state = self._initialize_state()
        skipped = 0
        for stat in select_top_performing(self.records, min_average, group_by_instructor=True)[:limit]:
            instructor = state['tracker'].resolve(stat.instructor)
            duration = class_duration(stat.class_format)
            if (self._is_excluded(instructor)
                    or check_assignment(stat.class_format, stat.location, stat.time) is not None
                    or not self._cell_open(state, stat.class_format, stat.location, stat.day, stat.time)
                    or not state['tracker'].can_assign(instructor, stat.day, stat.time, duration,
                                                       stat.class_format, stat.location)):
                skipped += 1
                continue
            self._place(
                state, stat.class_format, stat.location, stat.day, stat.time, instructor,
                participants=stat.avg_participants, revenue=stat.avg_revenue,
                is_locked=stat.is_locked, is_top_performer=True
            )

        logger.info("Populated %d top classes (%d skipped by constraints)", len(state['schedule']), skipped)
        return self._build_and_validate_result(state, list(DAYS), 'attendance', report_empty=False)

    # =============================================================
    # ============================ State ==========================
    # =============================================================

    def _initialize_state(self, strategy_rules=False):
        """Fresh per-run state; nothing is shared between runs"""
        return {
            'strategy_rules': strategy_rules,
            'schedule': [],
            'cells': defaultdict(list),
            'day_counts': Counter(),
            'tracker': InstructorLoadTracker(
                self.roster,
                weekly_limit=self.WEEKLY_HOUR_LIMIT,
                new_weekly_limit=self.NEW_INSTRUCTOR_WEEKLY_LIMIT,
                daily_limit=self.DAILY_HOUR_LIMIT,
                min_days_off=self.MIN_DAYS_OFF,
            ),
            'warnings': [],
        }

    def _is_excluded(self, instructor):
        return is_excluded_instructor(instructor.name)

    def _cell_open(self, state, class_format, location, day, time):
        """Capacity left in the cell and the format not already running there"""
        in_cell = state['cells'][(day, time, location)]
        if len(in_cell) >= location_parallel_capacity(location):
            return False
        return all(cls.class_format != class_format for cls in in_cell)

    def _day_has_room(self, state, day):
        """Guideline cap on classes per day, counted over every studio"""
        return state['day_counts'][day] < day_guidelines(day).max_classes

    def _strategy_rule_violation(self, state, instructor, day, time, location, ignore_id=None):
        """Comparison-run limits for one placement; None when it fits or the run does not use them"""
        if not state['strategy_rules']:
            return None

        shift = shift_for_time(time)
        start = time_to_minutes(time)
        own = [
            cls for cls in state['schedule']
            if cls.day == day and cls.instructor_key == instructor.key and cls.id != ignore_id
        ]

        nearby = sum(1 for cls in own if abs(time_to_minutes(cls.time) - start) <= self.CONSECUTIVE_WINDOW_MINUTES)
        if nearby >= self.MAX_CONSECUTIVE_CLASSES:
            return ConstraintViolation(
                'consecutive', f"{instructor.name} already has {nearby} classes within "
                f"{self.CONSECUTIVE_WINDOW_MINUTES} minutes of {time}"
            )

        if any(shift_for_time(cls.time) != shift for cls in own):
            return ConstraintViolation('one_shift', f"{instructor.name} already works another shift on {day}")

        trainers = {
            cls.instructor_key for cls in state['schedule']
            if cls.location == location and cls.day == day and shift_for_time(cls.time) == shift
            and cls.id != ignore_id
        }
        limit = self.SUNDAY_MAX_TRAINERS_PER_SHIFT if day == 'Sunday' else self.MAX_TRAINERS_PER_SHIFT
        if instructor.key not in trainers and len(trainers) >= limit:
            return ConstraintViolation(
                'shift_trainers', f"{location} already has {len(trainers)} instructors on {day} {shift}"
            )
        return None

    def _can_staff(self, state, instructor, class_format, location, day, time):
        duration = class_duration(class_format)
        return (state['tracker'].can_assign(instructor, day, time, duration, class_format, location)
                and self._strategy_rule_violation(state, instructor, day, time, location) is None)

    def _expected_attendance(self, class_format, location, day, time):
        stat = self.index.cell_stat(class_format, location, day, time)
        if stat:
            return stat.avg_participants, stat.avg_revenue
        summary = self.format_summary.get(class_format)
        if summary:
            return summary['avg_participants'], summary['avg_revenue']
        return None, None

    def _place(self, state, class_format, location, day, time, instructor, participants=None, revenue=None,
               is_locked=False, is_top_performer=None):
        duration = class_duration(class_format)
        if is_top_performer is None:
            is_top_performer = participants is not None and participants > self.TOP_PERFORMER_THRESHOLD

        cls = ScheduledClass(
            day=day,
            time=time,
            location=location,
            class_format=class_format,
            instructor_first_name=instructor.first_name,
            instructor_last_name=instructor.last_name,
            duration=duration,
            participants=round(participants, 1) if participants is not None else None,
            revenue=round(revenue, 1) if revenue is not None else None,
            is_top_performer=is_top_performer,
            is_locked=is_locked,
        )
        state['schedule'].append(cls)
        state['cells'][cls.cell].append(cls)
        state['day_counts'][day] += 1
        state['tracker'].commit(instructor, day, time, location, duration)
        return cls

    def _staff_class(self, state, class_format, location, day, time, candidates):
        """First candidate instructor the tracker accepts for this class"""
        tracker = state['tracker']
        seen = set()
        for candidate in candidates:
            instructor = tracker.resolve(candidate)
            if instructor.key in seen or self._is_excluded(instructor):
                continue
            seen.add(instructor.key)
            if self._can_staff(state, instructor, class_format, location, day, time):
                return instructor
        return None

    def _fallback_candidates(self, time):
        """Whole roster; senior tier first at peak hours"""
        if is_peak_hour(time):
            return [i for i in self.roster if i.is_senior] + [i for i in self.roster if not i.is_senior]
        return list(self.roster)

    # =============================================================
    # ====================== Strategy scoring =====================
    # =============================================================

    def _strategy_score(self, stat, strategy):
        if strategy == 'revenue':
            return stat.avg_revenue
        if strategy == 'balanced':
            return (self.BALANCED_REVENUE_WEIGHT * stat.avg_revenue / self.REVENUE_SCALE
                    + self.BALANCED_ATTENDANCE_WEIGHT * stat.avg_participants / self.ATTENDANCE_SCALE)
        return stat.avg_participants

    def _rank_formats(self, location, day, time, strategy):
        """Eligible formats for a cell: guideline priorities first, then strategy metric, then frequency"""
        guidelines = day_guidelines(day)
        candidates = [
            stat for stat in self.index.formats_for_cell(location, day, time)
            if not is_hosted_class(stat.class_format)
            and format_allowed_at_location(stat.class_format, location)
            and stat.class_format not in guidelines.avoid
            and stat.avg_participants >= self.MIN_SLOT_AVERAGE
        ]
        candidates.sort(key=lambda stat: (
            stat.class_format not in guidelines.priority,
            -self._strategy_score(stat, strategy),
            -stat.count,
        ))
        return candidates

    # =============================================================
    # ======================= Phase 0 - 3 =========================
    # =============================================================

    def _phase0_seed_locked(self, state, days):
        """Phase 0: Seed the curated locked classes"""
        tracker = state['tracker']
        seeded = 0
        for locked in LOCKED_CLASSES:
            if locked.day not in days:
                continue
            instructor = tracker.resolve(locked.instructor)
            duration = class_duration(locked.class_format)
            if (not self._cell_open(state, locked.class_format, locked.location, locked.day, locked.time)
                    or not tracker.can_assign(instructor, locked.day, locked.time, duration,
                                              locked.class_format, locked.location)):
                state['warnings'].append(
                    f"Locked class {locked.class_format} on {locked.day} {locked.time} at {locked.location} could not be seeded"
                )
                continue
            self._place(
                state, locked.class_format, locked.location, locked.day, locked.time, instructor,
                participants=locked.avg_participants, revenue=0.0, is_locked=True
            )
            seeded += 1
        logger.info("Phase 0: seeded %d locked classes", seeded)

    def _phase1_fill_slots(self, state, days, strategy):
        """Phase 1: Fill every bookable slot with the best staffed format"""
        filled = 0
        for day in days:
            # Slot by slot across studios so the day cap is shared between them
            for time in available_slots(day):
                for location in LOCATIONS:
                    if not self._day_has_room(state, day):
                        break

                    open_slots = parallel_target(location, time) - len(state['cells'][(day, time, location)])
                    if open_slots <= 0:
                        continue

                    for stat in self._rank_formats(location, day, time, strategy):
                        if open_slots <= 0 or not self._day_has_room(state, day):
                            break
                        if not self._cell_open(state, stat.class_format, location, day, time):
                            continue

                        candidates = (self.index.instructors_for_cell(stat.class_format, location, day, time)
                                      + self._fallback_candidates(time))
                        instructor = self._staff_class(state, stat.class_format, location, day, time, candidates)
                        if instructor is None:
                            logger.debug("No instructor for %s at %s %s %s", stat.class_format, location, day, time)
                            continue

                        self._place(state, stat.class_format, location, day, time, instructor,
                                    participants=stat.avg_participants, revenue=stat.avg_revenue)
                        open_slots -= 1
                        filled += 1
        logger.info("Phase 1: filled %d classes", filled)

    def _phase2_maximize_utilization(self, state, days):
        """Phase 2: Move instructors below their weekly target towards it"""
        tracker = state['tracker']
        added = 0
        for instructor in self.roster:
            if tracker.remaining_hours(instructor) <= 0:
                continue

            for class_format in self.index.specialties(instructor.key, self.UTILIZATION_SPECIALTIES):
                if tracker.remaining_hours(instructor) <= 0:
                    break
                if is_hosted_class(class_format):
                    continue

                for location in LOCATIONS:
                    if not format_allowed_at_location(class_format, location):
                        continue
                    for day in days:
                        if tracker.daily_hours(instructor, day) >= self.DAILY_HOUR_LIMIT:
                            continue
                        if not self._day_has_room(state, day):
                            continue
                        for time in available_slots(day):
                            if not self._cell_open(state, class_format, location, day, time):
                                continue
                            if not self._can_staff(state, instructor, class_format, location, day, time):
                                continue
                            participants, revenue = self._expected_attendance(class_format, location, day, time)
                            self._place(state, class_format, location, day, time, instructor,
                                        participants=participants, revenue=revenue)
                            added += 1
                            break
        logger.info("Phase 2: added %d classes for under-used instructors", added)

    def _phase3_enforce_diversity(self, state, days):
        """Phase 3: Give each diversity format its weekly floor"""
        added = 0
        for class_format in rules.DIVERSITY_FORMATS:
            count = sum(1 for cls in state['schedule'] if cls.class_format == class_format)
            if count >= self.DIVERSITY_MIN_OCCURRENCES:
                continue

            for location in LOCATIONS:
                if count >= self.DIVERSITY_MIN_OCCURRENCES:
                    break
                if not format_allowed_at_location(class_format, location):
                    continue
                for day in days:
                    if count >= self.DIVERSITY_MIN_OCCURRENCES:
                        break
                    if not self._day_has_room(state, day):
                        continue
                    for time in available_slots(day):
                        if not self._cell_open(state, class_format, location, day, time):
                            continue
                        candidates = (self.index.instructors_for_cell(class_format, location, day, time)
                                      + self.index.instructors_for_format(class_format))
                        instructor = self._staff_class(state, class_format, location, day, time, candidates)
                        if instructor is None:
                            continue
                        participants, revenue = self._expected_attendance(class_format, location, day, time)
                        if participants is None:
                            participants, revenue = self._DEFAULT_DIVERSITY_AVERAGE, 0.0
                        self._place(state, class_format, location, day, time, instructor,
                                    participants=participants, revenue=revenue)
                        count += 1
                        added += 1
                        break

            if count < self.DIVERSITY_MIN_OCCURRENCES:
                logger.info("Phase 3: %s reached only %d of %d weekly classes",
                            class_format, count, self.DIVERSITY_MIN_OCCURRENCES)
        logger.info("Phase 3: added %d diversity classes", added)

    # =============================================================
    # ================= Phase 4 - shift consolidation =============
    # =============================================================

    def _phase4_consolidate_shifts(self, state, days):
        """Phase 4: Fewer instructors per shift, planned on a scratch tracker first"""
        plan = self._plan_consolidation(state, days)
        applied = sum(1 for move in plan if self._apply_reassignment(state, move))
        logger.info("Phase 4: applied %d of %d planned reassignments", applied, len(plan))

    def _plan_consolidation(self, state, days):
        scratch = state['tracker'].copy()
        planned = {}
        plan = []

        for location in LOCATIONS:
            for day in days:
                for shift in ('morning', 'evening'):
                    classes = [
                        cls for cls in state['schedule']
                        if cls.location == location and cls.day == day and shift_for_time(cls.time) == shift
                    ]
                    owner = {cls.id: planned.get(cls.id, cls.instructor_key) for cls in classes}
                    counts = Counter(owner[cls.id] for cls in classes)
                    if len(counts) <= self.MAX_SHIFT_INSTRUCTORS:
                        continue

                    # Stable ascending order; the busiest instructors become targets
                    ranked = sorted(counts, key=lambda key: counts[key])
                    donors = ranked[:-self.MAX_SHIFT_INSTRUCTORS]
                    targets = list(reversed(ranked[-self.MAX_SHIFT_INSTRUCTORS:]))

                    for donor_key in donors:
                        for cls in classes:
                            if cls.is_locked or owner[cls.id] != donor_key:
                                continue
                            donor = scratch.instructors[donor_key]
                            duration = float(cls.duration)
                            for target_key in targets:
                                target = scratch.instructors[target_key]
                                scratch.release(donor, day, cls.time, location, duration)
                                if scratch.can_assign(target, day, cls.time, duration, cls.class_format, location):
                                    scratch.commit(target, day, cls.time, location, duration)
                                    planned[cls.id] = target_key
                                    owner[cls.id] = target_key
                                    plan.append(Reassignment(cls.id, donor.name, target.name))
                                    break
                                scratch.commit(donor, day, cls.time, location, duration)
        return plan

    def _apply_reassignment(self, state, move):
        """Re-validate one planned move on the live tracker; skip it if it no longer fits"""
        tracker = state['tracker']
        cls = next((c for c in state['schedule'] if c.id == move.class_id), None)
        if cls is None or cls.is_locked or cls.instructor_key != instructor_key(move.from_instructor):
            return False

        duration = float(cls.duration)
        target = tracker.resolve(move.to_instructor)
        tracker.release(move.from_instructor, cls.day, cls.time, cls.location, duration)
        if (tracker.can_assign(target, cls.day, cls.time, duration, cls.class_format, cls.location)
                and self._strategy_rule_violation(state, target, cls.day, cls.time, cls.location, cls.id) is None):
            tracker.commit(target, cls.day, cls.time, cls.location, duration)
            cls.assign_instructor(target.name)
            return True

        tracker.commit(move.from_instructor, cls.day, cls.time, cls.location, duration)
        logger.debug("Skipped reassignment of %s from %s to %s", cls.class_format, move.from_instructor, move.to_instructor)
        return False

    # =============================================================
    # ================ Phase 5 - morning/evening balance ==========
    # =============================================================

    def _phase5_balance_shifts(self, state, days):
        """Phase 5: Move classes from the crowded shift; only the time changes"""
        plan = self._plan_balance(state, days)
        applied = sum(1 for move in plan if self._apply_time_move(state, move))
        logger.info("Phase 5: applied %d of %d planned time moves", applied, len(plan))

    def _can_move(self, cells, busy, cls, new_time):
        in_cell = cells.get((cls.day, new_time, cls.location), [])
        if len(in_cell) >= location_parallel_capacity(cls.location):
            return False
        if any(other.class_format == cls.class_format for other in in_cell if other.id != cls.id):
            return False

        start = time_to_minutes(new_time)
        end = start + int(round(float(cls.duration) * 60))
        for class_id, busy_start, busy_end in busy.get((cls.instructor_key, cls.day), []):
            if class_id != cls.id and start < busy_end and busy_start < end:
                return False
        return True

    def _busy_intervals(self, schedule):
        busy = defaultdict(list)
        for cls in schedule:
            start = time_to_minutes(cls.time)
            busy[(cls.instructor_key, cls.day)].append((cls.id, start, start + int(round(float(cls.duration) * 60))))
        return busy

    def _plan_balance(self, state, days):
        cells = {cell: list(classes) for cell, classes in state['cells'].items()}
        busy = self._busy_intervals(state['schedule'])
        plan = []

        for location in LOCATIONS:
            for day in days:
                classes = [cls for cls in state['schedule'] if cls.location == location and cls.day == day]
                shifts = {'morning': [], 'evening': []}
                for cls in classes:
                    shift = shift_for_time(cls.time)
                    if shift:
                        shifts[shift].append(cls)

                imbalance = abs(len(shifts['morning']) - len(shifts['evening']))
                if imbalance <= self.SHIFT_IMBALANCE_LIMIT:
                    continue

                excess = 'morning' if len(shifts['morning']) > len(shifts['evening']) else 'evening'
                deficit = 'evening' if excess == 'morning' else 'morning'
                movable = [cls for cls in shifts[excess] if not cls.is_locked][:math.ceil(imbalance / 2)]

                for cls in movable:
                    for new_time in shift_slots(deficit):
                        if not self._can_move(cells, busy, cls, new_time):
                            continue
                        plan.append(TimeMove(cls.id, cls.time, new_time))
                        cells[(day, cls.time, location)].remove(cls)
                        cells.setdefault((day, new_time, location), []).append(cls)
                        intervals = busy[(cls.instructor_key, day)]
                        intervals[:] = [iv for iv in intervals if iv[0] != cls.id]
                        start = time_to_minutes(new_time)
                        intervals.append((cls.id, start, start + int(round(float(cls.duration) * 60))))
                        break
        return plan

    def _apply_time_move(self, state, move):
        cls = next((c for c in state['schedule'] if c.id == move.class_id), None)
        if cls is None or cls.is_locked or cls.time != move.old_time:
            return False
        instructor = state['tracker'].resolve(cls.instructor_name)
        if (not self._can_move(state['cells'], self._busy_intervals(state['schedule']), cls, move.new_time)
                or self._strategy_rule_violation(state, instructor, cls.day, move.new_time, cls.location, cls.id)):
            logger.debug("Skipped moving %s from %s to %s", cls.class_format, move.old_time, move.new_time)
            return False

        state['cells'][cls.cell].remove(cls)
        cls.time = move.new_time
        state['cells'][cls.cell].append(cls)
        return True

    # =============================================================
    # ===================== Result and statistics =================
    # =============================================================

    def calculate_metrics(self, schedule):
        """Headline numbers used to compare strategies"""
        total_revenue = sum(cls.revenue or 0 for cls in schedule)
        total_attendance = sum(cls.participants or 0 for cls in schedule)
        total_hours = sum(float(cls.duration) for cls in schedule)
        unique_instructors = len({cls.instructor_key for cls in schedule})

        return {
            'total_revenue': round(total_revenue, 1),
            'total_attendance': round(total_attendance, 1),
            'instructor_utilization': total_hours / (unique_instructors * self.WEEKLY_HOUR_LIMIT) if unique_instructors else 0.0,
            'fill_rate': total_attendance / (len(schedule) * self._ASSUMED_CLASS_CAPACITY) if schedule else 0.0,
            'efficiency': (total_revenue / total_hours) / 1000 if total_hours else 0.0,
        }

    def instructor_assignments(self, schedule):
        """Hours, shifts and locations per instructor"""
        assignments = {}
        for cls in schedule:
            entry = assignments.setdefault(cls.instructor_name, {'hours': 0.0, 'shifts': [], 'locations': []})
            entry['hours'] += float(cls.duration)
            shift = f"{cls.day} {shift_for_time(cls.time) or 'afternoon'}"
            if shift not in entry['shifts']:
                entry['shifts'].append(shift)
            if cls.location not in entry['locations']:
                entry['locations'].append(cls.location)
        return assignments

    def _empty_cells(self, schedule, days):
        occupied = {cls.cell for cls in schedule}
        return [
            (location, day, time)
            for location in LOCATIONS
            for day in days
            for time in available_slots(day)
            if (day, time, location) not in occupied
        ]

    def _build_and_validate_result(self, state, days, strategy, report_empty=True):
        """Sort, audit and summarize the finished schedule"""
        schedule = sorted(
            state['schedule'],
            key=lambda cls: (DAY_ORDER.get(cls.day, len(DAYS)), cls.time, cls.location)
        )

        warnings = list(state['warnings'])
        empty_cells = self._empty_cells(schedule, days)
        if report_empty and empty_cells:
            logger.warning("Empty slots remaining: %d", len(empty_cells))
            warnings.extend(f"Empty slot: {location} - {day} {time}" for location, day, time in empty_cells)

        breaches = audit_schedule(
            schedule, self.roster,
            weekly_limit=self.WEEKLY_HOUR_LIMIT, new_weekly_limit=self.NEW_INSTRUCTOR_WEEKLY_LIMIT,
            daily_limit=self.DAILY_HOUR_LIMIT, min_days_off=self.MIN_DAYS_OFF
        )
        for breach in breaches:
            logger.warning("Constraint breach: %s", breach)
        warnings.extend(breaches)

        hours = compute_instructor_hours(schedule)
        hour_values = np.array(list(hours.values()), dtype=float)
        morning = sum(1 for cls in schedule if shift_for_time(cls.time) == 'morning')
        evening = sum(1 for cls in schedule if shift_for_time(cls.time) == 'evening')

        statistics = {
            'total_classes': len(schedule),
            'locked_classes': sum(1 for cls in schedule if cls.is_locked),
            'top_performers': sum(1 for cls in schedule if cls.is_top_performer),
            'instructor_count': len(hours),
            'instructor_hours': hours,
            'average_instructor_hours': float(hour_values.mean()) if hour_values.size else 0.0,
            'instructor_hours_std': float(hour_values.std()) if hour_values.size else 0.0,
            'classes_per_day': {day: sum(1 for cls in schedule if cls.day == day) for day in days},
            'classes_per_location': {loc: sum(1 for cls in schedule if cls.location == loc) for loc in LOCATIONS},
            'morning_classes': morning,
            'evening_classes': evening,
            'empty_cells': len(empty_cells),
            'constraint_breaches': len(breaches),
            'metrics': self.calculate_metrics(schedule),
        }
        return ScheduleResult(schedule=schedule, warnings=warnings, statistics=statistics, strategy=strategy)

    def log_summary(self, result):
        """Human-readable run report"""
        stats = result.statistics
        logger.info("=" * 80)
        logger.info("SCHEDULING SUMMARY (%s)", result.strategy)
        logger.info("=" * 80)
        logger.info("Total classes: %d (%d locked, %d top performers)",
                    stats['total_classes'], stats['locked_classes'], stats['top_performers'])
        logger.info("Morning / evening: %d / %d", stats['morning_classes'], stats['evening_classes'])
        logger.info("Empty slots: %d, constraint breaches: %d", stats['empty_cells'], stats['constraint_breaches'])

        logger.info("Day distribution:")
        for day, count in stats['classes_per_day'].items():
            logger.info("  %s: %d classes", day, count)

        logger.info("Instructor hours (mean %.1fh, std %.1fh):",
                    stats['average_instructor_hours'], stats['instructor_hours_std'])
        for name, hours in sorted(stats['instructor_hours'].items(), key=lambda item: -item[1]):
            logger.info("  %s: %gh", name, hours)
        logger.info("=" * 80)


def generate_schedule(records, instructors=None, options=None):
    """Build a weekly schedule; options may carry target_day, optimization_type and config"""
    options = options or {}
    scheduler = EnhancedStudioScheduler(records, instructors, options.get('config'))
    result = scheduler.generate(
        target_day=options.get('target_day'),
        optimization_type=options.get('optimization_type', 'attendance')
    )
    scheduler.log_summary(result)
    return result


def generate_strategy_comparison(records, instructors=None, config=None, target_day=None):
    scheduler = EnhancedStudioScheduler(records, instructors, config)
    return scheduler.generate_strategy_comparison(target_day)


def populate_top_classes(records, instructors=None, limit=50, min_average=5.0, config=None):
    scheduler = EnhancedStudioScheduler(records, instructors, config)
    return scheduler.populate_top_classes(limit, min_average)
