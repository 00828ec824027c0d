from collections import Counter, defaultdict

import pytest

from builders import dense_history, random_history, record
from studio_scheduler.enhanced_scheduler import (
    EnhancedStudioScheduler, Reassignment, TimeMove, generate_schedule, generate_strategy_comparison,
    populate_top_classes
)
from studio_scheduler.entities import TIER_NEW, time_to_minutes
from studio_scheduler.rules import (
    DAYS, KENKERE_HOUSE, KWALITY_HOUSE, LOCKED_CLASSES, classify_tier, day_guidelines, format_allowed_at_location,
    instructor_tier_eligible, is_excluded_instructor, is_hosted_class, is_restricted_time,
    location_parallel_capacity, make_instructor, shift_for_time
)


def assert_schedule_invariants(result, weekly_limit=15, new_weekly_limit=10, daily_limit=4):
    weekly = defaultdict(float)
    daily = defaultdict(float)
    working_days = defaultdict(set)
    day_locations = defaultdict(set)
    cells = defaultdict(list)
    day_counts = Counter()

    for cls in result.schedule:
        name = cls.instructor_name
        weekly[name] += cls.duration
        daily[(name, cls.day)] += cls.duration
        working_days[name].add(cls.day)
        day_locations[(name, cls.day)].add(cls.location)
        cells[cls.cell].append(cls.class_format)
        day_counts[cls.day] += 1

        assert format_allowed_at_location(cls.class_format, cls.location)
        assert not is_restricted_time(cls.time, cls.is_private)
        assert not is_hosted_class(cls.class_format)
        assert not is_excluded_instructor(name)
        assert instructor_tier_eligible(name, cls.class_format)

    for name, hours in weekly.items():
        cap = new_weekly_limit if classify_tier(name) == TIER_NEW else weekly_limit
        assert hours <= cap + 1e-9, name
    assert all(hours <= daily_limit + 1e-9 for hours in daily.values())
    assert all(len(days) <= 5 for days in working_days.values())
    assert all(len(locations) == 1 for locations in day_locations.values())

    for (day, time, location), formats in cells.items():
        assert len(formats) <= location_parallel_capacity(location)
        assert len(set(formats)) == len(formats)

    for day, count in day_counts.items():
        assert count <= day_guidelines(day).max_classes

    assert result.statistics['constraint_breaches'] == 0
    assert result.statistics['total_classes'] == len(result.schedule)


def signature(result):
    return [(c.day, c.time, c.location, c.class_format, c.instructor_name) for c in result.schedule]


@pytest.mark.parametrize('seed', [1, 2, 3, 4, 5, 6])
def test_random_history_respects_every_rule(seed):
    result = EnhancedStudioScheduler(random_history(seed)).generate()
    assert_schedule_invariants(result)


@pytest.mark.parametrize('strategy', ['attendance', 'revenue', 'balanced'])
def test_dense_history_respects_every_rule(strategy):
    result = EnhancedStudioScheduler(dense_history()).generate(optimization_type=strategy)
    assert_schedule_invariants(result)
    assert result.strategy == strategy
    assert result.statistics['total_classes'] > len(LOCKED_CLASSES)


def test_locked_classes_always_seeded():
    result = EnhancedStudioScheduler(random_history(11)).generate()
    locked = [cls for cls in result.schedule if cls.is_locked]

    assert len(locked) == len(LOCKED_CLASSES)
    assert result.statistics['locked_classes'] == len(LOCKED_CLASSES)
    saturday = next(cls for cls in locked if cls.day == 'Saturday')
    assert (saturday.class_format, saturday.time, saturday.location) == ('Studio Mat 57', '10:15', KWALITY_HOUSE)
    assert saturday.instructor_name == 'Karanvir Bhatia'
    assert saturday.participants == 25


def test_empty_history_still_places_locked_classes():
    result = EnhancedStudioScheduler([]).generate()
    assert result.statistics['total_classes'] == len(LOCKED_CLASSES)
    assert any(warning.startswith('Empty slot') for warning in result.warnings)
    assert result.statistics['empty_cells'] > 0


def test_schedule_is_deterministic_and_calendar_ordered():
    records = random_history(3)
    first = EnhancedStudioScheduler(records).generate()
    second = EnhancedStudioScheduler(records).generate()

    assert signature(first) == signature(second)
    order = [(DAYS.index(c.day), c.time) for c in first.schedule]
    assert order == sorted(order)


def test_single_day_run():
    result = EnhancedStudioScheduler(dense_history(repeats=2)).generate(target_day='Sunday')
    assert {cls.day for cls in result.schedule} == {'Sunday'}
    assert list(result.statistics['classes_per_day']) == ['Sunday']
    assert_schedule_invariants(result)


def test_sunday_cap_counts_every_studio():
    result = EnhancedStudioScheduler(dense_history()).generate(target_day='Sunday')

    assert len(result.schedule) == day_guidelines('Sunday').max_classes
    assert len({cls.location for cls in result.schedule}) > 1

    week = EnhancedStudioScheduler(dense_history()).generate()
    assert week.statistics['classes_per_day']['Sunday'] <= 5
    assert all(count <= 12 for count in week.statistics['classes_per_day'].values())


def test_unknown_strategy_falls_back_to_attendance():
    result = EnhancedStudioScheduler(random_history(2)).generate(optimization_type='vibes')
    assert result.strategy == 'attendance'


def test_config_overrides_limits():
    scheduler = EnhancedStudioScheduler(dense_history(repeats=2), config={'weekly_hour_limit': 6, 'daily_hour_limit': 2})
    assert scheduler.WEEKLY_HOUR_LIMIT == 6
    assert EnhancedStudioScheduler.WEEKLY_HOUR_LIMIT == 15

    result = scheduler.generate()
    assert_schedule_invariants(result, weekly_limit=6, new_weekly_limit=6, daily_limit=2)


def test_roster_availability_and_personal_caps():
    roster = [
        make_instructor('Reshma Sharma', unavailable_days=('Monday', 'Tuesday')),
        make_instructor('Karan Mehta', max_hours=3),
    ]
    result = EnhancedStudioScheduler(dense_history(repeats=2), roster).generate()

    assert not [cls for cls in result.schedule if cls.instructor_name == 'Reshma Sharma' and cls.day in ('Monday', 'Tuesday')]
    assert result.statistics['instructor_hours'].get('Karan Mehta', 0) <= 3


def test_hosted_and_excluded_history_never_scheduled():
    records = [record('Studio Hosted Class', day='Thursday', participants=40) for _ in range(5)]
    records += [record('Studio FIT', day='Thursday', instructor='Nishanth Raj', participants=40) for _ in range(5)]
    result = EnhancedStudioScheduler(records).generate()

    assert not [cls for cls in result.schedule if cls.class_format == 'Studio Hosted Class']
    assert not [cls for cls in result.schedule if 'Nishanth' in cls.instructor_name]


def test_low_average_formats_left_out_of_slot_filling():
    records = [record('Studio FIT', day='Thursday', time='18:00', participants=2) for _ in range(5)]
    result = EnhancedStudioScheduler(records).generate(target_day='Thursday')
    assert not [cls for cls in result.schedule if cls.time == '18:00' and cls.day == 'Thursday']


def test_statistics_and_metrics():
    result = generate_schedule(random_history(4), options={'optimization_type': 'balanced'})
    stats = result.statistics

    assert result.strategy == 'balanced'
    assert sum(stats['classes_per_day'].values()) == stats['total_classes']
    assert sum(stats['classes_per_location'].values()) == stats['total_classes']
    assert stats['instructor_count'] == len(stats['instructor_hours'])
    assert set(stats['metrics']) == {'total_revenue', 'total_attendance', 'instructor_utilization', 'fill_rate', 'efficiency'}
    assert result.to_dict()['statistics'] is stats


def test_generate_schedule_logs_summary(caplog):
    with caplog.at_level('INFO', logger='studio_scheduler.enhanced_scheduler'):
        result = generate_schedule(random_history(2))

    assert 'SCHEDULING SUMMARY (attendance)' in caplog.text
    assert f"Total classes: {len(result.schedule)}" in caplog.text


def test_metrics_of_empty_schedule():
    metrics = EnhancedStudioScheduler([]).calculate_metrics([])
    assert metrics == {'total_revenue': 0, 'total_attendance': 0, 'instructor_utilization': 0.0,
                       'fill_rate': 0.0, 'efficiency': 0.0}


def test_strategy_comparison_runs_independently():
    comparison = generate_strategy_comparison(random_history(5))
    assert [entry['id'] for entry in comparison] == ['revenue-schedule', 'attendance-schedule', 'balanced-schedule']
    for entry in comparison:
        hours = {name: a['hours'] for name, a in entry['instructor_assignments'].items()}
        assert all(h <= 15 for h in hours.values())
        assert entry['metrics']['total_attendance'] >= 0


def test_populate_top_classes():
    records = [record('Studio FIT', KWALITY_HOUSE, day, '18:00', 'Reshma Sharma', 12) for day in DAYS for _ in range(2)]
    result = populate_top_classes(records, limit=20, min_average=5.0)

    # Ten locked seeds plus five of the seven FIT evenings; two days off stop the rest
    assert len(result.schedule) == len(LOCKED_CLASSES) + 5
    assert len({cls.day for cls in result.schedule if cls.instructor_name == 'Reshma Sharma'}) == 5
    assert all(cls.is_top_performer for cls in result.schedule)
    assert all(cls.participants >= 5.0 for cls in result.schedule)
    assert not [w for w in result.warnings if w.startswith('Empty slot')]
    assert_schedule_invariants(result)


def test_instructor_assignments():
    result = EnhancedStudioScheduler([]).generate()
    assignments = EnhancedStudioScheduler([]).instructor_assignments(result.schedule)

    anisha = assignments['Anisha Shah']
    assert anisha['hours'] == 4
    assert anisha['locations'] == [KWALITY_HOUSE]
    assert 'Monday morning' in anisha['shifts']


def staffed_state(scheduler, classes, strategy_rules=False):
    state = scheduler._initialize_state(strategy_rules)
    placed = [
        scheduler._place(state, class_format, location, day, time, make_instructor(name))
        for class_format, location, day, time, name in classes
    ]
    return state, placed


def test_consolidation_hands_the_smallest_share_to_a_busier_instructor():
    scheduler = EnhancedStudioScheduler([])
    state, placed = staffed_state(scheduler, [
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '07:30', 'Reshma Sharma'),
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '08:30', 'Reshma Sharma'),
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '09:30', 'Karan Mehta'),
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '10:30', 'Karan Mehta'),
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '11:30', 'Priya Nair'),
    ])

    assert scheduler._plan_consolidation(state, ['Monday']) == [
        Reassignment(placed[4].id, 'Priya Nair', 'Karan Mehta')
    ]

    scheduler._phase4_consolidate_shifts(state, ['Monday'])
    assert placed[4].instructor_name == 'Karan Mehta'
    assert {cls.instructor_name for cls in placed} == {'Reshma Sharma', 'Karan Mehta'}
    assert state['tracker'].weekly_hours('Priya Nair') == 0
    assert state['tracker'].daily_hours('Karan Mehta', 'Monday') == 3


def test_consolidation_skips_a_move_that_no_longer_fits(monkeypatch):
    scheduler = EnhancedStudioScheduler([])
    state, placed = staffed_state(scheduler, [
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '07:30', 'Karan Mehta'),
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '09:00', 'Priya Nair'),
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '10:30', 'Meera Iyer'),
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '11:30', 'Reshma Sharma'),
    ])
    plan = [
        Reassignment(placed[1].id, 'Priya Nair', 'Karan Mehta'),
        Reassignment(placed[2].id, 'Meera Iyer', 'Reshma Sharma'),
    ]
    monkeypatch.setattr(scheduler, '_plan_consolidation', lambda state, days: plan)

    # Karan reaches the daily limit after planning
    state['tracker'].commit('Karan Mehta', 'Monday', '17:00', KENKERE_HOUSE, 3.0)
    scheduler._phase4_consolidate_shifts(state, ['Monday'])

    assert placed[1].instructor_name == 'Priya Nair'
    assert state['tracker'].weekly_hours('Priya Nair') == 1
    assert placed[2].instructor_name == 'Reshma Sharma'
    assert state['tracker'].weekly_hours('Meera Iyer') == 0
    assert state['tracker'].daily_hours('Reshma Sharma', 'Monday') == 2


def test_locked_classes_are_never_reassigned_or_moved():
    scheduler = EnhancedStudioScheduler([])
    state = scheduler._initialize_state()
    scheduler._phase0_seed_locked(state, ['Monday'])
    locked = next(cls for cls in state['schedule'] if cls.time == '08:30')
    for time, name in (('07:30', 'Reshma Sharma'), ('10:00', 'Karan Mehta')):
        scheduler._place(state, 'Studio Barre 57', KWALITY_HOUSE, 'Monday', time, make_instructor(name))

    # Three instructors in the shift, but the only donor class is locked
    assert scheduler._plan_consolidation(state, ['Monday']) == []
    assert not scheduler._apply_reassignment(state, Reassignment(locked.id, 'Anisha Shah', 'Reshma Sharma'))
    assert not scheduler._apply_time_move(state, TimeMove(locked.id, '08:30', '18:00'))
    assert (locked.instructor_name, locked.time) == ('Anisha Shah', '08:30')


def test_balance_moves_half_the_imbalance_into_the_quiet_shift():
    scheduler = EnhancedStudioScheduler([])
    names = ['Reshma Sharma', 'Karan Mehta', 'Priya Nair', 'Meera Iyer', 'Tara Singh']
    times = ['07:30', '08:30', '09:30', '10:30', '11:30']
    state, placed = staffed_state(scheduler, [
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', time, name) for time, name in zip(times, names)
    ])

    # Imbalance 5: ceil(5 / 2) classes move, each to the first evening slot without a Barre 57
    assert scheduler._plan_balance(state, ['Monday']) == [
        TimeMove(placed[0].id, '07:30', '17:00'),
        TimeMove(placed[1].id, '08:30', '17:30'),
        TimeMove(placed[2].id, '09:30', '18:00'),
    ]

    scheduler._phase5_balance_shifts(state, ['Monday'])
    assert [cls.time for cls in placed] == ['17:00', '17:30', '18:00', '10:30', '11:30']
    assert state['cells'][('Monday', '17:30', KENKERE_HOUSE)] == [placed[1]]
    assert state['cells'][('Monday', '08:30', KENKERE_HOUSE)] == []
    assert state['tracker'].daily_hours('Reshma Sharma', 'Monday') == 1


def test_balance_leaves_small_differences_alone():
    scheduler = EnhancedStudioScheduler([])
    state, _ = staffed_state(scheduler, [
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '07:30', 'Reshma Sharma'),
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '08:30', 'Karan Mehta'),
    ])
    assert scheduler._plan_balance(state, ['Monday']) == []


def test_strategy_rule_violations():
    scheduler = EnhancedStudioScheduler([])
    state, placed = staffed_state(scheduler, [
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '07:30', 'Reshma Sharma'),
        ('Studio Mat 57', KENKERE_HOUSE, 'Monday', '08:30', 'Reshma Sharma'),
        ('Studio FIT', KENKERE_HOUSE, 'Sunday', '09:00', 'Priya Nair'),
    ], strategy_rules=True)
    reshma = make_instructor('Reshma Sharma')
    violation = scheduler._strategy_rule_violation

    assert violation(state, reshma, 'Monday', '09:00', KENKERE_HOUSE).code == 'consecutive'
    assert violation(state, reshma, 'Monday', '09:00', KENKERE_HOUSE, ignore_id=placed[0].id) is None
    assert violation(state, reshma, 'Monday', '10:30', KENKERE_HOUSE) is None
    assert violation(state, reshma, 'Monday', '18:30', KENKERE_HOUSE).code == 'one_shift'
    assert violation(state, make_instructor('Karan Mehta'), 'Sunday', '10:30', KENKERE_HOUSE).code == 'shift_trainers'
    assert violation(state, make_instructor('Priya Nair'), 'Sunday', '11:00', KENKERE_HOUSE) is None

    plain, _ = staffed_state(scheduler, [
        ('Studio Barre 57', KENKERE_HOUSE, 'Monday', '07:30', 'Reshma Sharma'),
        ('Studio Mat 57', KENKERE_HOUSE, 'Monday', '08:30', 'Reshma Sharma'),
    ])
    assert violation(plain, reshma, 'Monday', '09:00', KENKERE_HOUSE) is None


@pytest.mark.parametrize('strategy', ['revenue', 'balanced'])
def test_strategy_runs_apply_comparison_rules(strategy):
    result = EnhancedStudioScheduler(dense_history()).generate(optimization_type=strategy, strategy_rules=True)
    assert_schedule_invariants(result)

    starts = defaultdict(list)
    shifts = defaultdict(set)
    trainers = defaultdict(set)
    for cls in result.schedule:
        shift = shift_for_time(cls.time)
        starts[(cls.instructor_name, cls.day)].append(time_to_minutes(cls.time))
        shifts[(cls.instructor_name, cls.day)].add(shift)
        trainers[(cls.location, cls.day, shift)].add(cls.instructor_name)

    for minutes in starts.values():
        minutes.sort()
        assert all(later - earlier > 90 for earlier, later in zip(minutes, minutes[2:]))
    assert all(len(day_shifts) == 1 for day_shifts in shifts.values())
    for (location, day, shift), names in trainers.items():
        assert len(names) <= (1 if day == 'Sunday' else 3), (location, day, shift)


def test_fallback_candidates_put_seniors_first_at_peak_hours():
    scheduler = EnhancedStudioScheduler([])
    off_peak = [i.name for i in scheduler._fallback_candidates('17:00')]
    peak = [i.name for i in scheduler._fallback_candidates('17:30')]

    assert off_peak == ['Anisha Shah', 'Karanvir Bhatia', 'Pranjali Jain', 'Rohan Dahima']
    assert peak == ['Anisha Shah', 'Pranjali Jain', 'Rohan Dahima', 'Karanvir Bhatia']
