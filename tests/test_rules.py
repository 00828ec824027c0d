import pytest

from studio_scheduler.entities import normalize_time
from studio_scheduler.rules import (
    KENKERE_HOUSE, KWALITY_HOUSE, POWERCYCLE_HUB, TIER_NEW, TIER_SENIOR, TIER_STANDARD, available_slots,
    check_assignment, class_duration, classify_tier, day_guidelines, format_allowed_at_location,
    instructor_tier_eligible, is_excluded_instructor, is_peak_hour, is_restricted_time, location_parallel_capacity,
    make_instructor, parallel_target, PARALLEL_TARGETS, restricted_slots, shift_for_time, weekly_hour_limit
)


def test_class_duration_from_format_name():
    assert class_duration("Studio Barre 57 Express") == 0.75
    assert class_duration("Studio Barre 57 (Express)") == 0.75
    assert class_duration("Studio Recovery") == 0.5
    assert class_duration("Studio Sweat In 30") == 0.5
    assert class_duration("Studio FIT") == 1


def test_location_format_rules():
    assert not format_allowed_at_location("Studio HIIT", POWERCYCLE_HUB)
    assert not format_allowed_at_location("Studio Amped Up!", POWERCYCLE_HUB)
    assert format_allowed_at_location("Studio powerCycle", POWERCYCLE_HUB)
    assert not format_allowed_at_location("Studio powerCycle", KENKERE_HOUSE)
    assert not format_allowed_at_location("Studio Power Cycle", KWALITY_HOUSE)
    assert format_allowed_at_location("Studio HIIT", KWALITY_HOUSE)


def test_restricted_band_applies_only_to_regular_classes():
    assert is_restricted_time('12:00')
    assert is_restricted_time('13:00')
    assert is_restricted_time('16:30')
    assert not is_restricted_time('17:00')
    assert not is_restricted_time('11:30')
    assert not is_restricted_time('13:00', is_private=True)


def test_available_slots_skip_restricted_band():
    slots = available_slots('Monday')
    assert slots == available_slots('Sunday')
    assert slots[0] == '07:30' and slots[-1] == '19:30'
    assert not any(is_restricted_time(t) for t in slots)
    assert len(slots) == 15
    assert all(is_restricted_time(t) for t in restricted_slots())
    assert not set(slots) & set(restricted_slots())


def test_parallel_capacity_and_targets():
    assert location_parallel_capacity(POWERCYCLE_HUB) == 3
    assert location_parallel_capacity(KWALITY_HOUSE) == 2
    assert location_parallel_capacity(KENKERE_HOUSE) == 2
    assert parallel_target(KWALITY_HOUSE, '09:00') == 2
    assert parallel_target(KENKERE_HOUSE, '09:00') == 1
    for location, targets in PARALLEL_TARGETS.items():
        assert set(targets) <= set(available_slots()), location


def test_tier_classification_by_name_fragment():
    assert classify_tier('Anisha Shah') == TIER_SENIOR
    assert classify_tier('Kabir Varma') == TIER_NEW
    assert classify_tier('Reshma Sharma') == TIER_STANDARD
    assert is_excluded_instructor('Nishanth Raj')
    assert not is_excluded_instructor('Reshma Sharma')


def test_new_tier_limited_to_allow_list():
    kabir = make_instructor('Kabir Varma')
    assert instructor_tier_eligible(kabir, 'Studio Barre 57')
    assert instructor_tier_eligible(kabir, 'studio powercycle')
    assert not instructor_tier_eligible(kabir, 'Studio Mat 57')
    assert not instructor_tier_eligible(kabir, 'Studio HIIT')


def test_advanced_formats_need_senior():
    assert instructor_tier_eligible(make_instructor('Anisha Shah'), 'Studio HIIT')
    assert not instructor_tier_eligible(make_instructor('Reshma Sharma'), 'Studio Amped Up!')
    assert instructor_tier_eligible('Reshma Sharma', 'Studio FIT')


def test_weekly_limit_depends_on_tier_and_personal_cap():
    assert weekly_hour_limit(make_instructor('Reshma Sharma')) == 15
    assert weekly_hour_limit(make_instructor('Kabir Varma')) == 10
    assert weekly_hour_limit(make_instructor('Reshma Sharma', max_hours=8)) == 8


def test_shift_boundaries():
    assert shift_for_time('07:30') == 'morning'
    assert shift_for_time('13:30') == 'morning'
    assert shift_for_time('14:00') is None
    assert shift_for_time('17:00') == 'evening'


def test_peak_hours_leave_out_the_first_evening_slot():
    assert is_peak_hour('07:30')
    assert is_peak_hour('11:30')
    assert is_peak_hour('17:30')
    assert not is_peak_hour('17:00')
    assert not is_peak_hour('13:00')
    assert [t for t in available_slots() if not is_peak_hour(t)] == ['17:00']


def test_day_guidelines():
    assert day_guidelines('Sunday').max_classes == 5
    assert 'Studio HIIT' in day_guidelines('Tuesday').avoid
    assert day_guidelines('Someday').max_classes == 12


@pytest.mark.parametrize('class_format, location, time, is_private, instructor, code', [
    ('Studio HIIT', POWERCYCLE_HUB, '09:00', False, None, 'location_format'),
    ('Studio Barre 57', KWALITY_HOUSE, '13:00', False, None, 'restricted_time'),
    ('Studio HIIT', KWALITY_HOUSE, '09:00', False, 'Kabir Varma', 'tier'),
])
def test_check_assignment_reports_first_rule_broken(class_format, location, time, is_private, instructor, code):
    instructor = make_instructor(instructor) if instructor else None
    violation = check_assignment(class_format, location, time, is_private, instructor)
    assert violation is not None
    assert violation.code == code


def test_check_assignment_accepts_private_midday_class():
    assert check_assignment('Studio Barre 57', KWALITY_HOUSE, '13:00', is_private=True) is None


def test_normalize_time():
    assert normalize_time('7:30') == '07:30'
    assert normalize_time('07:30:00') == '07:30'
    assert normalize_time('6:15 PM') == '18:15'
    with pytest.raises(ValueError):
        normalize_time('late')
