from builders import record, random_history
from studio_scheduler.entities import GroupKey
from studio_scheduler.performance import (
    PerformanceIndex, aggregate, best_instructor_for_cell, class_average_for_slot, eligible_records, format_stats,
    instructor_specialties, location_average, select_top_performing, unique_instructors
)
from studio_scheduler.rules import KENKERE_HOUSE, KWALITY_HOUSE, LOCKED_CLASSES, POWERCYCLE_HUB


def test_aggregate_averages_each_cell():
    records = [record(participants=8), record(participants=12), record(class_format='Studio Mat 57', participants=5)]
    stats = aggregate(records)

    barre = stats[GroupKey('Studio Barre 57', KWALITY_HOUSE, 'Monday', '09:00')]
    assert barre.count == 2
    assert barre.avg_participants == 10
    assert barre.avg_revenue == 5000
    assert stats[GroupKey('Studio Mat 57', KWALITY_HOUSE, 'Monday', '09:00')].count == 1


def test_aggregate_is_repeatable_and_leaves_input_untouched():
    records = random_history(seed=7)
    snapshot = list(records)
    assert aggregate(records) == aggregate(records)
    assert records == snapshot


def test_aggregate_by_instructor_splits_cells():
    records = [record(instructor='Anisha Shah', participants=12), record(instructor='Reshma Sharma', participants=6)]
    stats = aggregate(records, group_by_instructor=True)
    assert len(stats) == 2
    assert stats[GroupKey('Studio Barre 57', KWALITY_HOUSE, 'Monday', '09:00', 'Anisha Shah')].avg_participants == 12


def test_aggregate_groups_times_by_minute():
    records = [record(time='10:15', participants=8), record(time='10:15:00', participants=12), record(time='7:30 AM')]
    stats = aggregate(records)

    assert stats[GroupKey('Studio Barre 57', KWALITY_HOUSE, 'Monday', '10:15')].count == 2
    assert GroupKey('Studio Barre 57', KWALITY_HOUSE, 'Monday', '07:30') in stats
    assert len(stats) == 2


def test_aggregate_of_nothing():
    assert aggregate([]) == {}
    assert format_stats([]) == {}


def test_eligible_records_drop_hosted_and_misplaced_formats():
    records = [
        record(class_format='Studio Hosted Class'),
        record(class_format='Studio HIIT', location=POWERCYCLE_HUB),
        record(class_format='Studio powerCycle', location=KENKERE_HOUSE),
        record(class_format='Studio powerCycle', location=POWERCYCLE_HUB),
    ]
    kept = eligible_records(records)
    assert [(r.class_format, r.location) for r in kept] == [('Studio powerCycle', POWERCYCLE_HUB)]


def test_locked_classes_lead_the_top_performers():
    records = [record(day='Thursday', time='18:00', participants=30) for _ in range(3)]
    top = select_top_performing(records, min_average=6)

    assert [stat.is_locked for stat in top[:len(LOCKED_CLASSES)]] == [True] * len(LOCKED_CLASSES)
    assert top[len(LOCKED_CLASSES)].day == 'Thursday'


def test_top_performers_skip_cells_already_locked():
    # Same cell as the locked Saturday Mat 57, taught by someone else
    records = [record('Studio Mat 57', KWALITY_HOUSE, 'Saturday', '10:15', 'Reshma Sharma', 40) for _ in range(3)]
    top = select_top_performing(records, min_average=6)
    saturday = [stat for stat in top if stat.cell_key == ('Studio Mat 57', KWALITY_HOUSE, 'Saturday', '10:15')]
    assert len(saturday) == 1
    assert saturday[0].instructor == 'Karanvir Bhatia'


def test_top_performers_need_two_classes_and_threshold():
    records = [
        record(day='Thursday', participants=20),
        record(day='Friday', participants=4), record(day='Friday', participants=4),
    ]
    assert select_top_performing(records, min_average=6, include_locked=False) == []


def test_near_ties_prefer_frequency():
    records = (
        [record(day='Thursday', instructor='Anisha Shah', participants=10) for _ in range(2)]
        + [record(day='Thursday', instructor='Reshma Sharma', participants=9.5) for _ in range(6)]
    )
    assert best_instructor_for_cell(records, 'Studio Barre 57', KWALITY_HOUSE, 'Thursday', '09:00') == 'Reshma Sharma'


def test_clear_winner_beats_frequency():
    records = (
        [record(day='Thursday', instructor='Anisha Shah', participants=15) for _ in range(2)]
        + [record(day='Thursday', instructor='Reshma Sharma', participants=9) for _ in range(6)]
    )
    assert best_instructor_for_cell(records, 'Studio Barre 57', KWALITY_HOUSE, 'Thursday', '09:00') == 'Anisha Shah'


def test_best_instructor_uses_locked_seed():
    records = [record('Studio Mat 57', KWALITY_HOUSE, 'Saturday', '10:15', 'Reshma Sharma', 40)]
    assert best_instructor_for_cell(records, 'Studio Mat 57', KWALITY_HOUSE, 'Saturday', '10:15') == 'Karanvir Bhatia'


def test_best_instructor_ignores_excluded_names():
    records = [record(day='Thursday', instructor='Nishanth Raj', participants=30), record(day='Thursday')]
    assert best_instructor_for_cell(records, 'Studio Barre 57', KWALITY_HOUSE, 'Thursday', '09:00') == 'Reshma Sharma'
    assert best_instructor_for_cell([], 'Studio Barre 57', KWALITY_HOUSE, 'Thursday', '09:00') is None


def test_slot_and_location_averages():
    records = [record(participants=8), record(participants=12), record(location=KENKERE_HOUSE, participants=3)]
    assert class_average_for_slot(records, 'Studio Barre 57', KWALITY_HOUSE, 'Monday', '09:00') == 10
    assert class_average_for_slot(records, 'Studio FIT', KWALITY_HOUSE, 'Monday', '09:00') == 0
    assert location_average(records, KENKERE_HOUSE) == 3
    assert location_average(records, POWERCYCLE_HUB) == 0


def test_format_stats_and_specialties():
    records = [
        record(class_format='Studio FIT', participants=10),
        record(class_format='Studio FIT', participants=14),
        record(class_format='Studio Mat 57', participants=20),
    ]
    stats = format_stats(records)
    assert stats['Studio FIT'] == {'avg_participants': 12.0, 'avg_revenue': 5000.0, 'frequency': 2}
    assert instructor_specialties(records)['Reshma Sharma'] == ['Studio FIT', 'Studio Mat 57']


def test_unique_instructors_collapse_spacing_and_case():
    records = [record(instructor='Reshma Sharma'), record(instructor='reshma  sharma'), record(instructor='Anisha Shah')]
    assert unique_instructors(records) == ['Anisha Shah', 'Reshma Sharma']


def test_performance_index_lookups():
    records = [
        record(instructor='Anisha Shah', participants=14),
        record(instructor='Reshma Sharma', participants=8),
        record(class_format='Studio Mat 57', instructor='Reshma Sharma', participants=6),
    ]
    index = PerformanceIndex(records)

    formats = {stat.class_format for stat in index.formats_for_cell(KWALITY_HOUSE, 'Monday', '09:00')}
    assert formats == {'Studio Barre 57', 'Studio Mat 57'}
    assert index.cell_stat('Studio Barre 57', KWALITY_HOUSE, 'Monday', '09:00').avg_participants == 11
    assert index.cell_stat('Studio FIT', KWALITY_HOUSE, 'Monday', '09:00') is None
    assert index.instructors_for_cell('Studio Barre 57', KWALITY_HOUSE, 'Monday', '09:00') == ['Anisha Shah', 'Reshma Sharma']
    assert index.instructors_for_format('Studio Barre 57')[0] == 'Anisha Shah'
    assert index.specialties('reshma sharma') == ['Studio Barre 57', 'Studio Mat 57']


def test_performance_index_puts_locked_instructor_first():
    records = [record('Studio Mat 57', KWALITY_HOUSE, 'Saturday', '10:15', 'Reshma Sharma', 40)]
    index = PerformanceIndex(records)
    assert index.instructors_for_cell('Studio Mat 57', KWALITY_HOUSE, 'Saturday', '10:15') == [
        'Karanvir Bhatia', 'Reshma Sharma'
    ]
