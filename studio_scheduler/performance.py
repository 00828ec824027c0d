"""
Performance aggregation over historic class records.

All functions are pure: they read a sequence of HistoricClassRecord (or a
DataFrame with the same columns) and return freshly built statistics.
"""
from collections import defaultdict
from dataclasses import astuple, fields
from functools import cmp_to_key
import logging

import pandas as pd

from .entities import GroupKey, HistoricClassRecord, PerformanceStat, instructor_key
from .rules import (
    LOCKED_CLASSES, TOP_PERFORMER_THRESHOLD, format_allowed_at_location,
    is_excluded_instructor, is_hosted_class
)

logger = logging.getLogger(__name__)

RECORD_COLUMNS = [f.name for f in fields(HistoricClassRecord)]
CELL_COLUMNS = ['class_format', 'location', 'day', 'time']

# Averages closer than this are treated as a tie and broken by frequency
TIE_TOLERANCE = 1.0


def records_to_frame(records):
    """Build a DataFrame with one row per historic record"""
    if isinstance(records, pd.DataFrame):
        return records
    return pd.DataFrame([astuple(r) for r in records], columns=RECORD_COLUMNS)


def aggregate(records, group_by_instructor=False):
    """Group records by (format, location, day, time[, instructor]) and average them"""
    df = records_to_frame(records)
    if df.empty:
        return {}

    group_columns = CELL_COLUMNS + (['instructor'] if group_by_instructor else [])
    grouped = df.groupby(group_columns, sort=False).agg(
        total_participants=('participants', 'sum'),
        total_revenue=('revenue', 'sum'),
        count=('participants', 'size'),
    ).reset_index()

    stats = {}
    for row in grouped.itertuples(index=False):
        stat = PerformanceStat(
            class_format=row.class_format,
            location=row.location,
            day=row.day,
            time=row.time,
            instructor=row.instructor if group_by_instructor else None,
            total_participants=float(row.total_participants),
            total_revenue=float(row.total_revenue),
            count=int(row.count),
        )
        stats[stat.key] = stat
    return stats


def compare_by_average_then_frequency(a, b):
    """Sort order for rankings: average desc, near-ties broken by frequency desc"""
    difference = b.avg_participants - a.avg_participants
    if abs(difference) <= TIE_TOLERANCE:
        return b.count - a.count
    return 1 if difference > 0 else -1


def locked_stats():
    """The curated seed classes expressed as PerformanceStat entries"""
    stats = []
    for locked in LOCKED_CLASSES:
        stats.append(PerformanceStat(
            class_format=locked.class_format,
            location=locked.location,
            day=locked.day,
            time=locked.time,
            instructor=locked.instructor,
            total_participants=locked.avg_participants * 10,
            total_revenue=0.0,
            count=10,
            is_locked=True,
        ))
    return stats


def eligible_records(records):
    """Drop hosted classes and formats not offered where they were held"""
    return [
        r for r in records
        if not is_hosted_class(r.class_format) and format_allowed_at_location(r.class_format, r.location)
    ]


def select_top_performing(records, min_average=TOP_PERFORMER_THRESHOLD, group_by_instructor=True, include_locked=True):
    """Ranked top performers with the locked seed classes always first"""
    stats = aggregate(eligible_records(records), group_by_instructor)
    computed = [s for s in stats.values() if s.count >= 2 and s.avg_participants >= min_average]
    computed.sort(key=cmp_to_key(compare_by_average_then_frequency))

    result = []
    seen = set()
    for stat in (locked_stats() if include_locked else []) + computed:
        if stat.cell_key in seen:
            continue
        seen.add(stat.cell_key)
        result.append(stat)

    logger.debug("Selected %d top performers (min average %.1f)", len(result), min_average)
    return result


# =============================================================
# ======================= Lookup helpers ======================
# =============================================================

def best_instructor_for_cell(records, class_format, location, day, time, excluded=None):
    """Locked seed instructor if one exists, else the best historic instructor in the exact cell"""
    for locked in LOCKED_CLASSES:
        if (locked.class_format, locked.location, locked.day, locked.time) == (class_format, location, day, time):
            return locked.instructor

    cell_records = [
        r for r in records
        if (r.class_format, r.location, r.day, r.time) == (class_format, location, day, time)
        and not is_excluded_instructor(r.instructor, excluded)
    ]
    stats = sorted(
        aggregate(cell_records, group_by_instructor=True).values(),
        key=cmp_to_key(compare_by_average_then_frequency)
    )
    return stats[0].instructor if stats else None


def class_average_for_slot(records, class_format, location, day, time):
    stat = aggregate(records).get(GroupKey(class_format, location, day, time))
    return stat.avg_participants if stat else 0.0


def location_average(records, location):
    participants = [r.participants for r in records if r.location == location]
    if not participants:
        return 0.0
    return sum(participants) / len(participants)


def format_stats(records):
    """Per-format averages over an arbitrary record subset"""
    df = records_to_frame(records)
    if df.empty:
        return {}

    grouped = df.groupby('class_format', sort=False).agg(
        avg_participants=('participants', 'mean'),
        avg_revenue=('revenue', 'mean'),
        frequency=('participants', 'size'),
    )
    return {
        class_format: {
            'avg_participants': float(row.avg_participants),
            'avg_revenue': float(row.avg_revenue),
            'frequency': int(row.frequency),
        }
        for class_format, row in grouped.iterrows()
    }


def instructor_specialties(records, limit=5):
    """Top formats per instructor ordered by class count, then average"""
    per_instructor = defaultdict(list)
    for record in records:
        per_instructor[record.instructor].append(record)

    specialties = {}
    for name, instructor_records in per_instructor.items():
        ranked = sorted(
            format_stats(instructor_records).items(),
            key=lambda item: (item[1]['frequency'], item[1]['avg_participants']),
            reverse=True
        )
        specialties[name] = [class_format for class_format, _ in ranked[:limit]]
    return specialties


def unique_instructors(records):
    names = {}
    for record in records:
        names.setdefault(record.instructor_key, record.instructor)
    return sorted(names.values())


# =============================================================
# ==================== Precomputed lookup index ===============
# =============================================================

class PerformanceIndex:
    """
    Read-only lookups built once per optimization run.

    Holds per-cell stats, per-(cell, instructor) stats and per-instructor
    format stats so the scheduler can rank candidates without re-scanning
    the record set for every cell.
    """

    def __init__(self, records):
        self.records = list(records)
        self.cell_stats = aggregate(self.records)
        self.instructor_cell_stats = aggregate(self.records, group_by_instructor=True)

        self._formats_by_cell = defaultdict(list)
        for stat in self.cell_stats.values():
            self._formats_by_cell[(stat.location, stat.day, stat.time)].append(stat)

        self._instructors_by_cell = defaultdict(list)
        for stat in self.instructor_cell_stats.values():
            self._instructors_by_cell[stat.cell_key].append(stat)
        for candidates in self._instructors_by_cell.values():
            candidates.sort(key=cmp_to_key(compare_by_average_then_frequency))

        self._records_by_instructor = defaultdict(list)
        self._records_by_format = defaultdict(list)
        for record in self.records:
            self._records_by_instructor[record.instructor_key].append(record)
            self._records_by_format[record.class_format].append(record)

        self._locked_by_cell = {
            (c.class_format, c.location, c.day, c.time): c.instructor for c in LOCKED_CLASSES
        }
        self._specialties = {}

    def formats_for_cell(self, location, day, time):
        return list(self._formats_by_cell.get((location, day, time), []))

    def cell_stat(self, class_format, location, day, time):
        return self.cell_stats.get(GroupKey(class_format, location, day, time))

    def instructors_for_cell(self, class_format, location, day, time):
        """Historic instructors of a cell, best first; a locked seed instructor leads"""
        names = []
        locked = self._locked_by_cell.get((class_format, location, day, time))
        if locked:
            names.append(locked)
        for stat in self._instructors_by_cell.get((class_format, location, day, time), []):
            if instructor_key(stat.instructor) != instructor_key(locked or ''):
                names.append(stat.instructor)
        return names

    def instructors_for_format(self, class_format):
        """Every instructor who has taught a format, best overall average first"""
        totals = defaultdict(lambda: [0.0, 0])
        for record in self._records_by_format.get(class_format, []):
            totals[record.instructor][0] += record.participants
            totals[record.instructor][1] += 1
        ranked = sorted(totals.items(), key=lambda item: (item[1][0] / item[1][1], item[1][1]), reverse=True)
        return [name for name, _ in ranked]

    def specialties(self, key, limit=3):
        """Top formats for an instructor key by count, then average"""
        if key not in self._specialties:
            ranked = sorted(
                format_stats(self._records_by_instructor.get(key, [])).items(),
                key=lambda item: (item[1]['frequency'], item[1]['avg_participants']),
                reverse=True
            )
            self._specialties[key] = [class_format for class_format, _ in ranked]
        return self._specialties[key][:limit]
