from io import StringIO
import logging
import re

import pandas as pd

from studio_scheduler import db
from studio_scheduler.entities import TIERS, minutes_to_time, normalize_time, time_to_minutes
from studio_scheduler.models import ClassRecord, DayOfWeek, Instructor, InstructorLocation, InstructorUnavailableDay, \
    Location
from studio_scheduler.rules import DAYS, LOCATIONS, classify_tier

logger = logging.getLogger(__name__)

CLASS_RECORD_COLUMNS = [
    'Location', 'Participants', 'Teacher First Name', 'Teacher Last Name',
    'Day of the Week', 'Class Time', 'Cleaned Class'
]
INSTRUCTOR_COLUMNS = ['First Name', 'Last Name']

LOCATION_COLORS = {
    LOCATIONS[0]: '#4ECDC4',
    LOCATIONS[1]: '#FF6B6B',
    LOCATIONS[2]: '#96CEB4',
}


def detect_delimiter(header_line):
    """Tab when the header holds more tabs than commas, otherwise comma"""
    return '\t' if header_line.count('\t') > header_line.count(',') else ','


def read_table(file):
    """Read an uploaded CSV or TSV into a string-typed DataFrame with trimmed headers"""
    raw = file.read()
    text = raw.decode('utf-8-sig') if isinstance(raw, bytes) else raw
    if not text.strip():
        raise ValueError("File is empty")

    delimiter = detect_delimiter(text.splitlines()[0])
    df = pd.read_csv(StringIO(text), sep=delimiter, dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(column).strip() for column in df.columns]
    logger.info("Read %d rows (%s separated)", len(df), 'tab' if delimiter == '\t' else 'comma')
    return df


def clean_number(value, integer=False, default=0):
    """Strip currency symbols and separators; default when nothing numeric is left"""
    text = re.sub(r'[^\d.\-]', '', str(value))
    try:
        number = float(text)
    except ValueError:
        return default
    return int(number) if integer else number


def _cell(row, column):
    return str(row[column]).strip() if column in row and not pd.isna(row[column]) else ''


def _require_columns(df, required_columns):
    if df.empty:
        raise ValueError("CSV file is empty")
    missing_columns = [col for col in required_columns if col not in df.columns]
    if missing_columns:
        raise ValueError(f"Missing required columns: {', '.join(missing_columns)}")


class _LocationCache(dict):
    """Location rows by name, including ones created during this upload"""

    def __missing__(self, name):
        self[name] = Location.for_name(name)
        return self[name]


def process_class_records_file(file):
    """Replace the stored historic classes with the rows of an uploaded export"""
    df = read_table(file)
    _require_columns(df, CLASS_RECORD_COLUMNS)

    ClassRecord.query.delete()
    studios = set()

    processed_count = 0
    skipped_count = 0
    with db.session.no_autoflush:
        for index, row in df.iterrows():
            try:
                class_format = _cell(row, 'Cleaned Class')
                location = _cell(row, 'Location')
                day = _cell(row, 'Day of the Week')
                first_name = _cell(row, 'Teacher First Name')
                last_name = _cell(row, 'Teacher Last Name')
                participants = clean_number(_cell(row, 'Participants'), integer=True, default=None)

                if not (class_format and location and day and first_name and last_name) or participants is None:
                    logger.info("Skipping row %d: missing class, location, day, instructor or participants", index + 1)
                    skipped_count += 1
                    continue

                instructor = _cell(row, 'Teacher Name') or f"{first_name} {last_name}"
                db.session.add(ClassRecord(
                    class_format=class_format,
                    location=location,
                    day=day.capitalize(),
                    time=normalize_time(_cell(row, 'Class Time')),
                    instructor=instructor,
                    participants=participants,
                    revenue=clean_number(_cell(row, 'Total Revenue')),
                    checked_in=clean_number(_cell(row, 'Checked in'), integer=True),
                    comps=clean_number(_cell(row, 'Comps'), integer=True),
                    late_cancellations=clean_number(_cell(row, 'Late cancellations'), integer=True),
                    class_date=_cell(row, 'Class date') or None,
                ))
                studios.add(location)
                processed_count += 1
            except ValueError as e:
                logger.warning("Skipping row %d: %s", index + 1, e)
                skipped_count += 1
                continue

        for name in sorted(studios):
            Location.for_name(name)

    if processed_count == 0:
        raise ValueError("No valid rows found. Please check the CSV format and required columns.")

    return f"Processed {processed_count} historic classes ({skipped_count} skipped)"


def _split_list(value):
    return [item.strip() for item in re.split(r'[;|]', value) if item.strip()]


def sync_instructor_locations(instructor, location_rows):
    """Make the instructor's studio links match location_rows"""
    wanted = {location.name: location for location in location_rows}
    for link in list(instructor.assigned_locations):
        if link.location.name not in wanted:
            instructor.assigned_locations.remove(link)
    current = {link.location.name for link in instructor.assigned_locations}
    for name, location in wanted.items():
        if name not in current:
            instructor.assigned_locations.append(InstructorLocation(location=location))


def sync_unavailable_days(instructor, day_labels):
    """Make the instructor's unavailable days match day_labels"""
    wanted = {DayOfWeek.from_label(day).value for day in day_labels}
    for offday in list(instructor.unavailable_days):
        if offday.day not in wanted:
            instructor.unavailable_days.remove(offday)
    current = {offday.day for offday in instructor.unavailable_days}
    for day in sorted(wanted - current):
        instructor.unavailable_days.append(InstructorUnavailableDay(day=day))


def process_instructors_file(file):
    """Create or update instructors from a roster file"""
    df = read_table(file)
    _require_columns(df, INSTRUCTOR_COLUMNS)

    locations = _LocationCache()
    seen = {}

    processed_count = 0
    with db.session.no_autoflush:
        for index, row in df.iterrows():
            try:
                first_name = _cell(row, 'First Name')
                last_name = _cell(row, 'Last Name')
                if not first_name:
                    logger.info("Skipping roster row %d: no first name", index + 1)
                    continue

                tier = _cell(row, 'Tier').lower() or classify_tier(f"{first_name} {last_name}")
                if tier not in TIERS:
                    raise ValueError(f"Unknown tier {tier!r}")

                unavailable = _split_list(_cell(row, 'Unavailable Days'))
                for day in unavailable:
                    if day.capitalize() not in DAYS:
                        raise ValueError(f"Unknown day {day!r}")

                instructor = seen.get((first_name, last_name)) or \
                    Instructor.query.filter_by(first_name=first_name, last_name=last_name).first()
                if instructor is None:
                    instructor = Instructor(first_name=first_name, last_name=last_name)
                    db.session.add(instructor)
                seen[(first_name, last_name)] = instructor

                instructor.tier = tier
                instructor.max_hours = clean_number(_cell(row, 'Max Hours'), default=None) if _cell(row, 'Max Hours') else None
                if _cell(row, 'Locations'):
                    sync_instructor_locations(instructor, [locations[name] for name in _split_list(_cell(row, 'Locations'))])
                if unavailable:
                    sync_unavailable_days(instructor, unavailable)

                processed_count += 1
            except ValueError as e:
                logger.warning("Skipping roster row %d: %s", index + 1, e)
                continue

    return f"Processed {processed_count} instructors"


def format_schedule_for_display(schedule):
    """Calendar-friendly rows for a list of ScheduledClass, sorted by day and time"""
    day_order = {day: i for i, day in enumerate(DAYS)}

    formatted_classes = []
    for cls in schedule:
        start = time_to_minutes(cls.time)
        formatted_classes.append({
            'id': cls.id,
            'day': cls.day,
            'dayOrder': day_order.get(cls.day, len(DAYS)),
            'startTime': cls.time,
            'endTime': minutes_to_time(start + int(round(float(cls.duration) * 60))),
            'duration': int(round(float(cls.duration) * 60)),
            'location': cls.location,
            'classFormat': cls.class_format,
            'instructor': cls.instructor_name,
            'participants': cls.participants,
            'revenue': cls.revenue,
            'isTopPerformer': cls.is_top_performer,
            'isPrivate': cls.is_private,
            'isLocked': cls.is_locked,
            'color': LOCATION_COLORS.get(cls.location, '#95A5A6'),
        })

    formatted_classes.sort(key=lambda x: (x['dayOrder'], x['startTime'], x['location']))
    return formatted_classes
