import random

from studio_scheduler.entities import HistoricClassRecord, ScheduledClass, split_name
from studio_scheduler.rules import EVENING_SLOTS, KENKERE_HOUSE, KWALITY_HOUSE, LOCATIONS, MORNING_SLOTS, \
    POWERCYCLE_HUB, class_duration

SENIORS = ['Anisha Shah', 'Vivaran Dhasmana', 'Rohan Dahima', 'Pranjali Jain']
STANDARD = ['Reshma Sharma', 'Karan Mehta', 'Richard Dsouza', 'Mrinalini Iyer']
NEW = ['Kabir Varma', 'Simonelle De Vitre']
EXCLUDED = ['Nishanth Raj']
ALL_INSTRUCTORS = SENIORS + STANDARD + NEW + EXCLUDED

FORMATS = [
    'Studio Barre 57', 'Studio Mat 57', 'Studio FIT', 'Studio Cardio Barre', 'Studio Back Body Blaze',
    'Studio HIIT', 'Studio Amped Up!', 'Studio powerCycle', 'Studio Recovery', 'Studio Barre 57 (Express)',
    'Studio Hosted Class',
]
TIMES = MORNING_SLOTS + EVENING_SLOTS + ['13:00']
DAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def record(class_format='Studio Barre 57', location=KWALITY_HOUSE, day='Monday', time='09:00',
           instructor='Reshma Sharma', participants=10, revenue=5000.0):
    return HistoricClassRecord(
        class_format=class_format,
        location=location,
        day=day,
        time=time,
        instructor=instructor,
        participants=participants,
        revenue=revenue,
    )


def scheduled(class_format='Studio Barre 57', location=KWALITY_HOUSE, day='Monday', time='09:00',
              instructor='Reshma Sharma', duration=None, is_private=False, **kwargs):
    first_name, last_name = split_name(instructor)
    return ScheduledClass(
        day=day,
        time=time,
        location=location,
        class_format=class_format,
        instructor_first_name=first_name,
        instructor_last_name=last_name,
        duration=class_duration(class_format) if duration is None else duration,
        is_private=is_private,
        **kwargs
    )


def random_history(seed, size=300):
    """Synthetic export mixing valid, disallowed and hosted combinations"""
    rng = random.Random(seed)
    records = []
    for _ in range(size):
        class_format = rng.choice(FORMATS)
        if 'powercycle' in class_format.lower() and rng.random() < 0.8:
            location = POWERCYCLE_HUB
        else:
            location = rng.choice(LOCATIONS)
        participants = rng.randint(1, 22)
        records.append(record(
            class_format=class_format,
            location=location,
            day=rng.choice(DAYS),
            time=rng.choice(TIMES),
            instructor=rng.choice(ALL_INSTRUCTORS),
            participants=participants,
            revenue=round(participants * rng.uniform(400, 900), 2),
        ))
    return records


def dense_history(repeats=3):
    """Every format at every slot of every studio, taught by a rotating cast"""
    records = []
    cast = SENIORS + STANDARD
    for d, day in enumerate(DAYS):
        for location in (KWALITY_HOUSE, POWERCYCLE_HUB, KENKERE_HOUSE):
            for t, time in enumerate(MORNING_SLOTS + EVENING_SLOTS):
                for f, class_format in enumerate(FORMATS[:5]):
                    for r in range(repeats):
                        records.append(record(
                            class_format=class_format,
                            location=location,
                            day=day,
                            time=time,
                            instructor=cast[(d + t + f + r) % len(cast)],
                            participants=6 + (d + t + f) % 9,
                            revenue=4000.0 + 100 * f,
                        ))
    return records
