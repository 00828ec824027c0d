import argparse
import logging

from studio_scheduler import create_app, db, bcrypt
from studio_scheduler.entities import split_name
from studio_scheduler.models import User, Location, Instructor, ClassRecord
from studio_scheduler.rules import LOCATIONS, classify_tier, is_excluded_instructor, location_parallel_capacity
from studio_scheduler.util import process_class_records_file, process_instructors_file

logger = logging.getLogger('init_db')

def parse_args():
    parser = argparse.ArgumentParser(description="Recreate the scheduler database with seed data")
    parser.add_argument('--config', default='default', help="Configuration name from config.py")
    parser.add_argument('--records', help="Historic class export (CSV or TSV) to load")
    parser.add_argument('--instructors', help="Instructor roster CSV to load")
    return parser.parse_args()

def seed_roster_from_records():
    """One Instructor row per name in the history, tier taken from the configured name lists"""
    created = 0
    for (name,) in db.session.query(ClassRecord.instructor).distinct().order_by(ClassRecord.instructor):
        if is_excluded_instructor(name):
            continue
        first_name, last_name = split_name(name)
        if Instructor.query.filter_by(first_name=first_name, last_name=last_name).first():
            continue
        db.session.add(Instructor(first_name=first_name, last_name=last_name, tier=classify_tier(name)))
        created += 1
    return created

def main():
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(message)s')
    args = parse_args()

    app = create_app(args.config)
    with app.app_context():
        db.drop_all()
        db.create_all()

        logger.info("Creating locations...")
        for name in LOCATIONS:
            db.session.add(Location(name=name, parallel_capacity=location_parallel_capacity(name)))

        # Create a default admin user
        logger.info("Creating default admin user...")
        admin_user = User(
            username='admin',
            password=bcrypt.generate_password_hash('admin').decode('utf-8'),
            permissions=1  # Full permissions
        )
        db.session.add(admin_user)
        db.session.commit()

        if args.records:
            with open(args.records, 'rb') as file:
                logger.info(process_class_records_file(file))
            db.session.flush()
            logger.info("Created %d instructors from history", seed_roster_from_records())
        if args.instructors:
            with open(args.instructors, 'rb') as file:
                logger.info(process_instructors_file(file))
        db.session.commit()


if __name__ == '__main__':
    main()
