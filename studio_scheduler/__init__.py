from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from config import config, DevelopmentConfig

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()


def create_app(config_name='default'):
    app = Flask(__name__)
    app.config.from_object(config.get(config_name, DevelopmentConfig))

    db.init_app(app)
    bcrypt.init_app(app)
    login_manager.init_app(app)

    with app.app_context():
        from .models import User, Location, Instructor, InstructorLocation, InstructorUnavailableDay, \
            ClassRecord, Schedule, ScheduleEntry
        db.create_all()
        db.session.commit()

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    from studio_scheduler.routes.api import api_bp
    from studio_scheduler.routes.timetable import timetable_bp

    app.register_blueprint(api_bp)
    app.register_blueprint(timetable_bp)

    return app


from .enhanced_scheduler import generate_schedule  # noqa: E402
from .recommendations import get_recommendations  # noqa: E402
from .validation import validate_assignment, compute_instructor_hours  # noqa: E402
