from flask_wtf import FlaskForm
from flask_wtf.file import FileField, FileAllowed
from wtforms.fields import StringField, PasswordField, SubmitField, IntegerField, FloatField, SelectField, \
    SelectMultipleField, BooleanField
from wtforms_sqlalchemy.fields import QuerySelectField, QuerySelectMultipleField
from wtforms.validators import DataRequired, Length, NumberRange, Optional, ValidationError

from .enhanced_scheduler import EnhancedStudioScheduler
from .entities import TIERS, normalize_time
from .models import Location
from .rules import DAYS, LOCATIONS
from . import rules

TIER_CHOICES = [(tier, tier.capitalize()) for tier in TIERS]
DAY_CHOICES = [(day, day) for day in DAYS]


class LoginForm(FlaskForm):
    username = StringField('Username', validators=[DataRequired(), Length(max=32)])
    password = PasswordField('Password', validators=[DataRequired()])
    submit = SubmitField('Log In')

# Filters are read from query strings and never change state
class InstructorFilter(FlaskForm):
    class Meta:
        csrf = False

    name = StringField(label='Name')
    tier = SelectField(
        label='Tier',
        choices=[('', 'All')] + TIER_CHOICES,
        default=''
    )
    location = QuerySelectField(
        label='Location',
        query_factory=lambda: Location.query.all(),
        get_label='name',
        allow_blank=True, blank_text='All', blank_value=''
    )


class InstructorForm(FlaskForm):
    """Form for adding/editing instructors"""
    first_name = StringField('First Name', validators=[
        DataRequired(),
        Length(max=32, message='First name must be at most 32 characters')
    ])
    last_name = StringField('Last Name', validators=[Optional(), Length(max=32)])
    tier = SelectField('Tier', choices=TIER_CHOICES, default='standard')
    max_hours = FloatField('Personal Weekly Cap (h)', validators=[Optional(), NumberRange(min=0, max=rules.WEEKLY_HOUR_LIMIT)])
    locations = QuerySelectMultipleField(
        'Locations',
        query_factory=lambda: Location.query.all(),
        get_pk=lambda location: location.name,
        get_label='name'
    )
    unavailable_days = SelectMultipleField('Unavailable Days', choices=DAY_CHOICES, validators=[Optional()])
    submit = SubmitField('Save Changes')


class OptimizerConfig(FlaskForm):
    optimization_type = SelectField(
        "Optimization Type",
        choices=[('attendance', 'Attendance'), ('revenue', 'Revenue'), ('balanced', 'Balanced')],
        default='attendance',
        description="Metric used to rank formats when filling slots"
    )
    target_day = SelectField(
        "Target Day",
        choices=[('', 'Whole week')] + DAY_CHOICES,
        default='',
        description="Generate a single day instead of the whole week"
    )

    # Workload Limits
    weekly_hour_limit = IntegerField("Weekly Hour Limit",
                                     validators=[Optional(), NumberRange(min=1, max=40)],
                                     default=rules.WEEKLY_HOUR_LIMIT,
                                     description="Maximum teaching hours per instructor per week")

    new_instructor_weekly_limit = IntegerField("New Instructor Weekly Limit",
                                               validators=[Optional(), NumberRange(min=1, max=40)],
                                               default=rules.NEW_INSTRUCTOR_WEEKLY_LIMIT,
                                               description="Maximum teaching hours per week for new instructors")

    daily_hour_limit = IntegerField("Daily Hour Limit",
                                    validators=[Optional(), NumberRange(min=1, max=12)],
                                    default=rules.DAILY_HOUR_LIMIT,
                                    description="Maximum teaching hours per instructor per day")

    min_days_off = IntegerField("Minimum Days Off",
                                validators=[Optional(), NumberRange(min=0, max=6)],
                                default=rules.MIN_DAYS_OFF,
                                description="Days per week an instructor must have no classes")

    # Performance Thresholds
    min_slot_average = FloatField("Minimum Slot Average",
                                  validators=[Optional(), NumberRange(min=0)],
                                  default=rules.MIN_SLOT_AVERAGE,
                                  description="Historic average participants a format needs to fill a slot")

    top_performer_threshold = FloatField("Top Performer Threshold",
                                         validators=[Optional(), NumberRange(min=0)],
                                         default=rules.TOP_PERFORMER_THRESHOLD,
                                         description="Average participants that marks a class as a top performer")

    diversity_min_occurrences = IntegerField("Diversity Minimum",
                                             validators=[Optional(), NumberRange(min=0, max=7)],
                                             default=rules.DIVERSITY_MIN_OCCURRENCES,
                                             description="Weekly classes required for each diversity format")

    # Shift Handling
    max_shift_instructors = IntegerField("Instructors Per Shift",
                                         validators=[Optional(), NumberRange(min=1, max=10)],
                                         default=EnhancedStudioScheduler.MAX_SHIFT_INSTRUCTORS,
                                         description="Instructors per location shift before classes are consolidated")

    shift_imbalance_limit = IntegerField("Shift Imbalance Limit",
                                         validators=[Optional(), NumberRange(min=0, max=20)],
                                         default=EnhancedStudioScheduler.SHIFT_IMBALANCE_LIMIT,
                                         description="Morning/evening class difference tolerated per location and day")

    def scheduler_config(self):
        """Overrides for EnhancedStudioScheduler constants"""
        skipped = {'optimization_type', 'target_day', 'csrf_token', 'submit'}
        return {name: value for name, value in self.data.items() if name not in skipped and value is not None}


class PopulateTopForm(FlaskForm):
    limit = IntegerField("Max Classes", validators=[Optional(), NumberRange(min=1, max=500)], default=EnhancedStudioScheduler.POPULATE_TOP_LIMIT)
    min_average = FloatField("Minimum Average", validators=[Optional(), NumberRange(min=0)],
                             default=rules.POPULATE_TOP_THRESHOLD)


class ManualClassForm(FlaskForm):
    """Single class booked by hand into a stored schedule"""
    day = SelectField('Day', choices=DAY_CHOICES, validators=[DataRequired()])
    time = StringField('Time', validators=[DataRequired()])
    location = SelectField('Location', choices=[(loc, loc) for loc in LOCATIONS], validators=[DataRequired()])
    class_format = StringField('Class', validators=[DataRequired(), Length(max=64)])
    instructor = StringField('Instructor', validators=[DataRequired(), Length(max=64)])
    duration = FloatField('Duration (h)', validators=[Optional(), NumberRange(min=0.25, max=4)])
    participants = FloatField('Expected Participants', validators=[Optional(), NumberRange(min=0)])
    revenue = FloatField('Expected Revenue', validators=[Optional(), NumberRange(min=0)])
    is_private = BooleanField('Private Class')
    cover_instructor = StringField('Cover Instructor', validators=[Optional(), Length(max=64)])

    def validate_time(self, field):
        try:
            field.data = normalize_time(field.data)
        except ValueError as e:
            raise ValidationError(str(e))


class RecommendationQuery(FlaskForm):
    class Meta:
        csrf = False

    day = SelectField('Day', choices=DAY_CHOICES, validators=[DataRequired()])
    time = StringField('Time', validators=[DataRequired()])
    location = SelectField('Location', choices=[(loc, loc) for loc in LOCATIONS], validators=[DataRequired()])
    limit = IntegerField('Limit', validators=[Optional(), NumberRange(min=1, max=20)], default=5)

    def validate_time(self, field):
        try:
            field.data = normalize_time(field.data)
        except ValueError as e:
            raise ValidationError(str(e))


class DataUploadForm(FlaskForm):
    class_records_file = FileField(
        'Historic Classes CSV/TSV',
        validators=[FileAllowed(['csv', 'tsv', 'txt'], 'CSV or TSV files only!')]
    )
    instructors_file = FileField(
        'Instructors CSV',
        validators=[FileAllowed(['csv', 'tsv', 'txt'], 'CSV or TSV files only!')]
    )
    submit = SubmitField('Upload Files')
