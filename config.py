from dotenv import load_dotenv
import json
import os
from datetime import timedelta

load_dotenv()

def get_appdata_dir(app_name="StudioScheduler"):
    if os.name == 'nt':  # Windows
        base_dir = os.getenv('APPDATA', os.path.expanduser('~\\AppData\\Roaming'))
    else:  # Linux and macOS
        base_dir = os.getenv('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))
    appdata_path = os.path.join(base_dir, app_name)

    os.makedirs(appdata_path, exist_ok=True)
    return appdata_path

def get_scheduler_overrides():
    """SCHEDULER_CONFIG env var holds a JSON object of scheduler constant overrides"""
    raw = os.environ.get('SCHEDULER_CONFIG')
    if not raw:
        return {}
    overrides = json.loads(raw)
    if not isinstance(overrides, dict):
        raise ValueError("SCHEDULER_CONFIG must be a JSON object")
    return overrides

class Config:
    """Base configuration class"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # File upload settings
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB

    # Session settings
    PERMANENT_SESSION_LIFETIME = timedelta(hours=24)

    # Recommendation provider; local heuristic when provider or key is missing
    RECOMMENDER_PROVIDER = os.environ.get('RECOMMENDER_PROVIDER')  # openai, anthropic, deepseek or groq
    RECOMMENDER_API_KEY = os.environ.get('RECOMMENDER_API_KEY')
    RECOMMENDER_ENDPOINT = os.environ.get('RECOMMENDER_ENDPOINT')
    RECOMMENDER_TIMEOUT = float(os.environ.get('RECOMMENDER_TIMEOUT', 8))  # seconds

    # Overrides for EnhancedStudioScheduler constants, e.g. {"weekly_hour_limit": 12}
    SCHEDULER_CONFIG = get_scheduler_overrides()

class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = True  # Show SQL queries in development

    # SQLite for development
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///database.db'

class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        f'sqlite:///{os.path.join(get_appdata_dir(), "database.db")}'

class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'  # In-memory database for testing
    RECOMMENDER_PROVIDER = None
    RECOMMENDER_API_KEY = None
    SCHEDULER_CONFIG = {}

# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
