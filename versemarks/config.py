import os
from dotenv import load_dotenv

load_dotenv()

def _fix_db_url(url):
    """Fix common DATABASE_URL issues for SQLAlchemy compatibility."""
    if not url:
        return 'sqlite:///versemarks.db'
    # Heroku-style URLs use postgres:// but SQLAlchemy requires postgresql://
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url

class Config:
    SQLALCHEMY_DATABASE_URI = _fix_db_url(os.environ.get('DATABASE_URL', ''))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTH_JWKS_URL = os.environ.get('AUTH_JWKS_URL', '')
    AUTH_AUDIENCE = os.environ.get('AUTH_AUDIENCE', 'authenticated')
    CREATE_SCHEMA_ON_STARTUP = False

    # Bookmark engine settings
    SPEAK_LABEL_NAME = os.environ.get('SPEAK_LABEL_NAME', '__SPEAK_LABEL__')
    SPEAK_LABEL_PREFERENCE_KEY = 'speak_label_id'
    DEFAULT_BOOKMARK_SORT_ORDER = os.environ.get('DEFAULT_BOOKMARK_SORT_ORDER', 'bible_order')

class DevConfig(Config):
    DEBUG = True
    CREATE_SCHEMA_ON_STARTUP = True

class ProdConfig(Config):
    DEBUG = False

class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    CREATE_SCHEMA_ON_STARTUP = True
