import os
import re
from datetime import timedelta


def parse_duration(value, default=timedelta(days=7)):
    """Parse a duration such as '7d', '12h', '30m', '45s' or plain seconds"""
    if not value:
        return default
    match = re.fullmatch(r'\s*(\d+)\s*([smhdw]?)\s*', str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount = int(match.group(1))
    unit = match.group(2) or 's'
    return {
        's': timedelta(seconds=amount),
        'm': timedelta(minutes=amount),
        'h': timedelta(hours=amount),
        'd': timedelta(days=amount),
        'w': timedelta(weeks=amount),
    }[unit]


class Config:
    """Base configuration class"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # JWT
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET')
    JWT_ACCESS_TOKEN_EXPIRES = parse_duration(os.environ.get('JWT_EXPIRES_IN'))
    JWT_TOKEN_LOCATION = ['headers']

    # Database
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DATABASE_NAME = os.environ.get('MONGO_DB_NAME') or 'harmony'

    # Redis / Celery
    REDIS_URL = os.environ.get('REDIS_URL') or 'redis://localhost:6379/0'
    CELERY_BROKER_URL = REDIS_URL
    CELERY_RESULT_BACKEND = REDIS_URL
    CELERY_TASK_ALWAYS_EAGER = False

    # File storage
    UPLOAD_FOLDER = os.environ.get('FILE_STORAGE') or 'uploads'
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max file size

    # Server
    API_PORT = int(os.environ.get('API_PORT') or 3001)

    # Bootstrap account
    SEED_ADMIN_EMAIL = os.environ.get('SEED_ADMIN_EMAIL')
    SEED_ADMIN_PASSWORD = os.environ.get('SEED_ADMIN_PASSWORD')

    # Application specific
    APP_NAME = 'Hospital Invoicing'
    APP_VERSION = '1.0.0'
    INVOICE_NUMBER_RETRIES = int(os.environ.get('INVOICE_NUMBER_RETRIES') or 5)
    HOSPITAL_EXPIRY_WARNING_DAYS = int(os.environ.get('HOSPITAL_EXPIRY_WARNING_DAYS') or 30)
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'

    @staticmethod
    def init_app(app):
        pass


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        f'sqlite:///{Config.DATABASE_NAME}.db'

    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or 'sqlite:///:memory:'
    JWT_SECRET_KEY = 'test-jwt-secret'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    SEED_ADMIN_EMAIL = None
    SEED_ADMIN_PASSWORD = None

    # Run background jobs inline
    CELERY_TASK_ALWAYS_EAGER = True
    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)

        if not app.config.get('SQLALCHEMY_DATABASE_URI'):
            raise ValueError("DATABASE_URL environment variable is required for production")

        # Log to stderr in production
        import logging
        from logging import StreamHandler
        stream_handler = StreamHandler()
        stream_handler.setLevel(logging.INFO)
        app.logger.addHandler(stream_handler)


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
