"""
Flask extensions initialization
"""
from datetime import timedelta

from flask import jsonify, has_app_context
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from celery import Celery, Task


class ContextTask(Task):
    """Celery task that runs inside the Flask application context"""
    abstract = True
    flask_app = None

    def __call__(self, *args, **kwargs):
        if has_app_context() or ContextTask.flask_app is None:
            return self.run(*args, **kwargs)
        with ContextTask.flask_app.app_context():
            return self.run(*args, **kwargs)


# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
celery = Celery('hospital_invoicing', task_cls=ContextTask)


def init_extensions(app):
    """Initialize all extensions with the app"""
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    # Configure Celery
    ContextTask.flask_app = app
    celery.conf.update(
        broker_url=app.config['CELERY_BROKER_URL'],
        result_backend=app.config['CELERY_RESULT_BACKEND'],
        task_always_eager=app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
        beat_schedule={
            'refresh-hospital-statuses': {
                'task': 'hospital_invoicing.tasks.refresh_hospital_statuses',
                'schedule': timedelta(days=1),
            },
            'refresh-invoice-statuses': {
                'task': 'hospital_invoicing.tasks.refresh_invoice_statuses',
                'schedule': timedelta(days=1),
            },
        },
    )

    # Token errors are reported with the API error shape
    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'error': 'Missing Authorization Bearer token'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'error': 'Invalid or expired token'}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({'error': 'Invalid or expired token'}), 401

    @jwt.user_lookup_loader
    def load_user(jwt_header, jwt_payload):
        from hospital_invoicing.models.users import User
        identity = str(jwt_payload.get('sub', ''))
        if not identity.isdigit():
            return None
        return db.session.get(User, int(identity))

    @jwt.user_lookup_error_loader
    def user_not_found(jwt_header, jwt_payload):
        return jsonify({'error': 'Invalid or expired token'}), 401
