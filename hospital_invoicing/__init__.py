"""
Hospital invoicing admin API
"""
import os
import logging

import click
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from hospital_invoicing.config import config
from hospital_invoicing.extensions import db, migrate, jwt, celery, init_extensions


def create_app(config_name=None):
    """Application factory"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV') or 'default'

    app = Flask(__name__)
    app.config.from_object(config.get(config_name, config['default']))
    config.get(config_name, config['default']).init_app(app)

    app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    init_extensions(app)

    # Import models so metadata is complete for create_all and migrations
    from hospital_invoicing import models  # noqa: F401
    from hospital_invoicing import tasks  # noqa: F401

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    @app.route('/health')
    def health():
        return jsonify({'ok': True})

    return app


def register_blueprints(app):
    from hospital_invoicing.routes.auth import auth_bp
    from hospital_invoicing.routes.hospitals import hospitals_bp
    from hospital_invoicing.routes.patients import patients_bp
    from hospital_invoicing.routes.invoices import invoices_bp
    from hospital_invoicing.routes.dashboard import dashboard_bp
    from hospital_invoicing.routes.admin import admin_bp
    from hospital_invoicing.routes.documents import documents_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(hospitals_bp, url_prefix='/api/hospitals')
    app.register_blueprint(patients_bp, url_prefix='/api/patients')
    app.register_blueprint(invoices_bp, url_prefix='/api/invoices')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(documents_bp, url_prefix='/api/documents')


def register_error_handlers(app):
    from hospital_invoicing.utils.validation import ValidationError
    from hospital_invoicing.utils.invoicing import ConflictError

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        db.session.rollback()
        return jsonify({'error': error.message}), 400

    @app.errorhandler(ConflictError)
    def handle_conflict(error):
        db.session.rollback()
        return jsonify({'error': error.message}), 409

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        if request.path.startswith('/api') or request.path == '/health':
            return jsonify({'error': error.description}), error.code
        return error

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        app.logger.exception(f'Unhandled error on {request.method} {request.path}: {error}')
        return jsonify({'error': 'Internal server error'}), 500


def register_commands(app):

    @app.cli.command('refresh-statuses')
    def refresh_statuses_command():
        """Recompute cached hospital and invoice statuses"""
        from hospital_invoicing.tasks import refresh_hospital_status_cache, refresh_invoice_status_cache
        hospitals = refresh_hospital_status_cache()
        invoices = refresh_invoice_status_cache()
        click.echo(f"Updated {hospitals} hospital and {invoices} invoice status(es)")

    @app.cli.command('seed-admin')
    def seed_admin_command():
        """Create the bootstrap website head account"""
        from hospital_invoicing.seed import seed_admin
        user = seed_admin()
        if user is None:
            click.echo('SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD not set; nothing to do')
        else:
            click.echo(f'Admin account ready: {user.email}')


__all__ = ['create_app', 'db', 'migrate', 'jwt', 'celery']
