"""
Startup script for deployment
Creates tables, applies migrations and seeds the admin account
"""
import os
import sys

from flask_migrate import upgrade

from hospital_invoicing import create_app, db
from hospital_invoicing.seed import seed_admin


def init_db():
    """Initialize database tables and the bootstrap account"""
    app = create_app()
    with app.app_context():
        try:
            db.create_all()
            print("Database tables created successfully")

            if os.path.isdir(os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations')):
                upgrade()
                print("Database migrations completed successfully")

            admin = seed_admin()
            if admin is not None:
                print(f"Admin account ready: {admin.email}")

        except Exception as e:
            print(f"Database initialization error: {e}")
            sys.exit(1)


if __name__ == "__main__":
    init_db()
