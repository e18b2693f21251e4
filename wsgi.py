"""
WSGI entry point
"""
import os

os.environ.setdefault('FLASK_APP', 'wsgi.py')
os.environ.setdefault('FLASK_ENV', 'production')

from hospital_invoicing import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT") or app.config['API_PORT'])
    app.run(host="0.0.0.0", port=port, debug=False)
