"""WSGI entry point for the Syndicate Manager."""

import os

from syndicate_app import create_app

app = create_app(os.getenv("FLASK_ENV", "production"))
