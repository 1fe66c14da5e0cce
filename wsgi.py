"""WSGI entrypoint for Gunicorn.

Usage:
  gunicorn -w 2 -b 0.0.0.0:8000 wsgi:app
  flask --app wsgi scheduler
"""

from bingo_engine import create_app

app = create_app()
