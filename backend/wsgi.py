# backend/wsgi.py
from lpgtrack import create_app

app = create_app()
