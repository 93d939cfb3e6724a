# backend/wsgi.py
from shoptrack import create_app

app = create_app()
