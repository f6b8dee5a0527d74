# backend/wsgi.py
from farmpro import create_app

app = create_app()
