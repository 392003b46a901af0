# backend/wsgi.py
from deposit_engine import create_app

app = create_app()
