# backend/wsgi.py
from cartonstock import create_app

app = create_app()
