# backend/wsgi.py
from bookwell import create_app

app = create_app()
