# realty_api/wsgi.py
from realty_api import create_app

app = create_app()
