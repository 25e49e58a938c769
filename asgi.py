"""
asgi.py -- Application assembly for Saiqa.

The composition root: the ONLY place the server reads its configuration from
the environment. Everything below receives the Settings object explicitly.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
