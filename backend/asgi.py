"""
ASGI entrypoint.

    uvicorn asgi:app --app-dir backend --reload

CORS origins come from the CORS_ORIGINS setting; keep it tight in production.
"""
from moneycoach.main import app

__all__ = ["app"]
