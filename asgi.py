"""
asgi.py -- ASGI entry point for RepoHub.

api/main.py builds the application; servers import it from here so the
module path stays stable if more routers are mounted later.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app

__all__ = ["app"]
