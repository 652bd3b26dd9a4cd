"""
asgi.py -- Application assembly for authgate.

This is the ONLY file that imports from both api/ and web/. It joins the
token API and the browser login routes into a single ASGI app.
api/main.py knows nothing about web/; web/routes.py knows nothing about api/.

Run with:  uvicorn asgi:app --port 8080
"""

from api.main import app
from web.routes import router as web_router

app.include_router(web_router, tags=["Browser login"])
