# Package
from flask import Blueprint

# Ingestion webhook, worker health and job readback, mounted under /api
api_bp = Blueprint("api", __name__)

from app.api import routes  # noqa: E402,F401
