"""
Section Purger API

FastAPI application exposing the purge endpoints.

Run:
    uvicorn api.app:app --port 8000
"""

import logging
import sys

from fastapi import FastAPI

from section_purger import __version__
from api import purge

# Configure logging to stdout
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

app = FastAPI(
    title="Section Purger",
    description="Cache invalidation for Section Varnish proxies",
    version=__version__,
)

app.include_router(purge.router)


@app.get("/api/health")
def health_check():
    """Liveness check."""
    return {"status": "healthy", "version": __version__}
