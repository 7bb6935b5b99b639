"""
FastAPI application entry point for the admin audit service.

Every mutating admin request is recorded by AdminActivityMiddleware.
Log, export and notification routes require a valid bearer token.
"""

import os
import logging

from adminlog.app import create_app

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
