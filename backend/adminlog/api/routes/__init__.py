# API routes
from adminlog.api.routes import health
from adminlog.api.routes import logs
from adminlog.api.routes import notifications
from adminlog.api.routes import realtime

__all__ = ["health", "logs", "notifications", "realtime"]
