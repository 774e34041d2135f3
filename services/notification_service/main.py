from fastapi import FastAPI

from shared.errors import register_exception_handlers
from .models import Notification  # noqa: F401 (registers model with Base)
from .router import router, public_router

notification_app = FastAPI(title="Notification Service", version="1.0.0")
register_exception_handlers(notification_app)

notification_app.include_router(public_router)
notification_app.include_router(router)
