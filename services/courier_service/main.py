from fastapi import FastAPI

from shared.errors import register_exception_handlers
from .models import CourierEvent  # noqa: F401 (registers model with Base)
from .router import router, public_router

courier_app = FastAPI(title="Courier Service", version="2.0.0")
register_exception_handlers(courier_app)

courier_app.include_router(public_router)
courier_app.include_router(router)
