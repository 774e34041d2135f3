from fastapi import FastAPI

from shared.errors import register_exception_handlers
from .models import CartItem  # noqa: F401 (registers model with Base)
from .router import router, public_router

cart_app = FastAPI(title="Cart Service", version="2.0.0")
register_exception_handlers(cart_app)

cart_app.include_router(public_router)
cart_app.include_router(router)
