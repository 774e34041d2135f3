from fastapi import FastAPI

from shared.errors import register_exception_handlers
from .models import Product, ProductVariant  # noqa: F401 (registers models with Base)
from .router import router, public_router

inventory_app = FastAPI(title="Inventory Service", version="1.0.0")
register_exception_handlers(inventory_app)

# Internal routes first so /restock is not captured by /{product_id}
inventory_app.include_router(router)
inventory_app.include_router(public_router)
