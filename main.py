from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.config.database import create_schema, load_tenants, tenant_registry
from shared.observability import setup_observability
from shared.security import limiter

# IMPORTANT: import models so they register with Base
from services.inventory_service import models as inventory_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.payment_service import models as payment_models  # noqa: F401
from services.delivery_service import models as delivery_models  # noqa: F401
from services.courier_service import models as courier_models  # noqa: F401
from services.notification_service import models as notification_models  # noqa: F401
from services.cart_service import models as cart_models  # noqa: F401

from services.inventory_service.main import inventory_app
from services.order_service.main import order_app
from services.payment_service.main import payment_app
from services.delivery_service.main import delivery_app
from services.courier_service.main import courier_app
from services.notification_service.main import notification_app
from services.cart_service.main import cart_app

app = FastAPI(title="Ecommerce Cluster", version="2.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, "ecommerce_cluster")

# --- SECURITY SETUP ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.on_event("startup")
async def startup_event():
    load_tenants(tenant_registry)
    for tenant in tenant_registry.all():
        await create_schema(tenant)


@app.on_event("shutdown")
async def shutdown_event():
    for tenant in tenant_registry.all():
        await tenant.engine.dispose()


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "cluster", "status": "running", "tenants": [t.tenant_id for t in tenant_registry.all()]}


app.mount("/inventory", inventory_app)
app.mount("/orders", order_app)
app.mount("/payment", payment_app)
app.mount("/delivery", delivery_app)
app.mount("/courier", courier_app)
app.mount("/notifications", notification_app)
app.mount("/cart", cart_app)
