from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from shared.config import settings
from shared.security.jwt_handler import verify_access_token

Base = declarative_base()


@dataclass
class TenantContext:
    """Everything a request needs to talk to one tenant's deployment."""

    tenant_id: str
    engine: AsyncEngine
    session_factory: async_sessionmaker
    payment_key_id: str = ""
    payment_key_secret: str = ""
    courier_api_key: str = ""
    webhook_secret: str = ""


class TenantRegistry:
    def __init__(self):
        self._tenants: dict[str, TenantContext] = {}

    def register(self, tenant: TenantContext) -> TenantContext:
        self._tenants[tenant.tenant_id] = tenant
        return tenant

    def unregister(self, tenant_id: str) -> None:
        self._tenants.pop(tenant_id, None)

    def get(self, tenant_id: str | None) -> TenantContext | None:
        if not tenant_id:
            return None
        return self._tenants.get(tenant_id)

    def all(self) -> list[TenantContext]:
        return list(self._tenants.values())


def build_tenant(tenant_id: str, database_url: str | None = None) -> TenantContext:
    url = database_url or settings.tenant_env("DATABASE_URL", tenant_id, settings.DATABASE_URL)
    engine = create_async_engine(url, echo=settings.SQL_ECHO)
    return TenantContext(
        tenant_id=tenant_id,
        engine=engine,
        session_factory=async_sessionmaker(engine, expire_on_commit=False),
        payment_key_id=settings.tenant_env("RAZORPAY_KEY_ID", tenant_id),
        payment_key_secret=settings.tenant_env("RAZORPAY_KEY_SECRET", tenant_id),
        courier_api_key=settings.tenant_env("PORTER_API_KEY", tenant_id),
        webhook_secret=settings.tenant_env("COURIER_WEBHOOK_SECRET", tenant_id),
    )


def load_tenants(registry: TenantRegistry) -> TenantRegistry:
    for tenant_id in settings.TENANTS:
        registry.register(build_tenant(tenant_id))
    return registry


tenant_registry = TenantRegistry()


def _tenant_id_from_request(request: Request) -> str | None:
    # Authenticated callers carry their tenant in the token; guests (webhooks) send a header
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        payload = verify_access_token(auth_header.split(" ", 1)[1]) or {}
        if payload.get("tenant_id"):
            return str(payload["tenant_id"])
    return request.headers.get("X-Tenant-ID")


async def get_tenant(request: Request) -> TenantContext:
    tenant = tenant_registry.get(_tenant_id_from_request(request))
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown tenant")
    request.state.tenant_id = tenant.tenant_id
    return tenant


async def get_db(tenant: TenantContext = Depends(get_tenant)):
    async with tenant.session_factory() as session:
        yield session


async def create_schema(tenant: TenantContext) -> None:
    async with tenant.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
