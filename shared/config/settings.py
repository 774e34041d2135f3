import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def tenant_env(name: str, tenant_id: str, default: str = "") -> str:
    """Per-tenant override (NAME_<TENANT>) falling back to the shared NAME."""
    suffix = tenant_id.upper().replace("-", "_")
    return os.getenv(f"{name}_{suffix}") or os.getenv(name, default)


DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost") # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5433")
DB_NAME = os.getenv("POSTGRES_DB", "ecommerce")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
SQL_ECHO = _flag("SQL_ECHO", "false")

TENANTS = [t.strip() for t in os.getenv("TENANTS", "default").split(",") if t.strip()]

# Outbound HTTP must never hold a DB transaction open indefinitely
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

RAZORPAY_BASE_URL = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com")
PORTER_BASE_URL = os.getenv("PORTER_BASE_URL", "https://pfe-apigw-uat.porter.in")
INVOICE_STORAGE_URL = os.getenv("INVOICE_STORAGE_URL", "")

SHIPPING_FEE = Decimal(os.getenv("SHIPPING_FEE", "0"))
DELIVERY_AGENT_FEE = Decimal(os.getenv("DELIVERY_AGENT_FEE", "40.00"))
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "INR")

TRACING_ENABLED = _flag("TRACING_ENABLED", "true")
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")

RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
ORDER_RATE_LIMIT = os.getenv("ORDER_RATE_LIMIT", "20/minute")
