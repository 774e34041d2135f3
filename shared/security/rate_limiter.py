from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from shared.config import settings
from .jwt_handler import verify_access_token

def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Scopes the bucket to tenant + user when a valid token is present,
    otherwise to the client's IP address.
    """
    auth_header = request.headers.get("Authorization")

    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ")[1]
        payload = verify_access_token(token)
        if payload and "sub" in payload:
            return f"user:{payload.get('tenant_id', '-')}:{payload['sub']}"

    return f"ip:{get_remote_address(request)}"

limiter = Limiter(key_func=user_id_or_ip, enabled=settings.RATE_LIMIT_ENABLED)
