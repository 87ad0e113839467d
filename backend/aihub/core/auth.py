import hmac

from fastapi import HTTPException, Request

from aihub.core.config import settings


def require_admin(request: Request) -> None:
    """Check the admin bearer token from the Authorization header.

    When no ADMIN_API_TOKEN is configured the check is skipped, which is how
    the console runs behind its own session layer in development.
    """
    if not settings.admin_auth_enabled:
        return

    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Authorization header is required")

    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    raw_token = auth_header[7:]
    if not raw_token:
        raise HTTPException(status_code=401, detail="Admin token is required")

    if not hmac.compare_digest(raw_token.encode(), settings.ADMIN_API_TOKEN.encode()):
        raise HTTPException(status_code=401, detail="Invalid admin token")
