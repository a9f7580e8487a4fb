"""
Rate limiting shared by the application and the routers that decorate endpoints.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request


def get_authorization_header(request: Request) -> str:
    """
    Extract authorization header for rate limiting.
    Falls back to the client address for anonymous callers.
    """
    auth = request.headers.get("Authorization", "")
    return auth or get_remote_address(request)


limiter = Limiter(key_func=get_authorization_header)
