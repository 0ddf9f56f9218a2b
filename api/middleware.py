"""Request-scoped middleware for API requests."""

import re
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# Accept caller-supplied IDs only when they look like IDs
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID (or propagates a well-formed X-Request-ID)."""

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get("X-Request-ID")
        if incoming and _REQUEST_ID_PATTERN.match(incoming):
            request_id = incoming
        else:
            request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
