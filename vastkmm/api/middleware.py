from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from vastkmm.config import Config

class AuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, token: str = None):
        super().__init__(app)
        self.token = token or Config.API_KEY

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/docs") or request.url.path.startswith("/openapi.json"):
            return await call_next(request)

        auth_header = request.headers.get("X-API-Key")
        if auth_header != self.token:
            # Exceptions raised here bypass FastAPI's handlers
            return JSONResponse(status_code=403, content={"detail": "Unauthorized"})
        return await call_next(request)
