from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
import logging

logger = logging.getLogger(__name__)


class JSONErrorMiddleware(BaseHTTPMiddleware):
    """
    Middleware que garantiza que los errores no controlados de las rutas API
    se devuelvan como JSON en lugar de HTML o un traceback.
    """

    def __init__(self, app: ASGIApp, path_prefix: str = "/api/"):
        super().__init__(app)
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error on {request.url.path}: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "detail": "Internal server error",
                    "error": str(e),
                },
            )
