import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from logisync.core.request_context import HDR_REQUEST_ID, get_request_context, get_request_id

logger = logging.getLogger("access")

class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request.state.request_id = get_request_id(request)
        context = get_request_context(request)

        # Log request
        logger.info(
            f"🌐 {context['endpoint']} - "
            f"Client: {context['ip_address'] or 'unknown'} - "
            f"Request-Id: {context['request_id']} - "
            f"User-Agent: {context['user_agent'] or 'unknown'}"
        )

        # Process request
        response = await call_next(request)

        # Calculate processing time
        process_time = time.time() - start_time

        # Log response
        logger.info(
            f"✅ {context['endpoint']} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.4f}s"
        )

        response.headers["X-Process-Time"] = str(process_time)
        response.headers[HDR_REQUEST_ID] = context["request_id"]

        return response
