import uuid
from typing import Optional, Dict
from fastapi import Request

# Names you'll read from headers (change to match your FE/GW)
HDR_REQUEST_ID = "X-Request-Id"

def get_request_id(request: Request) -> str:
    """Request id from the gateway header, or a fresh one"""
    return request.headers.get(HDR_REQUEST_ID) or uuid.uuid4().hex

def get_request_context(request: Request) -> Dict[str, Optional[str]]:
    """
    Extracts endpoint, client IP, user-agent and request_id from the FastAPI Request.
    """
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    endpoint = f"{request.method} {request.url.path}"
    request_id = getattr(request.state, "request_id", None) or get_request_id(request)
    return {
        "ip_address": ip_address,
        "user_agent": user_agent,
        "endpoint": endpoint,
        "request_id": request_id,
    }
