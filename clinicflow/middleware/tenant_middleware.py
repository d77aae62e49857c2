from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from clinicflow.core.tenant import set_tenant_id, reset_tenant_id

class TenantMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Set even when the header is absent
        token = set_tenant_id(request.headers.get("X-Tenant-ID"))
        try:
            response = await call_next(request)
        finally:
            reset_tenant_id(token)
        return response
