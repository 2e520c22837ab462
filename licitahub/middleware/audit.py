from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from licitahub.database import SessionLocal
from licitahub.models import AuditLog
import time
import logging

logger = logging.getLogger(__name__)

class AuditMiddleware(BaseHTTPMiddleware):
    skip_paths = ("/health", "/ready", "/docs", "/redoc", "/openapi.json", "/favicon.ico")

    async def dispatch(self, request: Request, call_next):
        # Skip audit logging for health/docs endpoints
        if request.url.path == "/" or any(request.url.path.startswith(path) for path in self.skip_paths):
            return await call_next(request)

        # Bind the state dict to the scope before handing the request downstream
        state = request.state
        start_time = time.time()
        response = await call_next(request)
        latency_ms = int((time.time() - start_time) * 1000)

        # Set by get_current_user once the token has been verified
        user_id = getattr(state, "user_id", None)
        action = self._determine_action(request.method, request.url.path)

        logger.debug(f"🔍 Audit {action} by {user_id or 'anonymous'}: {response.status_code} in {latency_ms}ms")

        db = SessionLocal()
        try:
            audit_entry = AuditLog(
                user_id=user_id,
                action=action,
                resource_type=self._extract_resource_type(request.url.path),
                details={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "latency_ms": latency_ms
                },
                ip_address=request.client.host if request.client else "unknown",
                user_agent=request.headers.get("user-agent", "")
            )
            db.add(audit_entry)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Audit logging failed: {e}")
        finally:
            db.close()

        return response

    def _determine_action(self, method: str, path: str) -> str:
        """Map HTTP method + path to action name"""
        if path.startswith("/api/search"):
            return "procurement_search"
        elif path.startswith("/api/procurements/detail"):
            return "procurement_detail"
        elif path.startswith("/api/admin/promote"):
            return "admin_promote"
        elif path.startswith("/api/saved-filters") and method == "POST":
            return "saved_filter_create"
        elif path.startswith("/api/saved-filters") and method == "DELETE":
            return "saved_filter_delete"
        elif path.startswith("/api/billing/checkout"):
            return "billing_checkout"
        else:
            return f"{method.lower()}_{path.rstrip('/').split('/')[-1]}"

    def _extract_resource_type(self, path: str) -> str:
        """Extract resource type from path"""
        if path.startswith("/api/search") or path.startswith("/api/procurements"):
            return "procurement"
        elif path.startswith("/api/saved-filters"):
            return "saved_filter"
        elif path.startswith("/api/admin"):
            return "admin"
        elif path.startswith("/api/billing"):
            return "billing"
        elif path.startswith("/api/auth"):
            return "auth"
        return "unknown"
